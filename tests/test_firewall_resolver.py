import pytest

from vpcplan.errors import ConfigurationError
from vpcplan.resolvers.firewall import resolve_firewall_rules


def _rule(**overrides):
    rule = {
        "description": "test rule",
        "direction": "INGRESS",
        "priority": 1000,
        "ranges": ["10.0.0.0/8"],
        "allow": [{"protocol": "tcp", "ports": ["22"]}],
    }
    rule.update(overrides)
    return rule


def test_ingress_uses_source_ranges():
    rules = resolve_firewall_rules("p", "n", {"ssh": _rule()})

    rule = rules["ssh"]
    assert rule.source_ranges == ["10.0.0.0/8"]
    assert rule.destination_ranges == []
    assert rule.network == "projects/p/global/networks/n"


def test_egress_uses_destination_ranges():
    rules = resolve_firewall_rules(
        "p",
        "n",
        {
            "https-out": {
                "direction": "EGRESS",
                "priority": 1000,
                "ranges": ["0.0.0.0/0"],
                "allow": [{"protocol": "tcp", "ports": ["443"]}],
            }
        },
    )

    rule = rules["https-out"]
    assert rule.destination_ranges == ["0.0.0.0/0"]
    assert rule.source_ranges == []
    attrs = rule.attributes()
    assert attrs["destination_ranges"] == ["0.0.0.0/0"]
    assert attrs["source_ranges"] == []
    assert "range_role" not in attrs


def test_allow_pairs_are_preserved_in_order():
    allow = [
        {"protocol": "tcp", "ports": ["80", "443"]},
        {"protocol": "udp", "ports": ["53"]},
        {"protocol": "icmp"},
        {"protocol": "tcp", "ports": ["8080"]},
    ]

    rule = resolve_firewall_rules("p", "n", {"web": _rule(allow=allow)})["web"]

    assert [(a.protocol, a.ports) for a in rule.allow] == [
        ("tcp", ["80", "443"]),
        ("udp", ["53"]),
        ("icmp", []),
        ("tcp", ["8080"]),
    ]


def test_integer_ports_become_strings():
    rule = resolve_firewall_rules(
        "p", "n", {"web": _rule(allow=[{"protocol": "tcp", "ports": [443, "8000-8080"]}])}
    )["web"]

    assert rule.allow[0].ports == ["443", "8000-8080"]


def test_tags_pass_through_without_cross_validation():
    rule = resolve_firewall_rules(
        "p",
        "n",
        {
            "odd": _rule(
                direction="EGRESS",
                target_tags=["web"],
                source_tags=["ignored-on-egress"],
                destination_tags=["db"],
            )
        },
    )["odd"]

    assert rule.target_tags == ["web"]
    assert rule.source_tags == ["ignored-on-egress"]
    assert rule.destination_tags == ["db"]


def test_empty_map_yields_nothing():
    assert resolve_firewall_rules("p", "n", {}) == {}


@pytest.mark.parametrize(
    "overrides,field",
    [
        ({"direction": None}, "direction"),
        ({"priority": None}, "priority"),
        ({"allow": []}, "allow"),
        ({"direction": "SIDEWAYS"}, "direction"),
        ({"priority": 70000}, "priority"),
        ({"priority": -1}, "priority"),
        ({"ranges": []}, "ranges"),
    ],
)
def test_invalid_rules(overrides, field):
    rule = _rule(**overrides)
    for name, value in overrides.items():
        if value is None:
            del rule[name]

    with pytest.raises(ConfigurationError) as exc:
        resolve_firewall_rules("p", "n", {"bad": rule, "good": _rule()})

    assert [(i.key, i.field) for i in exc.value.issues] == [("bad", field)]


def test_priority_bounds_are_inclusive():
    rules = resolve_firewall_rules(
        "p", "n", {"low": _rule(priority=0), "high": _rule(priority=65535)}
    )

    assert rules["low"].priority == 0
    assert rules["high"].priority == 65535
