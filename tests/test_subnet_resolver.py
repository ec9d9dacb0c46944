import pytest

from vpcplan.errors import ConfigurationError
from vpcplan.resolvers.subnet import resolve_subnets


def test_single_subnet_defaults():
    subnets = resolve_subnets(
        "acme-dev",
        "dev-vpc",
        {"a": {"region": "us-central1", "ip_cidr_range": "10.0.1.0/24"}},
    )

    assert set(subnets) == {"a"}
    subnet = subnets["a"]
    assert subnet.name == "a"
    assert subnet.private_ip_google_access is True
    assert subnet.region == "us-central1"
    assert subnet.ip_cidr_range == "10.0.1.0/24"
    assert subnet.self_link == (
        "https://www.googleapis.com/compute/v1/projects/acme-dev/regions/us-central1/subnetworks/a"
    )


@pytest.mark.parametrize("size", [0, 1, 5, 40])
def test_output_keys_match_input_keys(size):
    spec = {
        f"subnet-{i}": {"region": "europe-west1", "ip_cidr_range": f"10.1.{i}.0/24"}
        for i in range(size)
    }

    subnets = resolve_subnets("p", "n", spec)

    assert set(subnets) == set(spec)


def test_empty_and_missing_maps():
    assert resolve_subnets("p", "n", {}) == {}
    assert resolve_subnets("p", "n", None) == {}


def test_network_reference_is_synthesized_literally():
    subnets = resolve_subnets(
        "my-project",
        "my-net",
        {
            "a": {"region": "us-west1", "ip_cidr_range": "10.0.0.0/24"},
            "b": {"region": "asia-east1", "ip_cidr_range": "10.0.1.0/24"},
        },
    )

    for subnet in subnets.values():
        assert subnet.network == "projects/my-project/global/networks/my-net"


def test_values_pass_through_verbatim():
    # Overlapping and odd-looking ranges are the API's problem, not ours
    subnets = resolve_subnets(
        "p",
        "n",
        {
            "a": {"region": "us-west1", "ip_cidr_range": "10.0.0.0/16"},
            "b": {
                "region": "us-west1",
                "ip_cidr_range": "10.0.5.0/24",
                "private_ip_google_access": False,
                "description": "overlaps a",
            },
        },
    )

    assert subnets["a"].ip_cidr_range == "10.0.0.0/16"
    assert subnets["b"].private_ip_google_access is False
    assert subnets["b"].description == "overlaps a"


def test_resolution_does_not_depend_on_order():
    entries = [
        ("z", {"region": "us-west1", "ip_cidr_range": "10.0.0.0/24"}),
        ("a", {"region": "us-east1", "ip_cidr_range": "10.0.1.0/24"}),
    ]

    forward = resolve_subnets("p", "n", dict(entries))
    backward = resolve_subnets("p", "n", dict(reversed(entries)))

    assert forward == backward


def test_missing_fields_abort_the_batch():
    with pytest.raises(ConfigurationError) as exc:
        resolve_subnets(
            "p",
            "n",
            {
                "ok": {"region": "us-west1", "ip_cidr_range": "10.0.0.0/24"},
                "no-region": {"ip_cidr_range": "10.0.1.0/24"},
                "no-range": {"region": "us-west1"},
            },
        )

    offending = {(i.key, i.field) for i in exc.value.issues}
    assert offending == {("no-region", "region"), ("no-range", "ip_cidr_range")}
    assert "required field is missing" in str(exc.value)


def test_unknown_field_is_reported():
    with pytest.raises(ConfigurationError) as exc:
        resolve_subnets(
            "p",
            "n",
            {"a": {"region": "r", "ip_cidr_range": "10.0.0.0/24", "cidr": "oops"}},
        )

    assert exc.value.issues[0].field == "cidr"
    assert exc.value.issues[0].message == "unknown field"


def test_list_instead_of_map_is_rejected():
    with pytest.raises(ConfigurationError):
        resolve_subnets("p", "n", [{"region": "r", "ip_cidr_range": "10.0.0.0/24"}])
