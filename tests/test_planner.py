import pytest

from vpcplan.environment import compose_environment
from vpcplan.planner import (
    Action,
    build_destroy_plan,
    build_plan,
    comparable,
    detect_drift,
)
from vpcplan.schemas.environment import EnvironmentConfig
from vpcplan.schemas.state import ResourceState, StateDocument
from vpcplan.state import LocalStateHandle


def _config(**overrides):
    data = {
        "environment": "dev",
        "project_id": "p",
        "network_name": "vpc",
        "subnets": {
            "app": {"region": "us-central1", "ip_cidr_range": "10.0.1.0/24"},
            "data": {"region": "us-central1", "ip_cidr_range": "10.0.2.0/24"},
        },
        "firewall_rules": {
            "ssh": {
                "direction": "INGRESS",
                "priority": 1000,
                "ranges": ["35.235.240.0/20"],
                "allow": [{"protocol": "tcp", "ports": ["22"]}],
            }
        },
        "routes": {
            "egress": {
                "dest_range": "0.0.0.0/0",
                "priority": 1000,
                "next_hop_gateway": "default-internet-gateway",
            }
        },
    }
    data.update(overrides)
    return EnvironmentConfig(**data)


@pytest.fixture
def handle(tmp_path):
    return LocalStateHandle(tmp_path / "dev.state.json", "dev")


def _resolve(handle, **overrides):
    return compose_environment(_config(**overrides), state=handle)


def _state_of(resolved):
    return StateDocument(
        environment=resolved.name,
        resources={
            address: ResourceState(
                kind=record.kind,
                key=record.name,
                self_link=record.self_link,
                attributes=record.attributes(),
            )
            for address, record in resolved.records().items()
        },
    )


def _actions(phase):
    return {op.address: op.action for op in phase}


def test_fresh_environment_creates_network_first(handle):
    resolved = _resolve(handle)

    plan = build_plan(resolved, StateDocument(environment="dev"))

    deletions, network_ops, applies = plan.phases
    assert deletions == []
    assert _actions(network_ops) == {"network": Action.CREATE}
    assert _actions(applies) == {
        'firewall_rules["ssh"]': Action.CREATE,
        'routes["egress"]': Action.CREATE,
        'subnets["app"]': Action.CREATE,
        'subnets["data"]': Action.CREATE,
    }
    assert plan.summary() == {"create": 5, "update": 0, "replace": 0, "delete": 0}


def test_converged_environment_has_no_changes(handle):
    resolved = _resolve(handle)

    plan = build_plan(resolved, _state_of(resolved))

    assert not plan.has_changes


def test_empty_firewall_map_plans_no_firewall_resources(handle):
    resolved = _resolve(handle, firewall_rules={})

    plan = build_plan(resolved, StateDocument(environment="dev"))

    assert not [op for op in plan.operations if op.kind == "firewall_rules"]


def test_removing_one_key_only_touches_that_key(handle):
    state = _state_of(_resolve(handle))
    subnets = {"data": {"region": "us-central1", "ip_cidr_range": "10.0.2.0/24"}}

    plan = build_plan(_resolve(handle, subnets=subnets), state)

    assert [(op.address, op.action) for op in plan.operations] == [
        ('subnets["app"]', Action.DELETE)
    ]
    assert plan.phases[0][0].reason == "no longer declared"


def test_adding_one_key_only_touches_that_key(handle):
    state = _state_of(_resolve(handle))
    subnets = dict(_config().subnets)
    subnets["aaa-new"] = {"region": "us-east1", "ip_cidr_range": "10.0.3.0/24"}

    plan = build_plan(_resolve(handle, subnets=subnets), state)

    assert [(op.address, op.action) for op in plan.operations] == [
        ('subnets["aaa-new"]', Action.CREATE)
    ]


@pytest.mark.parametrize(
    "collection,key,change,action",
    [
        ("subnets", "app", {"private_ip_google_access": False}, Action.UPDATE),
        ("subnets", "app", {"description": "frontends"}, Action.UPDATE),
        ("subnets", "app", {"ip_cidr_range": "10.0.9.0/24"}, Action.REPLACE),
        ("subnets", "app", {"region": "us-east1"}, Action.REPLACE),
        ("firewall_rules", "ssh", {"ranges": ["10.0.0.0/8"]}, Action.UPDATE),
        ("firewall_rules", "ssh", {"priority": 10}, Action.UPDATE),
        ("firewall_rules", "ssh", {"direction": "EGRESS"}, Action.REPLACE),
        ("routes", "egress", {"priority": 10}, Action.REPLACE),
    ],
)
def test_update_or_replace(handle, collection, key, change, action):
    state = _state_of(_resolve(handle))
    config = _config()
    entries = {k: dict(v) for k, v in getattr(config, collection).items()}
    entries[key].update(change)

    plan = build_plan(_resolve(handle, **{collection: entries}), state)

    assert [(op.address, op.action) for op in plan.operations] == [
        (f'{collection}["{key}"]', action)
    ]
    assert set(plan.operations[0].changes)


def test_clearing_a_firewall_field_replaces_the_rule(handle):
    config = _config()
    rules = {k: dict(v) for k, v in config.firewall_rules.items()}
    rules["ssh"].update(target_tags=["bastion"], description="iap ssh")
    state = _state_of(_resolve(handle, firewall_rules=rules))

    plan = build_plan(_resolve(handle), state)

    [op] = plan.operations
    assert (op.address, op.action) == ('firewall_rules["ssh"]', Action.REPLACE)
    assert op.changes["target_tags"] == (["bastion"], [])
    assert op.reason == "clears description, target_tags"


def test_clearing_a_subnet_description_replaces_it(handle):
    subnets = {k: dict(v) for k, v in _config().subnets.items()}
    subnets["app"]["description"] = "frontends"
    state = _state_of(_resolve(handle, subnets=subnets))

    plan = build_plan(_resolve(handle), state)

    assert [(op.address, op.action) for op in plan.operations] == [
        ('subnets["app"]', Action.REPLACE)
    ]


def test_routing_mode_change_updates_network_in_place(handle):
    state = _state_of(_resolve(handle))

    plan = build_plan(_resolve(handle, routing_mode="REGIONAL"), state)

    assert [(op.address, op.action) for op in plan.operations] == [
        ("network", Action.UPDATE)
    ]
    assert plan.operations[0].changes == {"routing_mode": ("GLOBAL", "REGIONAL")}


def test_network_replacement_cascades_to_dependents(handle):
    state = _state_of(_resolve(handle))

    plan = build_plan(_resolve(handle, network_name="vpc-2"), state)

    deletions, network_ops, applies = plan.phases
    assert _actions(network_ops) == {"network": Action.REPLACE}
    assert set(_actions(deletions).values()) == {Action.DELETE}
    assert set(_actions(applies).values()) == {Action.CREATE}
    assert set(_actions(deletions)) == set(_actions(applies))
    assert all(op.record.network == "projects/p/global/networks/vpc-2" for op in applies)


def test_live_view_overrides_recorded_state(handle):
    resolved = _resolve(handle)
    state = _state_of(resolved)
    live = {address: dict(res.attributes) for address, res in state.resources.items()}
    live['subnets["app"]'] = None
    live['firewall_rules["ssh"]']["priority"] = 5

    plan = build_plan(resolved, state, live=live)

    assert _actions(plan.operations) == {
        'subnets["app"]': Action.CREATE,
        'firewall_rules["ssh"]': Action.UPDATE,
    }
    fw_op = [op for op in plan.operations if op.kind == "firewall_rules"][0]
    assert fw_op.changes == {"priority": (5, 1000)}


def test_detect_drift(handle, mocker):
    state = _state_of(_resolve(handle))

    def read(kind, attributes):
        if attributes["name"] == "app":
            return None
        current = dict(attributes)
        if kind == "firewall_rules":
            current["source_ranges"] = ["0.0.0.0/0"]
        if kind == "routes":
            # The API reports gateways as full links
            current["next_hop_gateway"] = (
                "https://www.googleapis.com/compute/v1/projects/p/global/gateways/"
                "default-internet-gateway"
            )
        return current

    reader = mocker.Mock()
    reader.read.side_effect = read

    live, drifts = detect_drift(state, reader)

    assert live['subnets["app"]'] is None
    assert [(d.address, d.field) for d in drifts] == [
        ('firewall_rules["ssh"]', "source_ranges"),
        ('subnets["app"]', None),
    ]
    assert drifts[1].missing
    assert reader.read.call_count == len(state.resources)


def test_comparable_treats_short_and_full_gateway_as_equal():
    short = {"project_id": "p", "next_hop_gateway": "default-internet-gateway", "description": ""}
    full = {
        "project_id": "p",
        "next_hop_gateway": "projects/p/global/gateways/default-internet-gateway",
        "description": None,
    }

    assert comparable("routes", short) == comparable("routes", full)


def test_destroy_plan_deletes_dependents_before_network(handle):
    state = _state_of(_resolve(handle))

    plan = build_destroy_plan(state)

    deletions, network_ops, applies = plan.phases
    assert len(deletions) == 4
    assert _actions(network_ops) == {"network": Action.DELETE}
    assert applies == []
