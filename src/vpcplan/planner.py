"""
Turns a resolved environment and its recorded state into an ordered plan.

Plans run in three phases: dependent deletions, then network operations
(a barrier), then dependent creates/updates/replacements. Operations
inside a phase are independent of each other.
"""

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from .core import COMPUTE_API_BASE, GATEWAY_REF_TEMPLATE
from .environment import ResolvedEnvironment
from .logger import logger
from .schemas.base import NETWORK_KIND, ResourceRecord
from .schemas.state import StateDocument


class Action(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"


# Changing any of these cannot be done in place. Routes are immutable.
REPLACE_FIELDS: dict[str, set[str] | None] = {
    NETWORK_KIND: {"name", "project_id", "ref", "auto_create_subnetworks"},
    "subnets": {"name", "project_id", "region", "ip_cidr_range", "network"},
    "firewall_rules": {"name", "project_id", "network", "direction"},
    "routes": None,
}


def _cleared(changes: dict[str, tuple[Any, Any]]) -> list[str]:
    # PATCH merges into the live resource and empty values never reach the
    # request body, so a field can only be emptied by recreating the resource
    return sorted(
        name
        for name, (before, after) in changes.items()
        if before not in (None, []) and after in (None, [])
    )


@dataclass
class Operation:
    address: str
    kind: str
    key: str
    action: Action
    record: ResourceRecord | None = None
    prior: dict[str, Any] | None = None
    changes: dict[str, tuple[Any, Any]] = field(default_factory=dict)
    reason: str | None = None


@dataclass
class Drift:
    address: str
    field: str | None
    recorded: Any
    live: Any

    @property
    def missing(self) -> bool:
        return self.field is None


@dataclass
class Plan:
    environment: str
    phases: list[list[Operation]]
    drifts: list[Drift] = field(default_factory=list)

    @property
    def operations(self) -> list[Operation]:
        return [op for phase in self.phases for op in phase]

    @property
    def has_changes(self) -> bool:
        return bool(self.operations)

    def summary(self) -> dict[str, int]:
        counts = Counter(op.action.value for op in self.operations)
        return {action.value: counts.get(action.value, 0) for action in Action}


class ResourceReader(Protocol):
    def read(self, kind: str, attributes: dict[str, Any]) -> dict[str, Any] | None: ...


def comparable(kind: str, attributes: dict[str, Any]) -> dict[str, Any]:
    """
    Normalizes attributes so recorded, desired and live views compare equal
    when they describe the same resource.
    """
    out: dict[str, Any] = {}
    for name, value in attributes.items():
        if isinstance(value, str) and value.startswith(COMPUTE_API_BASE):
            value = value[len(COMPUTE_API_BASE) :]
        if value == "":
            value = None
        out[name] = value

    gateway = out.get("next_hop_gateway")
    if kind == "routes" and gateway and "/" not in gateway:
        out["next_hop_gateway"] = GATEWAY_REF_TEMPLATE.format(
            project_id=attributes.get("project_id"), name=gateway
        )
    return out


def diff_attributes(
    kind: str, prior: dict[str, Any], desired: dict[str, Any]
) -> dict[str, tuple[Any, Any]]:
    before, after = comparable(kind, prior), comparable(kind, desired)
    return {
        name: (before.get(name), after.get(name))
        for name in sorted(before.keys() | after.keys())
        if before.get(name) != after.get(name)
    }


def _operation(record: ResourceRecord, prior: dict[str, Any] | None) -> Operation | None:
    if prior is None:
        return Operation(record.address, record.kind, record.name, Action.CREATE, record=record)

    changes = diff_attributes(record.kind, prior, record.attributes())
    if not changes:
        return None

    forcing = REPLACE_FIELDS[record.kind]
    cleared = _cleared(changes)
    reason = None
    if forcing is None or forcing & changes.keys():
        action = Action.REPLACE
    elif cleared:
        action = Action.REPLACE
        reason = f"clears {', '.join(cleared)}"
    else:
        action = Action.UPDATE
    return Operation(
        record.address,
        record.kind,
        record.name,
        action,
        record=record,
        prior=prior,
        changes=changes,
        reason=reason,
    )


def build_plan(
    resolved: ResolvedEnvironment,
    state: StateDocument,
    live: dict[str, dict[str, Any] | None] | None = None,
    drifts: list[Drift] | None = None,
) -> Plan:
    """
    Diffs the resolved environment against what exists. When `live` (from
    detect_drift) is given it wins over the recorded attributes, so drifted
    resources are planned back to their declared values.
    """

    def prior_of(address: str) -> dict[str, Any] | None:
        if live is not None and address in live:
            return live[address]
        recorded = state.resources.get(address)
        return recorded.attributes if recorded else None

    desired = resolved.records()
    deletions: list[Operation] = []
    network_ops: list[Operation] = []
    applies: list[Operation] = []

    network_op = _operation(resolved.network, prior_of(NETWORK_KIND))
    if network_op:
        network_ops.append(network_op)
    cascade = network_op is not None and network_op.action is Action.REPLACE

    for address, record in desired.items():
        if address == NETWORK_KIND:
            continue
        prior = prior_of(address)
        if cascade and prior is not None:
            # Dependents cannot outlive the network they are attached to
            reason = "network is replaced"
            deletions.append(
                Operation(address, record.kind, record.name, Action.DELETE, prior=prior, reason=reason)
            )
            applies.append(
                Operation(address, record.kind, record.name, Action.CREATE, record=record, reason=reason)
            )
            continue
        op = _operation(record, prior)
        if op:
            applies.append(op)

    for address, recorded in state.resources.items():
        if address in desired:
            continue
        deletions.append(
            Operation(
                address,
                recorded.kind,
                recorded.key,
                Action.DELETE,
                prior=prior_of(address) or recorded.attributes,
                reason="no longer declared",
            )
        )

    def ordered(ops: list[Operation]) -> list[Operation]:
        return sorted(ops, key=lambda op: op.address)

    plan = Plan(
        environment=resolved.name,
        phases=[ordered(deletions), network_ops, ordered(applies)],
        drifts=list(drifts or []),
    )
    logger.debug(f"Plan for {resolved.name}: {plan.summary()}")
    return plan


def build_destroy_plan(state: StateDocument) -> Plan:
    deletions = []
    network_ops = []
    for address, recorded in sorted(state.resources.items()):
        op = Operation(
            address,
            recorded.kind,
            recorded.key,
            Action.DELETE,
            prior=recorded.attributes,
            reason="destroy",
        )
        if recorded.kind == NETWORK_KIND:
            network_ops.append(op)
        else:
            deletions.append(op)
    return Plan(environment=state.environment, phases=[deletions, network_ops, []])


def detect_drift(
    state: StateDocument, reader: ResourceReader
) -> tuple[dict[str, dict[str, Any] | None], list[Drift]]:
    """
    Reads every recorded resource back from the cloud and reports how it
    differs from state. Nothing is changed here.
    """
    live: dict[str, dict[str, Any] | None] = {}
    drifts: list[Drift] = []
    for address, recorded in sorted(state.resources.items()):
        current = reader.read(recorded.kind, recorded.attributes)
        live[address] = current
        if current is None:
            drifts.append(Drift(address, None, recorded.attributes, None))
            continue
        for name, (was, now) in diff_attributes(
            recorded.kind, recorded.attributes, current
        ).items():
            drifts.append(Drift(address, name, was, now))

    if drifts:
        logger.warning(f"Detected {len(drifts)} drifted attribute(s) in {state.environment}")
    return live, drifts
