from collections.abc import Mapping
from typing import Any

from ..core import COMPUTE_API_BASE, FIREWALL_REF_TEMPLATE
from ..logger import logger
from ..schemas.firewall import (
    DestinationRanges,
    FirewallRule,
    FirewallRuleSpec,
    SourceRanges,
)
from .common import require_parent, validate_entries
from .network import network_ref


def resolve_firewall_rules(
    project_id: str,
    network_name: str,
    rules: Mapping[str, Any] | None,
) -> dict[str, FirewallRule]:
    """
    Expands a keyed map of firewall specs into FirewallRule records.

    `ranges` becomes the source ranges of an INGRESS rule and the destination
    ranges of an EGRESS rule; the other side is always empty. Tag lists are
    forwarded as given, even when the direction makes them inert
    (e.g. source_tags on EGRESS), matching the permissive API.
    """
    require_parent("firewall_rules", project_id, network_name)
    specs = validate_entries("firewall_rules", FirewallRuleSpec, rules)
    network = network_ref(project_id, network_name)

    resolved = {}
    for key, spec in specs.items():
        if spec.direction == "INGRESS":
            range_role: SourceRanges | DestinationRanges = SourceRanges(
                ranges=list(spec.ranges)
            )
        else:
            range_role = DestinationRanges(ranges=list(spec.ranges))

        ref = FIREWALL_REF_TEMPLATE.format(project_id=project_id, name=key)
        resolved[key] = FirewallRule(
            name=key,
            project_id=project_id,
            network=network,
            direction=spec.direction,
            priority=spec.priority,
            range_role=range_role,
            allow=list(spec.allow),
            target_tags=list(spec.target_tags),
            source_tags=list(spec.source_tags),
            destination_tags=list(spec.destination_tags),
            description=spec.description,
            self_link=COMPUTE_API_BASE + ref,
        )

    logger.debug(f"Resolved {len(resolved)} firewall rule(s) on {network_name}")
    return resolved
