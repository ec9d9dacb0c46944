from collections.abc import Mapping
from typing import Any

from ..core import COMPUTE_API_BASE, ROUTE_REF_TEMPLATE
from ..errors import ConfigIssue, ConfigurationError
from ..logger import logger
from ..schemas.route import GatewayHop, IpHop, Route, RouteSpec
from .common import require_parent, validate_entries
from .network import network_ref


def _select_next_hop(key: str, spec: RouteSpec, strict: bool) -> GatewayHop | IpHop | ConfigIssue:
    # Precedence, not symmetric exclusivity: a gateway always wins over an IP
    if spec.next_hop_gateway:
        if spec.next_hop_ip:
            if strict:
                return ConfigIssue(
                    "routes",
                    key,
                    "next_hop_ip",
                    "next_hop_gateway and next_hop_ip are mutually exclusive",
                )
            logger.warning(
                f'routes["{key}"]: both next_hop_gateway and next_hop_ip are set; '
                f"using gateway {spec.next_hop_gateway} and ignoring {spec.next_hop_ip}"
            )
        return GatewayHop(gateway=spec.next_hop_gateway)
    if spec.next_hop_ip:
        return IpHop(address=spec.next_hop_ip)
    return ConfigIssue(
        "routes", key, "next_hop", "one of next_hop_gateway or next_hop_ip is required"
    )


def resolve_routes(
    project_id: str,
    network_name: str,
    routes: Mapping[str, Any] | None,
    strict: bool = False,
) -> dict[str, Route]:
    """
    Expands a keyed map of route specs into Route records.
    With strict=True a route naming both next hops is rejected instead of
    silently preferring the gateway.
    """
    require_parent("routes", project_id, network_name)
    specs = validate_entries("routes", RouteSpec, routes)
    network = network_ref(project_id, network_name)

    hops: dict[str, GatewayHop | IpHop] = {}
    issues = []
    for key, spec in specs.items():
        hop = _select_next_hop(key, spec, strict)
        if isinstance(hop, ConfigIssue):
            issues.append(hop)
        else:
            hops[key] = hop
    if issues:
        raise ConfigurationError(issues)

    resolved = {}
    for key, spec in specs.items():
        ref = ROUTE_REF_TEMPLATE.format(project_id=project_id, name=key)
        resolved[key] = Route(
            name=key,
            project_id=project_id,
            network=network,
            dest_range=spec.dest_range,
            priority=spec.priority,
            next_hop=hops[key],
            tags=list(spec.tags),
            description=spec.description,
            self_link=COMPUTE_API_BASE + ref,
        )

    logger.debug(f"Resolved {len(resolved)} route(s) on {network_name}")
    return resolved
