from collections.abc import Mapping
from typing import Any

from ..core import COMPUTE_API_BASE, SUBNET_REF_TEMPLATE
from ..logger import logger
from ..schemas.subnet import Subnet, SubnetSpec
from .common import require_parent, validate_entries
from .network import network_ref


def resolve_subnets(
    project_id: str,
    network_name: str,
    subnets: Mapping[str, Any] | None,
) -> dict[str, Subnet]:
    """
    Expands a keyed map of subnet specs into Subnet records on one network.
    Region and CIDR are passed through untouched; the API is the authority
    on address-space conflicts.
    """
    require_parent("subnets", project_id, network_name)
    specs = validate_entries("subnets", SubnetSpec, subnets)
    network = network_ref(project_id, network_name)

    resolved = {}
    for key, spec in specs.items():
        ref = SUBNET_REF_TEMPLATE.format(
            project_id=project_id, region=spec.region, name=key
        )
        resolved[key] = Subnet(
            name=key,
            project_id=project_id,
            region=spec.region,
            ip_cidr_range=spec.ip_cidr_range,
            network=network,
            private_ip_google_access=spec.private_ip_google_access,
            description=spec.description,
            self_link=COMPUTE_API_BASE + ref,
        )

    logger.debug(f"Resolved {len(resolved)} subnet(s) on {network_name}")
    return resolved
