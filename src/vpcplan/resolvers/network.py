from ..core import COMPUTE_API_BASE, DEFAULT_ROUTING_MODE, NETWORK_REF_TEMPLATE, ROUTING_MODES
from ..errors import ConfigIssue, ConfigurationError
from ..logger import logger
from ..schemas.network import Network


def network_ref(project_id: str, network_name: str) -> str:
    """The relative reference every dependent resource points at."""
    return NETWORK_REF_TEMPLATE.format(project_id=project_id, network_name=network_name)


def resolve_network(
    project_id: str,
    network_name: str,
    routing_mode: str | None = None,
    description: str | None = None,
) -> Network:
    """
    Resolves the single VPC of an environment.
    Subnet auto-creation is always off; routing scope defaults to GLOBAL.
    """
    issues = []
    if not project_id or not str(project_id).strip():
        issues.append(ConfigIssue("network", None, "project_id", "must not be empty"))
    if not network_name or not str(network_name).strip():
        issues.append(ConfigIssue("network", None, "network_name", "must not be empty"))

    mode = routing_mode or DEFAULT_ROUTING_MODE
    if mode not in ROUTING_MODES:
        issues.append(
            ConfigIssue(
                "network",
                None,
                "routing_mode",
                f"must be one of {', '.join(ROUTING_MODES)}, got {mode!r}",
            )
        )
    if issues:
        raise ConfigurationError(issues)

    ref = network_ref(project_id, network_name)
    logger.debug(f"Resolved network {ref} ({mode})")
    return Network(
        name=network_name,
        project_id=project_id,
        routing_mode=mode,
        description=description,
        ref=ref,
        self_link=COMPUTE_API_BASE + ref,
    )
