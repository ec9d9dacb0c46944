"""
Environment composition.

An environment file binds one set of values to the network and its three
dependent collections. The network is resolved first and every dependent
is wired to the resolved network's outputs.
"""

import ipaddress
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .core import LOCAL_STATE_DIR
from .errors import ConfigIssue, ConfigurationError
from .logger import logger
from .resolvers.firewall import resolve_firewall_rules
from .resolvers.network import resolve_network
from .resolvers.route import resolve_routes
from .resolvers.subnet import resolve_subnets
from .schemas.base import ResourceRecord
from .schemas.environment import EnvironmentConfig
from .schemas.firewall import FirewallRule
from .schemas.network import Network
from .schemas.route import Route
from .schemas.subnet import Subnet
from .state import GcsStateHandle, LocalStateHandle, StateHandle


@dataclass
class ResolvedEnvironment:
    name: str
    network: Network
    subnets: dict[str, Subnet]
    firewall_rules: dict[str, FirewallRule]
    routes: dict[str, Route]
    state: StateHandle

    def dependents(self) -> list[ResourceRecord]:
        return [
            *self.subnets.values(),
            *self.firewall_rules.values(),
            *self.routes.values(),
        ]

    def records(self) -> dict[str, ResourceRecord]:
        """Every record keyed by state address, network first."""
        records: dict[str, ResourceRecord] = {self.network.address: self.network}
        for record in self.dependents():
            records[record.address] = record
        return records

    def outputs(self) -> dict[str, Any]:
        return {
            "network_self_link": self.network.network_self_link,
            "network_name": self.network.network_name,
            "subnets": {k: v.self_link for k, v in self.subnets.items()},
            "firewall_rules": {k: v.self_link for k, v in self.firewall_rules.items()},
            "routes": {k: v.self_link for k, v in self.routes.items()},
        }


def load_environment(path: str | Path) -> EnvironmentConfig:
    """Load and validate an environment definition from a YAML file."""
    path = Path(path)
    try:
        with path.open("r") as file:
            data = yaml.safe_load(file)
    except FileNotFoundError:
        raise ConfigurationError.single(
            "environment", "<file>", f"{path} does not exist"
        ) from None
    except yaml.YAMLError as e:
        raise ConfigurationError.single(
            "environment", "<file>", f"{path} is not valid YAML: {e}"
        ) from e

    if not isinstance(data, dict):
        raise ConfigurationError.single(
            "environment", "<file>", f"{path} must contain a mapping at the top level"
        )

    try:
        config = EnvironmentConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(
            [
                ConfigIssue(
                    "environment",
                    None,
                    ".".join(str(p) for p in err["loc"]) or "<file>",
                    "required field is missing" if err["type"] == "missing" else err["msg"],
                )
                for err in e.errors()
            ]
        ) from e

    return config.model_copy(update={"source": path})


def make_state_handle(config: EnvironmentConfig) -> StateHandle:
    """Remote state when a bucket is configured, else a local file."""
    backend = config.backend
    if backend and backend.bucket:
        return GcsStateHandle(backend.bucket, backend.prefix or "", config.environment)

    if backend and backend.path:
        path = Path(backend.path)
    else:
        path = Path(LOCAL_STATE_DIR) / f"{config.environment}.state.json"
    if not path.is_absolute():
        base = config.source.parent if config.source else Path.cwd()
        path = base / path
    return LocalStateHandle(path, config.environment)


def compose_environment(
    config: EnvironmentConfig,
    state: StateHandle | None = None,
    strict: bool = False,
) -> ResolvedEnvironment:
    """
    Resolves a whole environment. Problems from all three dependent
    collections are reported together; nothing is returned unless every
    collection resolves.
    """
    network = resolve_network(
        config.project_id,
        config.network_name,
        config.routing_mode,
        config.description,
    )

    # Dependents take the resolved network's outputs, never the raw config
    project_id, network_name = network.project_id, network.network_name

    issues: list[ConfigIssue] = []
    subnets: dict[str, Subnet] = {}
    firewall_rules: dict[str, FirewallRule] = {}
    routes: dict[str, Route] = {}
    try:
        subnets = resolve_subnets(project_id, network_name, config.subnets)
    except ConfigurationError as e:
        issues.extend(e.issues)
    try:
        firewall_rules = resolve_firewall_rules(
            project_id, network_name, config.firewall_rules
        )
    except ConfigurationError as e:
        issues.extend(e.issues)
    try:
        routes = resolve_routes(project_id, network_name, config.routes, strict=strict)
    except ConfigurationError as e:
        issues.extend(e.issues)
    if issues:
        raise ConfigurationError(issues)

    logger.info(
        f"Environment {config.environment}: {len(subnets)} subnet(s), "
        f"{len(firewall_rules)} firewall rule(s), {len(routes)} route(s)"
    )
    return ResolvedEnvironment(
        name=config.environment,
        network=network,
        subnets=subnets,
        firewall_rules=firewall_rules,
        routes=routes,
        state=state if state is not None else make_state_handle(config),
    )


@dataclass
class CidrOverlap:
    environment: str
    subnet: str
    cidr: str
    other_environment: str
    other_subnet: str
    other_cidr: str


def find_cidr_overlaps(configs: Iterable[EnvironmentConfig]) -> list[CidrOverlap]:
    """
    Subnet ranges that collide across different environments.
    Ranges inside one environment are left to the API to police.
    """
    declared = []
    for config in configs:
        for key, spec in config.subnets.items():
            cidr = spec.get("ip_cidr_range") if isinstance(spec, dict) else None
            if not cidr:
                continue
            try:
                net = ipaddress.ip_network(cidr, strict=False)
            except ValueError:
                logger.debug(f"Skipping unparseable range {cidr!r} in {config.environment}")
                continue
            declared.append((config.environment, key, cidr, net))

    overlaps = []
    for i, (env, key, cidr, net) in enumerate(declared):
        for other_env, other_key, other_cidr, other_net in declared[i + 1 :]:
            if env == other_env or net.version != other_net.version:
                continue
            if net.overlaps(other_net):
                overlaps.append(
                    CidrOverlap(env, key, cidr, other_env, other_key, other_cidr)
                )
    return overlaps
