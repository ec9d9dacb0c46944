from typing import Any

from google.api_core import exceptions as api_exceptions
from google.cloud import compute_v1
from tenacity import retry

from .clients import (
    get_firewalls_client,
    get_networks_client,
    get_routes_client,
    get_subnetworks_client,
)
from .core import COMPUTE_API_BASE, DEFAULT_ROUTING_MODE, GATEWAY_REF_TEMPLATE, RETRY_CONFIG
from .errors import RemoteRejectionError
from .logger import logger
from .planner import Action, Operation
from .schemas.firewall import FirewallRule
from .schemas.network import Network
from .schemas.route import GatewayHop, IpHop, Route
from .schemas.subnet import Subnet


def _relative(link: str | None) -> str | None:
    if not link:
        return None
    if link.startswith(COMPUTE_API_BASE):
        return link[len(COMPUTE_API_BASE) :]
    return link


def _compact(**fields: Any) -> dict[str, Any]:
    # Unset optional fields are left out of the request body
    return {k: v for k, v in fields.items() if v is not None}


def _wait(operation: Any) -> None:
    # ExtendedOperation.result() blocks and raises on a failed operation
    operation.result()


class ComputeProvider:
    """Applies planned operations through the Compute Engine API."""

    def __init__(self, project_id: str):
        self.project_id = project_id

    def gateway_ref(self, gateway: str) -> str:
        if "/" in gateway:
            return _relative(gateway) or gateway
        return GATEWAY_REF_TEMPLATE.format(project_id=self.project_id, name=gateway)

    def apply(self, op: Operation) -> None:
        try:
            if op.action is Action.CREATE:
                self.create(op.record)
            elif op.action is Action.UPDATE:
                self.update(op.record, op.changes)
            elif op.action is Action.REPLACE:
                self.delete(op.kind, op.prior or {})
                self.create(op.record)
            elif op.action is Action.DELETE:
                self.delete(op.kind, op.prior or {})
        except api_exceptions.GoogleAPICallError as e:
            code = int(e.code) if e.code else None
            raise RemoteRejectionError(op.address, e.message, code) from e

    def create(self, record: Any) -> None:
        if isinstance(record, Network):
            self._insert_network(record)
        elif isinstance(record, Subnet):
            self._insert_subnet(record)
        elif isinstance(record, FirewallRule):
            self._insert_firewall(record)
        elif isinstance(record, Route):
            self._insert_route(record)
        else:
            raise TypeError(f"Unsupported record type: {type(record).__name__}")

    def update(self, record: Any, changes: dict[str, tuple[Any, Any]]) -> None:
        if isinstance(record, Network):
            self._patch_network(record)
        elif isinstance(record, Subnet):
            self._patch_subnet(record, changes)
        elif isinstance(record, FirewallRule):
            self._patch_firewall(record)
        else:
            raise TypeError(f"{type(record).__name__} cannot be updated in place")

    def delete(self, kind: str, attributes: dict[str, Any]) -> None:
        name = attributes["name"]
        try:
            if kind == "network":
                _wait(get_networks_client().delete(project=self.project_id, network=name))
            elif kind == "subnets":
                _wait(
                    get_subnetworks_client().delete(
                        project=self.project_id,
                        region=attributes["region"],
                        subnetwork=name,
                    )
                )
            elif kind == "firewall_rules":
                _wait(get_firewalls_client().delete(project=self.project_id, firewall=name))
            elif kind == "routes":
                _wait(get_routes_client().delete(project=self.project_id, route=name))
            else:
                raise ValueError(f"Unknown resource kind: {kind}")
        except api_exceptions.NotFound:
            logger.info(f"{kind} {name} is already gone")

    def read(self, kind: str, attributes: dict[str, Any]) -> dict[str, Any] | None:
        """Live attributes in the same shape as ResourceRecord.attributes()."""
        name = attributes["name"]
        try:
            if kind == "network":
                return self._read_network(name)
            if kind == "subnets":
                return self._read_subnet(name, attributes["region"])
            if kind == "firewall_rules":
                return self._read_firewall(name)
            if kind == "routes":
                return self._read_route(name)
        except api_exceptions.NotFound:
            return None
        raise ValueError(f"Unknown resource kind: {kind}")

    # Networks

    @retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
    def _insert_network(self, record: Network) -> None:
        resource = compute_v1.Network(
            **_compact(
                name=record.name,
                auto_create_subnetworks=False,
                routing_config=compute_v1.NetworkRoutingConfig(
                    routing_mode=record.routing_mode
                ),
                description=record.description,
            )
        )
        _wait(get_networks_client().insert(project=self.project_id, network_resource=resource))

    @retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
    def _patch_network(self, record: Network) -> None:
        resource = compute_v1.Network(
            **_compact(
                routing_config=compute_v1.NetworkRoutingConfig(
                    routing_mode=record.routing_mode
                ),
                description=record.description,
            )
        )
        _wait(
            get_networks_client().patch(
                project=self.project_id, network=record.name, network_resource=resource
            )
        )

    @retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
    def _read_network(self, name: str) -> dict[str, Any]:
        net = get_networks_client().get(project=self.project_id, network=name)
        return {
            "name": net.name,
            "project_id": self.project_id,
            "routing_mode": net.routing_config.routing_mode or DEFAULT_ROUTING_MODE,
            "auto_create_subnetworks": bool(net.auto_create_subnetworks),
            "description": net.description or None,
            "ref": _relative(net.self_link),
        }

    # Subnetworks

    @retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
    def _insert_subnet(self, record: Subnet) -> None:
        resource = compute_v1.Subnetwork(
            **_compact(
                name=record.name,
                region=record.region,
                ip_cidr_range=record.ip_cidr_range,
                network=record.network,
                private_ip_google_access=record.private_ip_google_access,
                description=record.description,
            )
        )
        _wait(
            get_subnetworks_client().insert(
                project=self.project_id,
                region=record.region,
                subnetwork_resource=resource,
            )
        )

    @retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
    def _patch_subnet(self, record: Subnet, changes: dict[str, tuple[Any, Any]]) -> None:
        client = get_subnetworks_client()
        if "private_ip_google_access" in changes:
            request = compute_v1.SubnetworksSetPrivateIpGoogleAccessRequest(
                private_ip_google_access=record.private_ip_google_access
            )
            _wait(
                client.set_private_ip_google_access(
                    project=self.project_id,
                    region=record.region,
                    subnetwork=record.name,
                    subnetworks_set_private_ip_google_access_request_resource=request,
                )
            )
        if "description" in changes:
            # Patching a subnetwork requires its current fingerprint
            current = client.get(
                project=self.project_id, region=record.region, subnetwork=record.name
            )
            resource = compute_v1.Subnetwork(
                description=record.description or "",
                fingerprint=current.fingerprint,
            )
            _wait(
                client.patch(
                    project=self.project_id,
                    region=record.region,
                    subnetwork=record.name,
                    subnetwork_resource=resource,
                )
            )

    @retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
    def _read_subnet(self, name: str, region: str) -> dict[str, Any]:
        sn = get_subnetworks_client().get(
            project=self.project_id, region=region, subnetwork=name
        )
        return {
            "name": sn.name,
            "project_id": self.project_id,
            "region": sn.region.split("/")[-1] if sn.region else region,
            "ip_cidr_range": sn.ip_cidr_range,
            "network": _relative(sn.network),
            "private_ip_google_access": bool(sn.private_ip_google_access),
            "description": sn.description or None,
        }

    # Firewalls

    def _firewall_resource(self, record: FirewallRule) -> Any:
        return compute_v1.Firewall(
            **_compact(
                name=record.name,
                network=record.network,
                direction=record.direction,
                priority=record.priority,
                source_ranges=record.source_ranges,
                destination_ranges=record.destination_ranges,
                allowed=[
                    compute_v1.Allowed(I_p_protocol=a.protocol, ports=list(a.ports))
                    for a in record.allow
                ],
                target_tags=record.target_tags,
                source_tags=record.source_tags,
                destination_tags=record.destination_tags,
                description=record.description,
            )
        )

    @retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
    def _insert_firewall(self, record: FirewallRule) -> None:
        _wait(
            get_firewalls_client().insert(
                project=self.project_id, firewall_resource=self._firewall_resource(record)
            )
        )

    @retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
    def _patch_firewall(self, record: FirewallRule) -> None:
        _wait(
            get_firewalls_client().patch(
                project=self.project_id,
                firewall=record.name,
                firewall_resource=self._firewall_resource(record),
            )
        )

    @retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
    def _read_firewall(self, name: str) -> dict[str, Any]:
        fw = get_firewalls_client().get(project=self.project_id, firewall=name)
        return {
            "name": fw.name,
            "project_id": self.project_id,
            "network": _relative(fw.network),
            "direction": fw.direction,
            "priority": fw.priority,
            "allow": [
                {"protocol": a.I_p_protocol, "ports": list(a.ports)} for a in fw.allowed
            ],
            "target_tags": list(fw.target_tags),
            "source_tags": list(fw.source_tags),
            "destination_tags": list(fw.destination_tags),
            "description": fw.description or None,
            "source_ranges": list(fw.source_ranges),
            "destination_ranges": list(fw.destination_ranges),
        }

    # Routes

    @retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
    def _insert_route(self, record: Route) -> None:
        hop = record.next_hop
        resource = compute_v1.Route(
            **_compact(
                name=record.name,
                network=record.network,
                dest_range=record.dest_range,
                priority=record.priority,
                tags=record.tags,
                description=record.description,
                next_hop_gateway=(
                    self.gateway_ref(hop.gateway) if isinstance(hop, GatewayHop) else None
                ),
                next_hop_ip=hop.address if isinstance(hop, IpHop) else None,
            )
        )
        _wait(get_routes_client().insert(project=self.project_id, route_resource=resource))

    @retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
    def _read_route(self, name: str) -> dict[str, Any]:
        rt = get_routes_client().get(project=self.project_id, route=name)
        return {
            "name": rt.name,
            "project_id": self.project_id,
            "network": _relative(rt.network),
            "dest_range": rt.dest_range,
            "priority": rt.priority,
            "tags": list(rt.tags),
            "description": rt.description or None,
            "next_hop_gateway": _relative(rt.next_hop_gateway),
            "next_hop_ip": rt.next_hop_ip or None,
        }
