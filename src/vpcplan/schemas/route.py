from typing import Annotated, Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field

from ..core import MAX_PRIORITY, MIN_PRIORITY
from .base import ResourceRecord


class RouteSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    description: str | None = None
    dest_range: str = Field(min_length=1)
    priority: int = Field(ge=MIN_PRIORITY, le=MAX_PRIORITY)
    next_hop_gateway: str | None = None
    next_hop_ip: str | None = None
    tags: list[str] = Field(default_factory=list)


class GatewayHop(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["gateway"] = "gateway"
    gateway: str


class IpHop(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["ip"] = "ip"
    address: str


NextHop = Annotated[GatewayHop | IpHop, Field(discriminator="kind")]


class Route(ResourceRecord):
    kind: ClassVar[str] = "routes"

    network: str
    dest_range: str
    priority: int
    next_hop: NextHop
    tags: list[str] = Field(default_factory=list)
    description: str | None = None

    def attributes(self) -> dict[str, Any]:
        attrs = self.model_dump(mode="json", exclude={"self_link", "next_hop"})
        attrs["next_hop_gateway"] = (
            self.next_hop.gateway if isinstance(self.next_hop, GatewayHop) else None
        )
        attrs["next_hop_ip"] = (
            self.next_hop.address if isinstance(self.next_hop, IpHop) else None
        )
        return attrs
