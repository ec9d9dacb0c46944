from typing import ClassVar, Literal

from pydantic import Field

from .base import NETWORK_KIND, ResourceRecord


class Network(ResourceRecord):
    kind: ClassVar[str] = NETWORK_KIND

    routing_mode: Literal["GLOBAL", "REGIONAL"] = "GLOBAL"
    auto_create_subnetworks: Literal[False] = Field(
        default=False, description="Always False: subnets are declared explicitly"
    )
    description: str | None = None
    ref: str = Field(description="projects/{project}/global/networks/{name}")

    @property
    def network_self_link(self) -> str:
        return self.self_link

    @property
    def network_name(self) -> str:
        return self.name
