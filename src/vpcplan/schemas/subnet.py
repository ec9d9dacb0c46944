from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field

from .base import ResourceRecord


class SubnetSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    region: str = Field(min_length=1)
    ip_cidr_range: str = Field(min_length=1, description="Not checked for overlap")
    private_ip_google_access: bool = True
    description: str | None = None


class Subnet(ResourceRecord):
    kind: ClassVar[str] = "subnets"

    region: str
    ip_cidr_range: str
    network: str
    private_ip_google_access: bool
    description: str | None = None
