from typing import Annotated, Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core import MAX_PRIORITY, MIN_PRIORITY
from .base import ResourceRecord


class FirewallAllow(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    protocol: str = Field(min_length=1, description="tcp, udp, icmp, all, ...")
    ports: list[str] = Field(default_factory=list)

    @field_validator("ports", mode="before")
    @classmethod
    def _stringify_ports(cls, value: Any) -> Any:
        # YAML reads `443` as an int; the API wants strings like "443" or "8000-8080"
        if isinstance(value, list):
            return [str(p) for p in value]
        return value


class FirewallRuleSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    description: str | None = None
    direction: Literal["INGRESS", "EGRESS"]
    priority: int = Field(ge=MIN_PRIORITY, le=MAX_PRIORITY)
    ranges: list[str] = Field(min_length=1)
    allow: list[FirewallAllow] = Field(min_length=1)
    target_tags: list[str] = Field(default_factory=list)
    source_tags: list[str] = Field(default_factory=list)
    destination_tags: list[str] = Field(default_factory=list)


class SourceRanges(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["source"] = "source"
    ranges: list[str]


class DestinationRanges(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["destination"] = "destination"
    ranges: list[str]


RangeRole = Annotated[SourceRanges | DestinationRanges, Field(discriminator="role")]


class FirewallRule(ResourceRecord):
    kind: ClassVar[str] = "firewall_rules"

    network: str
    direction: Literal["INGRESS", "EGRESS"]
    priority: int
    range_role: RangeRole
    allow: list[FirewallAllow]
    target_tags: list[str] = Field(default_factory=list)
    source_tags: list[str] = Field(default_factory=list)
    destination_tags: list[str] = Field(default_factory=list)
    description: str | None = None

    @property
    def source_ranges(self) -> list[str]:
        if isinstance(self.range_role, SourceRanges):
            return list(self.range_role.ranges)
        return []

    @property
    def destination_ranges(self) -> list[str]:
        if isinstance(self.range_role, DestinationRanges):
            return list(self.range_role.ranges)
        return []

    def attributes(self) -> dict[str, Any]:
        attrs = self.model_dump(mode="json", exclude={"self_link", "range_role"})
        attrs["source_ranges"] = self.source_ranges
        attrs["destination_ranges"] = self.destination_ranges
        return attrs
