from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict

NETWORK_KIND = "network"
DEPENDENT_KINDS = ("subnets", "firewall_rules", "routes")


def make_address(kind: str, key: str | None = None) -> str:
    """Builds a state address, e.g. `network` or `subnets["app"]`."""
    if kind == NETWORK_KIND:
        return NETWORK_KIND
    return f'{kind}["{key}"]'


class ResourceRecord(BaseModel):
    """A fully resolved resource, ready to be planned and applied."""

    model_config = ConfigDict(frozen=True)

    kind: ClassVar[str]

    name: str
    project_id: str
    self_link: str

    @property
    def address(self) -> str:
        return make_address(self.kind, self.name)

    def attributes(self) -> dict[str, Any]:
        """API-facing attribute view used for diffs, drift checks and state."""
        return self.model_dump(mode="json", exclude={"self_link"})
