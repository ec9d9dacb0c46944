import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from ..core import STATE_VERSION
from .base import DEPENDENT_KINDS, NETWORK_KIND


class ResourceState(BaseModel):
    kind: str
    key: str
    self_link: str
    attributes: dict[str, Any] = Field(default_factory=dict)


class LockInfo(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    operation: str
    who: str
    created: datetime
    path: str


class StateDocument(BaseModel):
    version: int = STATE_VERSION
    serial: int = 0
    lineage: str = Field(default_factory=lambda: str(uuid.uuid4()))
    environment: str
    resources: dict[str, ResourceState] = Field(default_factory=dict)
    outputs: dict[str, Any] = Field(default_factory=dict)

    def compute_outputs(self) -> dict[str, Any]:
        """Outputs derived from what has actually been applied."""
        network = self.resources.get(NETWORK_KIND)
        outputs: dict[str, Any] = {
            "network_self_link": network.self_link if network else None,
            "network_name": network.key if network else None,
        }
        for kind in DEPENDENT_KINDS:
            outputs[kind] = {
                res.key: res.self_link
                for res in self.resources.values()
                if res.kind == kind
            }
        return outputs
