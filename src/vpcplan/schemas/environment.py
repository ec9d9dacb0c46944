from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class BackendConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    bucket: str | None = None
    prefix: str | None = None
    path: str | None = Field(default=None, description="Local state file")

    @model_validator(mode="after")
    def _one_store(self) -> "BackendConfig":
        if self.bucket and self.path:
            raise ValueError("set either bucket/prefix or path, not both")
        if self.bucket and not self.prefix:
            raise ValueError("prefix is required with bucket")
        if self.prefix and not self.bucket:
            raise ValueError("bucket is required with prefix")
        return self


class EnvironmentConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    environment: str = Field(min_length=1)
    project_id: str
    region: str | None = None
    network_name: str
    routing_mode: str | None = None
    description: str | None = None
    backend: BackendConfig | None = None
    subnets: dict[str, Any] = Field(default_factory=dict)
    firewall_rules: dict[str, Any] = Field(default_factory=dict)
    routes: dict[str, Any] = Field(default_factory=dict)

    # Where the file was loaded from; relative state paths resolve against it
    source: Path | None = Field(default=None, exclude=True)

    @field_validator("subnets", "firewall_rules", "routes", mode="before")
    @classmethod
    def _empty_map(cls, value: Any) -> Any:
        # `subnets:` with nothing under it loads as None
        return {} if value is None else value
