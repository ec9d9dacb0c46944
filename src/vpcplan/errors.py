"""vpcplan exceptions."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ConfigIssue:
    """One offending field in a declarative entry."""

    resource: str
    key: str | None
    field: str
    message: str

    def __str__(self) -> str:
        where = f"{self.resource}[{self.key!r}]" if self.key is not None else self.resource
        return f"{where}.{self.field}: {self.message}"


class VpcPlanError(Exception):
    """Base exception for vpcplan errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(VpcPlanError):
    """Declarative input is invalid. Raised before any remote operation."""

    def __init__(self, issues: list[ConfigIssue]) -> None:
        self.issues = list(issues)
        lines = "\n".join(f"  - {issue}" for issue in self.issues)
        super().__init__(f"{len(self.issues)} configuration error(s):\n{lines}")

    @classmethod
    def single(
        cls, resource: str, field: str, message: str, key: str | None = None
    ) -> "ConfigurationError":
        return cls([ConfigIssue(resource=resource, key=key, field=field, message=message)])


class RemoteRejectionError(VpcPlanError):
    """The Compute API refused an operation on a planned resource."""

    def __init__(
        self,
        address: str,
        message: str,
        code: int | None = None,
    ) -> None:
        self.address = address
        self.code = code
        detail = f" (HTTP {code})" if code else ""
        super().__init__(f"{address}: {message}{detail}")


class StateLockError(VpcPlanError):
    """The environment state is locked by another operation."""

    def __init__(self, message: str, lock_info: dict[str, Any] | None = None) -> None:
        self.lock_info = lock_info or {}
        super().__init__(message)
