from collections.abc import Mapping
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from ..errors import ConfigIssue, ConfigurationError

SpecT = TypeVar("SpecT", bound=BaseModel)


def _describe(error: dict[str, Any]) -> str:
    if error["type"] == "missing":
        return "required field is missing"
    if error["type"] == "extra_forbidden":
        return "unknown field"
    return str(error["msg"])


def require_parent(resource: str, project_id: str, network_name: str) -> None:
    """Dependents must be attached to a named network in a named project."""
    issues = []
    if not project_id or not project_id.strip():
        issues.append(ConfigIssue(resource, None, "project_id", "must not be empty"))
    if not network_name or not network_name.strip():
        issues.append(ConfigIssue(resource, None, "network_name", "must not be empty"))
    if issues:
        raise ConfigurationError(issues)


def validate_entries(
    resource: str, spec_model: type[SpecT], entries: Mapping[str, Any] | None
) -> dict[str, SpecT]:
    """
    Validates every entry of a keyed map before anything is resolved.
    All problems across the batch are collected into one ConfigurationError.
    """
    if entries is None:
        return {}
    if not isinstance(entries, Mapping):
        raise ConfigurationError.single(
            resource,
            "<map>",
            f"expected a mapping keyed by name, got {type(entries).__name__}",
        )

    issues: list[ConfigIssue] = []
    specs: dict[str, SpecT] = {}
    for key, raw in entries.items():
        if not isinstance(key, str) or not key.strip():
            issues.append(ConfigIssue(resource, str(key), "<key>", "must be a non-empty string"))
            continue
        if isinstance(raw, spec_model):
            specs[key] = raw
            continue
        if not isinstance(raw, Mapping):
            issues.append(
                ConfigIssue(resource, key, "<entry>", f"expected a mapping, got {type(raw).__name__}")
            )
            continue
        try:
            specs[key] = spec_model.model_validate(dict(raw))
        except ValidationError as e:
            for error in e.errors():
                field = ".".join(str(p) for p in error["loc"]) or "<entry>"
                issues.append(ConfigIssue(resource, key, field, _describe(error)))

    if issues:
        raise ConfigurationError(issues)
    return specs
