"""Declared operation schemas loaded from operations.yaml."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from jsonschema.exceptions import SchemaError
from pydantic import BaseModel, Field, field_validator

from aws_audit_guard.utils.jsonschema import check_schema

# Parameters that identify the target resource when an operation does not
# declare its own ``resource`` keys.
DEFAULT_RESOURCE_KEYS: tuple[str, ...] = (
    "Bucket",
    "Key",
    "TableName",
    "FunctionName",
    "QueueUrl",
    "TopicArn",
    "InstanceId",
    "InstanceIds",
    "DBInstanceIdentifier",
    "RoleName",
    "UserName",
    "SecretId",
    "Name",
)


class OperationSpec(BaseModel):
    operation: str
    schema_: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object"}, alias="schema"
    )
    resource: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    @field_validator("schema_")
    @classmethod
    def _validate_schema(cls, value: dict[str, Any]) -> dict[str, Any]:
        try:
            check_schema(value)
        except SchemaError as exc:
            raise ValueError(f"Invalid JSON Schema: {exc.message}") from exc
        return value

    @field_validator("resource", mode="before")
    @classmethod
    def _validate_resource(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return list(value)


class OperationRegistry:
    """Lookup of declared operation specs by service and operation name."""

    def __init__(self, specs: Mapping[str, Mapping[str, OperationSpec]] | None = None) -> None:
        self._specs: dict[str, dict[str, OperationSpec]] = {
            service.lower(): dict(ops) for service, ops in (specs or {}).items()
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> OperationRegistry:
        services = data.get("services") or {}
        if not isinstance(services, Mapping):
            raise ValueError("'services' must be a mapping of service name to operations")
        specs: dict[str, dict[str, OperationSpec]] = {}
        for service, operations in services.items():
            specs[str(service)] = {
                str(name): OperationSpec.model_validate({"operation": name, **(body or {})})
                for name, body in (operations or {}).items()
            }
        return cls(specs)

    def register(self, service: str, spec: OperationSpec) -> None:
        self._specs.setdefault(service.lower(), {})[spec.operation] = spec

    def get(self, service: str, operation: str) -> OperationSpec | None:
        return self._specs.get(service.lower(), {}).get(operation)

    def services(self) -> list[str]:
        return sorted(self._specs)


def load_operations(path: str) -> OperationRegistry:
    """Load operations.yaml; a missing file yields an empty registry."""
    ops_path = Path(path)
    if not ops_path.exists():
        return OperationRegistry()
    with ops_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    return OperationRegistry.from_mapping(data)


def describe_resource(
    service: str,
    region: str | None,
    operation: str,
    params: Mapping[str, Any],
    keys: list[str] | None = None,
) -> str:
    """Build ``service:region:<identifying values>`` from request parameters."""
    if keys:
        parts = [_resource_part(params[key]) for key in keys if _present(params.get(key))]
    else:
        parts = []
        for key in DEFAULT_RESOURCE_KEYS:
            if _present(params.get(key)):
                parts.append(_resource_part(params[key]))
                if key == "Bucket" and _present(params.get("Key")):
                    parts.append(_resource_part(params["Key"]))
                break
    target = "/".join(parts) if parts else operation
    return f"{service}:{region or '-'}:{target}"


def _present(value: Any) -> bool:
    return value is not None and value != "" and value != []


def _resource_part(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ",".join(str(item) for item in value)
    return str(value)
