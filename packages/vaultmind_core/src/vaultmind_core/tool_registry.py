#!/usr/bin/env python3
"""Tool descriptors, input-schema validation and the tool registry."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from vaultmind_core.classes import ActionResult, Intent
from vaultmind_core.common import get_logger
from vaultmind_core.errors import ToolInputError
from vaultmind_core.permissions import Scope
from vaultmind_core.types import ToolCatalogEntry

logging = get_logger(name="core.tool_registry")

_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "number": (int, float),
    "integer": (int,),
    "boolean": (bool,),
    "array": (list, tuple),
    "object": (dict,),
}


@dataclass(frozen=True)
class ToolCallContext:
    """Caller information passed to tool handlers."""

    scopes: frozenset[Scope] = frozenset()
    session_id: str | None = None
    user_message: str | None = None


ToolHandler = Callable[[dict[str, Any], ToolCallContext], Awaitable[ActionResult]]


@dataclass(frozen=True)
class ToolDescriptor:
    """Metadata and dispatch target for a tool exposed to callers."""

    name: str
    description: str
    input_schema: dict[str, Any]
    handler: ToolHandler
    required_scopes: frozenset[Scope] = field(default_factory=frozenset)
    intent: Intent | None = None

    def catalog_entry(self) -> ToolCatalogEntry:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


def _type_matches(value: Any, expected: str) -> bool:
    python_types = _JSON_TYPES.get(expected)
    if python_types is None:
        return True
    if expected in {"number", "integer"} and isinstance(value, bool):
        return False
    return isinstance(value, python_types)


def schema_errors(schema: Mapping[str, Any], payload: Any) -> list[str]:
    """Return validation errors for a payload against a flat object schema.

    Checks the object type, required fields, declared property types and
    enum membership. Extra properties are allowed.
    """
    if not isinstance(payload, Mapping):
        return ["Input must be an object."]
    errors: list[str] = []
    for name in schema.get("required", []) or []:
        if name not in payload or payload[name] is None:
            errors.append(f"Missing required field: {name}")
    properties = schema.get("properties", {}) or {}
    for name, value in payload.items():
        spec = properties.get(name)
        if not isinstance(spec, Mapping) or value is None:
            continue
        expected = spec.get("type")
        if isinstance(expected, str) and not _type_matches(value, expected):
            errors.append(f"Field '{name}' must be of type {expected}.")
            continue
        allowed = spec.get("enum")
        if isinstance(allowed, list) and value not in allowed:
            errors.append(f"Field '{name}' must be one of: {', '.join(map(str, allowed))}.")
    return errors


def validate_tool_input(descriptor: ToolDescriptor, payload: Any) -> dict[str, Any]:
    """Return a copy of the payload or raise ToolInputError."""
    errors = schema_errors(descriptor.input_schema, payload)
    if errors:
        raise ToolInputError(descriptor.name, errors)
    return dict(payload)


class ToolRegistry:
    """Registry of tools available to the engine and to protocol callers."""

    def __init__(self, descriptors: Iterable[ToolDescriptor] = ()) -> None:
        """Initialize the registry."""
        self._tools: dict[str, ToolDescriptor] = {}
        for descriptor in descriptors:
            self.register(descriptor)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def register(self, descriptor: ToolDescriptor) -> None:
        """Register a tool, replacing any previous one with the same name."""
        if descriptor.name in self._tools:
            logging.debug("Replacing tool registration for {}", descriptor.name)
        self._tools[descriptor.name] = descriptor

    def get(self, name: str) -> ToolDescriptor | None:
        return self._tools.get(name)

    def list_descriptors(self) -> list[ToolDescriptor]:
        return list(self._tools.values())

    def list_for_scopes(self, scopes: Iterable[Scope | str] | None) -> list[ToolDescriptor]:
        """List tools whose required scopes are all granted. None means unrestricted."""
        if scopes is None:
            return self.list_descriptors()
        granted = {getattr(scope, "value", scope) for scope in scopes}
        return [
            descriptor
            for descriptor in self._tools.values()
            if all(scope.value in granted for scope in descriptor.required_scopes)
        ]

    def tool_catalog(self, scopes: Iterable[Scope | str] | None = None) -> list[ToolCatalogEntry]:
        """Return the serialized catalog, optionally filtered by scopes."""
        return [descriptor.catalog_entry() for descriptor in self.list_for_scopes(scopes)]


__all__ = [
    "ToolCallContext",
    "ToolDescriptor",
    "ToolHandler",
    "ToolRegistry",
    "schema_errors",
    "validate_tool_input",
]
