"""Tests for tool descriptors, schema validation and the registry."""

import pytest

from vaultmind_core.classes import ActionResult
from vaultmind_core.errors import ToolInputError
from vaultmind_core.permissions import Scope
from vaultmind_core.tool_registry import (
    ToolDescriptor,
    ToolRegistry,
    schema_errors,
    validate_tool_input,
)

SCHEMA = {
    "type": "object",
    "properties": {
        "token": {"type": "string"},
        "limit": {"type": "number"},
        "confirmed": {"type": "boolean"},
        "chain": {"type": "string", "enum": ["base", "ethereum"]},
    },
    "required": ["token"],
}


async def _noop(arguments, context):
    return ActionResult(success=True, message="ok")


def _tool(name, scopes=()):
    return ToolDescriptor(
        name=name,
        description=f"{name} tool",
        input_schema=SCHEMA,
        handler=_noop,
        required_scopes=frozenset(scopes),
    )


def test_schema_errors_accepts_valid_payload():
    """Allow valid payloads, including extra properties."""
    assert schema_errors(SCHEMA, {"token": "ETH", "limit": 5, "extra": object()}) == []


def test_schema_errors_reports_each_problem():
    """Report missing fields, wrong types and enum misses."""
    errors = schema_errors(SCHEMA, {"limit": "five", "confirmed": 1, "chain": "solana"})
    assert errors == [
        "Missing required field: token",
        "Field 'limit' must be of type number.",
        "Field 'confirmed' must be of type boolean.",
        "Field 'chain' must be one of: base, ethereum.",
    ]


def test_schema_errors_rejects_booleans_for_numbers():
    """Do not accept True where a number is expected."""
    assert schema_errors(SCHEMA, {"token": "ETH", "limit": True}) == [
        "Field 'limit' must be of type number."
    ]


def test_schema_errors_requires_object():
    """Reject non-object payloads outright."""
    assert schema_errors(SCHEMA, ["token"]) == ["Input must be an object."]


def test_validate_tool_input_raises_with_errors():
    """Raise ToolInputError carrying every validation error."""
    with pytest.raises(ToolInputError) as excinfo:
        validate_tool_input(_tool("get_price"), {})
    assert excinfo.value.tool_name == "get_price"
    assert excinfo.value.errors == ["Missing required field: token"]
    assert validate_tool_input(_tool("get_price"), {"token": "ETH"}) == {"token": "ETH"}


def test_registry_lists_tools_by_scope():
    """Filter the catalogue down to tools the caller may use."""
    registry = ToolRegistry(
        [
            _tool("get_price"),
            _tool("check_balance", {Scope.WALLET_READ}),
            _tool("swap_tokens", {Scope.TOKENS_MANAGE}),
        ]
    )
    assert [tool.name for tool in registry.list_for_scopes({Scope.WALLET_READ})] == [
        "get_price",
        "check_balance",
    ]
    assert [tool.name for tool in registry.list_for_scopes(["tokens:manage"])] == [
        "get_price",
        "swap_tokens",
    ]
    assert len(registry.list_for_scopes(None)) == 3
    assert [entry["name"] for entry in registry.tool_catalog(frozenset())] == ["get_price"]


def test_registry_replaces_and_serializes_entries():
    """Replace a tool by name and expose the wire catalogue shape."""
    registry = ToolRegistry([_tool("get_price")])
    replacement = _tool("get_price", {Scope.FEES_READ})
    registry.register(replacement)
    assert len(registry) == 1
    assert registry.get("get_price") is replacement
    assert "get_price" in registry
    assert registry.get("missing") is None
    assert registry.tool_catalog() == [
        {"name": "get_price", "description": "get_price tool", "inputSchema": SCHEMA}
    ]
