#!/usr/bin/env python3
"""Shared type definitions for core components."""

from __future__ import annotations

from typing import Any, TypedDict

from typing_extensions import NotRequired

JsonValue = str | int | float | bool | None | list[object] | dict[str, object]


class ActionResultPayload(TypedDict):
    """Serialized outcome of an action dispatch."""

    success: bool
    message: str
    data: NotRequired[dict[str, Any]]


class ActionPayload(TypedDict):
    intent: str
    params: dict[str, Any]


class MessagePayload(TypedDict):
    """Serialized session message."""

    role: str
    content: str
    timestamp: float
    action: NotRequired[ActionPayload]


class ToolCatalogEntry(TypedDict):
    """Tool description exposed to the engine and to protocol callers."""

    name: str
    description: str
    inputSchema: dict[str, Any]


class PipelinePayload(TypedDict):
    """Serialized security pipeline outcome."""

    passed: bool
    failed_check: str | None
    warnings: list[str]
    details: list[str]


class JsonRpcErrorPayload(TypedDict):
    code: int
    message: str
    data: NotRequired[Any]


class JsonRpcResponse(TypedDict):
    """JSON-RPC 2.0 response envelope."""

    jsonrpc: str
    id: str | int | None
    result: NotRequired[Any]
    error: NotRequired[JsonRpcErrorPayload]


class ToolCallPayload(TypedDict):
    """Result body of a `tools/call` request."""

    content: list[dict[str, str]]
    structuredContent: ActionResultPayload
    isError: bool


__all__ = [
    "ActionPayload",
    "ActionResultPayload",
    "JsonRpcErrorPayload",
    "JsonRpcResponse",
    "JsonValue",
    "MessagePayload",
    "PipelinePayload",
    "ToolCallPayload",
    "ToolCatalogEntry",
]
