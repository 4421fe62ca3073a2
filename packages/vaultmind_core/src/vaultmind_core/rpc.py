#!/usr/bin/env python3
"""JSON-RPC 2.0 front door exposing the tool registry to external callers."""

from __future__ import annotations

import json
from typing import Any

from vaultmind_core.classes import ActionResult
from vaultmind_core.common import get_logger
from vaultmind_core.config import get_config_value
from vaultmind_core.errors import ToolInputError
from vaultmind_core.permissions import Scope, ScopeAuthorizer
from vaultmind_core.tool_registry import ToolCallContext, ToolRegistry, validate_tool_input
from vaultmind_core.types import JsonRpcErrorPayload, JsonRpcResponse, ToolCallPayload

logging = get_logger(name="core.rpc")

JSON_RPC_VERSION = "2.0"
PROTOCOL_VERSION = "2025-06-18"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
MISSING_SCOPE = -32001
AUTH_ERROR = -32002


class RpcError(Exception):
    """JSON-RPC error with code, message, and optional data."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def to_dict(self) -> JsonRpcErrorPayload:
        payload: JsonRpcErrorPayload = {"code": self.code, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        return payload


def jsonrpc_error(request_id: str | int | None, error: RpcError) -> JsonRpcResponse:
    return {"jsonrpc": JSON_RPC_VERSION, "id": request_id, "error": error.to_dict()}


def jsonrpc_result(request_id: str | int | None, result: Any) -> JsonRpcResponse:
    return {"jsonrpc": JSON_RPC_VERSION, "id": request_id, "result": result}


def tool_call_payload(result: ActionResult) -> ToolCallPayload:
    """Wrap an action result in the `tools/call` result shape."""
    structured = result.to_dict()
    return {
        "content": [{"type": "text", "text": json.dumps(structured, indent=2, default=str)}],
        "structuredContent": structured,
        "isError": not result.success,
    }


def _request_id(request: Any) -> str | int | None:
    if isinstance(request, dict):
        value = request.get("id")
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            return value
    return None


class ProtocolFrontDoor:
    """Serve `initialize`, `ping`, `tools/list` and `tools/call` over JSON-RPC."""

    def __init__(
        self,
        registry: ToolRegistry,
        authorizer: ScopeAuthorizer,
        *,
        server_name: str = "vaultmind",
        server_version: str | None = None,
    ) -> None:
        """Initialize the front door."""
        self.registry = registry
        self.authorizer = authorizer
        self.server_name = server_name
        self.server_version = server_version or str(
            get_config_value("runtime", "version", default="0.0.0")
        )

    def parse(self, raw: str | bytes | dict[str, Any]) -> dict[str, Any]:
        """Decode and validate a request envelope, raising RpcError."""
        if isinstance(raw, (str, bytes, bytearray)):
            try:
                raw = json.loads(raw)
            except ValueError as exc:
                raise RpcError(PARSE_ERROR, "Invalid JSON payload") from exc
        if not isinstance(raw, dict):
            raise RpcError(INVALID_REQUEST, "Request must be a JSON object")
        if raw.get("jsonrpc") != JSON_RPC_VERSION:
            raise RpcError(INVALID_REQUEST, "jsonrpc must be '2.0'")
        if not isinstance(raw.get("method"), str) or not raw["method"]:
            raise RpcError(INVALID_REQUEST, "method must be a non-empty string")
        params = raw.get("params")
        if params is not None and not isinstance(params, dict):
            raise RpcError(INVALID_REQUEST, "params must be an object")
        return raw

    def authenticate(self, credential: str | None) -> frozenset[Scope]:
        scopes = self.authorizer.resolve_scopes(credential)
        if scopes is None:
            raise RpcError(AUTH_ERROR, "Missing or invalid credential")
        return scopes

    async def handle_payload(
        self, raw: str | bytes | dict[str, Any], credential: str | None
    ) -> JsonRpcResponse | None:
        """Handle a raw request body end to end. Returns None for notifications."""
        request: Any = raw if isinstance(raw, dict) else None
        try:
            request = self.parse(raw)
            scopes = self.authenticate(credential)
        except RpcError as exc:
            logging.info("Rejected RPC request: {} ({})", exc.message, exc.code)
            return jsonrpc_error(_request_id(request), exc)
        return await self.handle_request(request, scopes)

    async def handle_request(
        self, request: dict[str, Any], scopes: frozenset[Scope | str]
    ) -> JsonRpcResponse | None:
        """Dispatch a validated request for a caller holding ``scopes``."""
        request_id = _request_id(request)
        method = str(request.get("method", ""))
        params = request.get("params") or {}
        try:
            if method.startswith("notifications/"):
                return None
            if method == "initialize":
                return jsonrpc_result(request_id, self._initialize())
            if method == "ping":
                return jsonrpc_result(request_id, {"ok": True})
            if method == "tools/list":
                return jsonrpc_result(request_id, {"tools": self.registry.tool_catalog(scopes)})
            if method == "tools/call":
                return jsonrpc_result(request_id, await self._call_tool(params, scopes))
            raise RpcError(METHOD_NOT_FOUND, f"Method not found: {method}")
        except RpcError as exc:
            return jsonrpc_error(request_id, exc)
        except Exception as exc:
            logging.exception("RPC method {} failed", method)
            return jsonrpc_error(request_id, RpcError(INTERNAL_ERROR, str(exc) or "Internal error"))

    def _initialize(self) -> dict[str, Any]:
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "serverInfo": {"name": self.server_name, "version": self.server_version},
            "capabilities": {"tools": {}},
        }

    async def _call_tool(
        self, params: dict[str, Any], scopes: frozenset[Scope | str]
    ) -> ToolCallPayload:
        tool_name = params.get("name")
        if not tool_name or not isinstance(tool_name, str):
            raise RpcError(INVALID_PARAMS, "Missing tool name")
        descriptor = self.registry.get(tool_name)
        if descriptor is None:
            raise RpcError(INVALID_PARAMS, f"Unknown tool: {tool_name}")
        try:
            arguments = validate_tool_input(descriptor, params.get("arguments") or {})
        except ToolInputError as exc:
            raise RpcError(INVALID_PARAMS, str(exc), {"errors": exc.errors}) from exc
        missing = self.authorizer.missing_scopes(descriptor, scopes)
        if missing:
            logging.info("Denied {}: missing scopes {}", tool_name, missing)
            raise RpcError(
                MISSING_SCOPE,
                f"Missing required scopes for {tool_name}: {', '.join(missing)}",
                {"missingScopes": missing},
            )
        session_id = params.get("sessionId")
        context = ToolCallContext(
            scopes=frozenset(Scope(getattr(scope, "value", scope)) for scope in scopes),
            session_id=session_id if isinstance(session_id, str) else None,
        )
        try:
            result = await descriptor.handler(arguments, context)
        except Exception as exc:
            logging.exception("Tool {} failed for session {}", tool_name, context.session_id)
            result = ActionResult.failure(
                f"Something went wrong while running {tool_name}: {exc}",
                {"error": str(exc)},
            )
        if not isinstance(result, ActionResult):
            logging.error("Tool {} returned {!r} instead of an ActionResult", tool_name, result)
            result = ActionResult.failure(f"The {tool_name} tool returned an invalid result.")
        return tool_call_payload(result)


__all__ = [
    "AUTH_ERROR",
    "INTERNAL_ERROR",
    "INVALID_PARAMS",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "MISSING_SCOPE",
    "PARSE_ERROR",
    "PROTOCOL_VERSION",
    "ProtocolFrontDoor",
    "RpcError",
    "jsonrpc_error",
    "jsonrpc_result",
    "tool_call_payload",
]
