#!/usr/bin/env python3
"""Wallet tool catalogue shared by the engine loop and the protocol front door."""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from vaultmind_core.action_runner import ActionRouter, screen_and_execute
from vaultmind_core.classes import ActionResult, Intent, ParsedAction
from vaultmind_core.config import get_config_value
from vaultmind_core.permissions import Scope
from vaultmind_core.security import SecurityContext, SecurityPipeline
from vaultmind_core.tool_registry import ToolCallContext, ToolDescriptor, ToolRegistry

CHAINS = ["base", "ethereum", "polygon", "arbitrum", "optimism"]
DEFAULT_HISTORY_LIMIT = 10
MAX_HISTORY_LIMIT = 25

_CHAIN_PROPERTY = {
    "type": "string",
    "enum": CHAINS,
    "description": "Blockchain network (default: base)",
}

AGENT_TOOL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "name": "swap_tokens",
        "description": (
            "Swap one token for another on a DEX. Use for buy, sell, swap, trade requests."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "fromToken": {"type": "string", "description": "Token to sell (symbol or address)"},
                "toToken": {"type": "string", "description": "Token to buy (symbol or address)"},
                "amount": {"type": "string", "description": "Amount of fromToken to swap"},
                "chain": _CHAIN_PROPERTY,
            },
            "required": ["fromToken", "toToken", "amount"],
        },
    },
    {
        "name": "bridge_tokens",
        "description": "Move tokens from one chain to another.",
        "input_schema": {
            "type": "object",
            "properties": {
                "token": {"type": "string", "description": "Token symbol or address"},
                "amount": {"type": "string", "description": "Amount to bridge"},
                "fromChain": {"type": "string", "enum": CHAINS},
                "toChain": {"type": "string", "enum": CHAINS},
            },
            "required": ["token", "amount", "toChain"],
        },
    },
    {
        "name": "send_tokens",
        "description": "Send tokens to another wallet address.",
        "input_schema": {
            "type": "object",
            "properties": {
                "token": {"type": "string", "description": "Token symbol or address"},
                "amount": {"type": "string", "description": "Amount to send"},
                "toAddress": {"type": "string", "description": "Recipient wallet address"},
                "chain": _CHAIN_PROPERTY,
            },
            "required": ["token", "amount", "toAddress"],
        },
    },
    {
        "name": "check_balance",
        "description": "Check the wallet's token balances.",
        "input_schema": {
            "type": "object",
            "properties": {
                "chain": {"type": "string", "description": "Chain to check (optional)"},
                "token": {"type": "string", "description": "Specific token (optional)"},
            },
        },
    },
    {
        "name": "get_price",
        "description": "Get the current price of a token.",
        "input_schema": {
            "type": "object",
            "properties": {"token": {"type": "string", "description": "Token symbol or address"}},
            "required": ["token"],
        },
    },
    {
        "name": "get_transaction_history",
        "description": "Show the wallet's recent transactions.",
        "input_schema": {
            "type": "object",
            "properties": {
                "limit": {
                    "type": "number",
                    "description": "Number of transactions (default: 10, max: 25)",
                },
            },
        },
    },
    {
        "name": "verify_project",
        "description": "Start verification for a project via its GitHub, X or website link.",
        "input_schema": {
            "type": "object",
            "properties": {"link": {"type": "string", "description": "Project URL"}},
            "required": ["link"],
        },
    },
    {
        "name": "launch_token",
        "description": (
            "Launch a new token. Collect name, symbol, description and developer links, "
            "then call again with confirmed=true after the user agrees."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "symbol": {"type": "string"},
                "description": {"type": "string"},
                "isSelfLaunch": {"type": "boolean"},
                "devLinks": {"type": "array", "items": {"type": "string"}},
                "devAddress": {"type": "string"},
                "confirmed": {"type": "boolean"},
            },
            "required": ["name", "symbol", "description", "isSelfLaunch", "devLinks"],
        },
    },
    {
        "name": "claim_reward",
        "description": "Claim accumulated fee rewards for a verified project.",
        "input_schema": {
            "type": "object",
            "properties": {"projectId": {"type": "string"}},
        },
    },
    {
        "name": "pool_status",
        "description": "Check pool and fee status for a project.",
        "input_schema": {
            "type": "object",
            "properties": {"projectId": {"type": "string"}},
        },
    },
    {
        "name": "create_wallet",
        "description": "Create the user's wallet or show the deposit address.",
        "input_schema": {"type": "object", "properties": {}},
    },
    {
        "name": "export_key",
        "description": "Export the wallet's private key. Requires an explicit confirmation step.",
        "input_schema": {
            "type": "object",
            "properties": {"action": {"type": "string", "enum": ["request", "confirm"]}},
        },
    },
]

TOOL_TO_INTENT: dict[str, Intent] = {
    "swap_tokens": Intent.SWAP,
    "bridge_tokens": Intent.BRIDGE,
    "send_tokens": Intent.SEND,
    "check_balance": Intent.BALANCE,
    "get_price": Intent.PRICE,
    "get_transaction_history": Intent.HISTORY,
    "verify_project": Intent.VERIFY_PROJECT,
    "launch_token": Intent.LAUNCH_TOKEN,
    "claim_reward": Intent.CLAIM_REWARD,
    "pool_status": Intent.POOL_STATUS,
    "create_wallet": Intent.DEPOSIT,
    "export_key": Intent.EXPORT_KEY,
}

TOOL_SCOPES: dict[str, frozenset[Scope]] = {
    "swap_tokens": frozenset({Scope.TOKENS_MANAGE}),
    "bridge_tokens": frozenset({Scope.TOKENS_MANAGE}),
    "send_tokens": frozenset({Scope.TOKENS_MANAGE}),
    "export_key": frozenset({Scope.TOKENS_MANAGE}),
    "check_balance": frozenset({Scope.WALLET_READ}),
    "get_transaction_history": frozenset({Scope.WALLET_READ}),
    "create_wallet": frozenset({Scope.WALLET_READ}),
    "get_price": frozenset(),
    "verify_project": frozenset({Scope.VERIFY_WRITE}),
    "launch_token": frozenset({Scope.LAUNCH_WRITE}),
    "claim_reward": frozenset({Scope.CLAIM_WRITE}),
    "pool_status": frozenset({Scope.FEES_READ}),
}

_CHAIN_DEFAULT_INTENTS = frozenset({Intent.SWAP, Intent.SEND})


def tool_intent(tool_name: str) -> Intent:
    return TOOL_TO_INTENT.get(tool_name, Intent.UNKNOWN)


def _history_limit(value: Any) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_HISTORY_LIMIT
    if not math.isfinite(number):
        return DEFAULT_HISTORY_LIMIT
    return min(max(int(number), 1), MAX_HISTORY_LIMIT)


def map_tool_params(
    tool_name: str,
    tool_input: Mapping[str, Any],
    *,
    default_chain: str | None = None,
) -> dict[str, Any]:
    """Canonicalize tool input into handler parameters."""
    intent = tool_intent(tool_name)
    params = {key: value for key, value in tool_input.items() if value is not None}
    chain = default_chain or get_config_value("agent", "default_chain", default="base")
    if intent in _CHAIN_DEFAULT_INTENTS:
        params["chain"] = str(params.get("chain") or chain).lower()
    if intent is Intent.BRIDGE:
        params["fromChain"] = str(params.get("fromChain") or chain).lower()
    if intent is Intent.POOL_STATUS and "projectId" in params:
        params.setdefault("link", params["projectId"])
    if intent is Intent.EXPORT_KEY:
        params["action"] = params.get("action") or "request"
    if intent is Intent.HISTORY and "limit" in params:
        params["limit"] = _history_limit(params["limit"])
    for key in ("fromToken", "toToken", "token", "symbol"):
        value = params.get(key)
        if isinstance(value, str) and not value.lower().startswith("0x"):
            params[key] = value.strip().upper()
    return params


def build_action(
    tool_name: str,
    tool_input: Mapping[str, Any],
    *,
    raw_text: str = "",
    default_chain: str | None = None,
) -> ParsedAction:
    return ParsedAction(
        intent=tool_intent(tool_name),
        params=map_tool_params(tool_name, tool_input, default_chain=default_chain),
        confidence=1.0,
        raw_text=raw_text,
    )


def _screened_handler(tool_name: str, pipeline: SecurityPipeline, router: ActionRouter):
    async def _handle(arguments: dict[str, Any], context: ToolCallContext) -> ActionResult:
        action = build_action(tool_name, arguments, raw_text=context.user_message or "")
        return await screen_and_execute(
            action,
            pipeline=pipeline,
            router=router,
            context=SecurityContext(
                user_message=context.user_message, session_id=context.session_id
            ),
        )

    return _handle


def build_agent_registry(pipeline: SecurityPipeline, router: ActionRouter) -> ToolRegistry:
    """Build the registry of wallet tools, each screened before dispatch."""
    registry = ToolRegistry()
    for definition in AGENT_TOOL_DEFINITIONS:
        name = definition["name"]
        registry.register(
            ToolDescriptor(
                name=name,
                description=definition["description"],
                input_schema=definition["input_schema"],
                handler=_screened_handler(name, pipeline, router),
                required_scopes=TOOL_SCOPES.get(name, frozenset()),
                intent=tool_intent(name),
            )
        )
    return registry


__all__ = [
    "AGENT_TOOL_DEFINITIONS",
    "CHAINS",
    "TOOL_SCOPES",
    "TOOL_TO_INTENT",
    "build_action",
    "build_agent_registry",
    "map_tool_params",
    "tool_intent",
]
