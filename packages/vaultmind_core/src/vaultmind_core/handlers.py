#!/usr/bin/env python3
"""Built-in handlers that need no wallet backend."""

from __future__ import annotations

from typing import Any

from vaultmind_core.classes import ActionResult

HELP_TEXT = """Here's what I can do:

- Swap tokens: "swap 0.1 ETH for USDC"
- Bridge tokens: "bridge 50 USDC from base to arbitrum"
- Send tokens: "send 10 USDC to 0x..."
- Check balances: "what's my balance?"
- Token prices: "price of ETH"
- Transaction history: "show my recent transactions"
- Verify a project: "verify github.com/org/repo"
- Launch a token: "launch a token called Nova (NOVA)"
- Pool status and rewards: "pool status for my project", "claim my rewards"
- Wallet: "create my wallet", "export my key"
"""

UNKNOWN_TEXT = (
    "I didn't quite catch that. Try asking for a swap, a balance, a price, "
    'or type "help" to see everything I can do.'
)


async def handle_help(params: dict[str, Any], session_id: str | None) -> ActionResult:
    return ActionResult(success=True, message=HELP_TEXT.strip())


async def handle_unknown(params: dict[str, Any], session_id: str | None) -> ActionResult:
    return ActionResult(success=False, message=UNKNOWN_TEXT)


__all__ = ["HELP_TEXT", "UNKNOWN_TEXT", "handle_help", "handle_unknown"]
