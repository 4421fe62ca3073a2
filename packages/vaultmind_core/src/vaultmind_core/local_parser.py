#!/usr/bin/env python3
"""Deterministic intent parser used when no reasoning engine is configured."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from vaultmind_core.agent_tools import CHAINS
from vaultmind_core.classes import Intent, ParsedAction
from vaultmind_core.common import get_logger
from vaultmind_core.config import get_config_value

logging = get_logger(name="core.local_parser")

_AMOUNT = r"(\d+(?:\.\d+)?|all|max)"
_TOKEN = r"(\$?[a-zA-Z][\w]{0,14}|0x[a-fA-F0-9]{40})"
_ADDRESS = r"(0x[a-fA-F0-9]+)"
_CHAIN = r"(?:\s+on\s+(" + "|".join(CHAINS) + r"))?"


@dataclass(frozen=True)
class _Rule:
    intent: Intent
    pattern: re.Pattern[str]
    extract: Callable[[re.Match[str]], dict[str, Any]]
    confidence: float = 0.9


def _token(value: str) -> str:
    value = value.strip().lstrip("$")
    return value if value.lower().startswith("0x") else value.upper()


def _swap(match: re.Match[str]) -> dict[str, Any]:
    params: dict[str, Any] = {
        "amount": match.group(1),
        "fromToken": _token(match.group(2)),
        "toToken": _token(match.group(3)),
    }
    if match.group(4):
        params["chain"] = match.group(4).lower()
    return params


def _buy(match: re.Match[str]) -> dict[str, Any]:
    params: dict[str, Any] = {
        "amount": match.group(1),
        "fromToken": _token(match.group(3)),
        "toToken": _token(match.group(2)),
    }
    if match.group(4):
        params["chain"] = match.group(4).lower()
    return params


def _send(match: re.Match[str]) -> dict[str, Any]:
    params: dict[str, Any] = {
        "amount": match.group(1),
        "token": _token(match.group(2)),
        "toAddress": match.group(3),
    }
    if match.group(4):
        params["chain"] = match.group(4).lower()
    return params


def _bridge(match: re.Match[str]) -> dict[str, Any]:
    params: dict[str, Any] = {
        "amount": match.group(1),
        "token": _token(match.group(2)),
        "toChain": match.group(4).lower(),
    }
    if match.group(3):
        params["fromChain"] = match.group(3).lower()
    return params


_CHAIN_NAMES = "|".join(CHAINS)

_RULES: tuple[_Rule, ...] = (
    _Rule(
        Intent.SWAP,
        re.compile(
            rf"\b(?:swap|trade|convert|sell)\s+{_AMOUNT}\s+{_TOKEN}"
            rf"\s+(?:for|to|into)\s+{_TOKEN}{_CHAIN}",
            re.I,
        ),
        _swap,
    ),
    _Rule(
        Intent.SWAP,
        re.compile(
            rf"\bbuy\s+{_AMOUNT}\s+(?:worth\s+of\s+)?{_TOKEN}\s+with\s+{_TOKEN}{_CHAIN}", re.I
        ),
        _buy,
    ),
    _Rule(
        Intent.BRIDGE,
        re.compile(
            rf"\bbridge\s+{_AMOUNT}\s+{_TOKEN}"
            rf"(?:\s+from\s+({_CHAIN_NAMES}))?\s+to\s+({_CHAIN_NAMES})",
            re.I,
        ),
        _bridge,
    ),
    _Rule(
        Intent.SEND,
        re.compile(
            rf"\b(?:send|transfer|pay)\s+{_AMOUNT}\s+{_TOKEN}\s+to\s+{_ADDRESS}{_CHAIN}", re.I
        ),
        _send,
    ),
    _Rule(
        Intent.PRICE,
        re.compile(rf"\b(?:price\s+(?:of\s+)?|how\s+much\s+is\s+){_TOKEN}", re.I),
        lambda match: {"token": _token(match.group(1))},
        0.85,
    ),
    _Rule(
        Intent.VERIFY_PROJECT,
        re.compile(
            r"\bverify\b.*?"
            r"((?:https?://)?(?:github\.com|x\.com|twitter\.com)/[\w./-]+|https?://\S+)",
            re.I,
        ),
        lambda match: {"link": match.group(1)},
    ),
    _Rule(
        Intent.LAUNCH_TOKEN,
        re.compile(
            r"\blaunch\s+(?:a\s+)?(?:new\s+)?token(?:\s+called\s+(\w+)(?:\s+\(\$?(\w+)\))?)?",
            re.I,
        ),
        lambda match: {
            key: value
            for key, value in (
                ("name", match.group(1)),
                ("symbol", match.group(2).upper() if match.group(2) else None),
            )
            if value
        },
        0.8,
    ),
    _Rule(
        Intent.CLAIM_REWARD,
        re.compile(r"\bclaim\b.*\b(?:rewards?|fees?)\b", re.I),
        lambda match: {},
        0.85,
    ),
    _Rule(
        Intent.POOL_STATUS,
        re.compile(r"\bpool\s+(?:status|info)\b", re.I),
        lambda match: {},
        0.8,
    ),
    _Rule(
        Intent.EXPORT_KEY,
        re.compile(r"\bexport\b.*\b(?:private\s+)?key\b", re.I),
        lambda match: {"action": "request"},
    ),
    _Rule(
        Intent.HISTORY,
        re.compile(
            r"\b(?:transaction\s+history|recent\s+transactions|my\s+transactions|history)\b",
            re.I,
        ),
        lambda match: {},
        0.8,
    ),
    _Rule(
        Intent.BALANCE,
        re.compile(r"\b(?:balances?|portfolio|holdings|how\s+much\s+do\s+i\s+have)\b", re.I),
        lambda match: {},
        0.85,
    ),
    _Rule(
        Intent.DEPOSIT,
        re.compile(r"\b(?:deposit|create\s+(?:a\s+|my\s+)?wallet|my\s+address|receive)\b", re.I),
        lambda match: {},
        0.8,
    ),
    _Rule(
        Intent.HELP,
        re.compile(r"^\s*(?:/?help|what\s+can\s+you\s+do|commands)\b", re.I),
        lambda match: {},
        1.0,
    ),
)


def parse_local_message(text: str) -> ParsedAction:
    """Parse a message into an action using the first matching rule."""
    raw = text or ""
    for rule in _RULES:
        match = rule.pattern.search(raw)
        if match is None:
            continue
        params = rule.extract(match)
        if rule.intent in {Intent.SWAP, Intent.SEND}:
            params.setdefault("chain", get_config_value("agent", "default_chain", default="base"))
        logging.debug("Local parser matched {} with {}", rule.intent.value, params)
        return ParsedAction(
            intent=rule.intent, params=params, confidence=rule.confidence, raw_text=raw
        )
    return ParsedAction(intent=Intent.UNKNOWN, params={}, confidence=0.0, raw_text=raw)


__all__ = ["parse_local_message"]
