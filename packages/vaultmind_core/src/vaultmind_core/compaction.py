#!/usr/bin/env python3
"""Transcript compaction utilities."""
from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from typing import Any

from vaultmind_core.classes import Message, Role
from vaultmind_core.common import get_logger

logging = get_logger(name="core.compaction")

TRUNCATION_MARKER = "... [truncated]"
_KEY_FIELDS = ("txHash", "address", "amount", "token", "error")
_FACT_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("Swapped", re.compile(r"\bswapped\s+([\d.,]+\s+\w+\s+(?:for|to)\s+[\d.,]*\s*\w+)", re.I)),
    ("Sent", re.compile(r"\bsent\s+([\d.,]+\s+\w+\s+to\s+0x[a-fA-F0-9]{6,})", re.I)),
    ("Balance", re.compile(r"\bbalance(?:\s+is|:)\s+([^\n.]{1,60})", re.I)),
    ("Verified", re.compile(r"\bverif(?:ied|ication)\b[^\n]*?\b(\w[\w.-]*\.\w{2,})", re.I)),
    ("Launched", re.compile(r"\blaunched\s+(\$?\w+(?:\s+\(\$?\w+\))?)", re.I)),
    ("Wallet", re.compile(r"\bwallet(?:\s+address)?(?:\s+is|:)?\s+(0x[a-fA-F0-9]{40})", re.I)),
    ("Project", re.compile(r"(https?://(?:github\.com|x\.com|twitter\.com)/[\w./-]+)", re.I)),
)


def _key_facts(payload: Mapping[str, Any]) -> dict[str, Any]:
    facts: dict[str, Any] = {}
    for key in ("success", "message"):
        if key in payload:
            value = payload[key]
            facts[key] = value[:150] if isinstance(value, str) else value
    data = payload.get("data")
    sources = [payload, data] if isinstance(data, Mapping) else [payload]
    for source in sources:
        for key in _KEY_FIELDS:
            if key in source and key not in facts:
                facts[key] = source[key]
        balances = source.get("balances")
        if isinstance(balances, list):
            facts["balances"] = f"{len(balances)} tokens"
        transactions = source.get("transactions")
        if isinstance(transactions, list):
            facts["transactions"] = f"{len(transactions)} transactions"
        quote = source.get("quote")
        if isinstance(quote, Mapping):
            facts["quote"] = {
                key: quote[key] for key in ("fromAmount", "toAmount", "rate") if key in quote
            }
        for key in ("price", "verificationId"):
            if key in source and key not in facts:
                facts[key] = source[key]
    return facts


def compress_tool_result(content: str, max_chars: int = 500) -> str:
    """Reduce a tool-result payload to at most ``max_chars`` of key facts.

    JSON objects are reduced to their identifying fields (transaction hash,
    amounts, errors, counts). Anything else, or a reduction that still does
    not fit, is cut with a truncation marker.
    """
    if len(content) <= max_chars:
        return content
    try:
        payload = json.loads(content)
    except ValueError:
        payload = None
    if isinstance(payload, Mapping):
        reduced = json.dumps(_key_facts(payload), ensure_ascii=True, separators=(",", ":"))
        if len(reduced) <= max_chars:
            return reduced
    return content[:max_chars] + TRUNCATION_MARKER


def extract_facts(messages: Iterable[Message], max_facts: int = 5) -> list[str]:
    """Pull short factual statements out of older messages, in order."""
    facts: list[str] = []
    seen: set[str] = set()
    for message in messages:
        candidates: list[str] = []
        for label, pattern in _FACT_PATTERNS:
            for match in pattern.finditer(message.content):
                candidates.append(f"{label} {match.group(1).strip()}")
        if message.role is Role.ASSISTANT and message.action is not None and not candidates:
            first_line = message.content.strip().splitlines()[0] if message.content.strip() else ""
            if first_line:
                candidates.append(f"{message.action.intent.value}: {first_line[:80]}")
        for fact in candidates:
            key = fact.lower()
            if key in seen:
                continue
            seen.add(key)
            facts.append(fact)
            if len(facts) >= max_facts:
                return facts
    return facts


def summarize_messages(messages: Iterable[Message], max_facts: int = 5) -> str:
    """Generate a deterministic extractive summary of elided messages.

    Args:
        messages: Messages that no longer fit into the context window.
        max_facts: Maximum number of facts to keep.

    Returns:
        A single bracketed summary line.
    """
    items = list(messages)
    facts = extract_facts(items, max_facts=max_facts)
    if not facts:
        return f"[Earlier context: {len(items)} earlier messages omitted.]"
    return f"[Earlier context: {'; '.join(facts)}]"


__all__ = [
    "TRUNCATION_MARKER",
    "compress_tool_result",
    "extract_facts",
    "summarize_messages",
]
