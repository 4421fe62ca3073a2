#!/usr/bin/env python3
"""Standard security checks: prompt manipulation, address and token screens."""

from __future__ import annotations

import asyncio
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from vaultmind_core.classes import TOKEN_MOVING_INTENTS, ParsedAction
from vaultmind_core.common import get_logger
from vaultmind_core.errors import OracleUnavailableError
from vaultmind_core.security.oracle import RiskLevel, TokenRiskOracle
from vaultmind_core.security.pipeline import SecurityContext, SecurityResult

logging = get_logger(name="core.security.checks")

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
DEAD_ADDRESS = "0x000000000000000000000000000000000000dead"
DEFAULT_BLOCKED_ADDRESSES = frozenset({ZERO_ADDRESS, DEAD_ADDRESS})

ADDRESS_KEYS = (
    "to",
    "from",
    "address",
    "wallet",
    "walletAddress",
    "devAddress",
    "recipient",
    "toAddress",
    "tokenAddress",
)
TOKEN_ADDRESS_KEYS = ("tokenAddress", "token", "fromToken", "toToken")

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
_SUSPICIOUS_ADDRESS_PATTERNS = (re.compile(r"^0x0{30,}"), re.compile(r"^0xdead", re.I))


@dataclass(frozen=True)
class ManipulationPattern:
    label: str
    pattern: re.Pattern[str]
    critical: bool


def _pattern(label: str, regex: str, *, critical: bool) -> ManipulationPattern:
    return ManipulationPattern(label, re.compile(regex, re.IGNORECASE), critical)


MANIPULATION_PATTERNS: tuple[ManipulationPattern, ...] = (
    _pattern(
        "instruction override",
        r"ignore\s+(all\s+)?(previous|prior|above)\s+(instructions?|rules?|prompts?)",
        critical=True,
    ),
    _pattern(
        "memory wipe",
        r"forget\s+(everything|all|your)\s+(you|instructions?|rules?)",
        critical=True,
    ),
    _pattern("persona hijack", r"you\s+are\s+now\s+", critical=True),
    _pattern("persona override", r"act\s+as\s+(if|though)\s+you\s+(are|were)\s+", critical=False),
    _pattern("persona pretend", r"pretend\s+(you('re|\s+are)\s+|to\s+be\s+)", critical=False),
    _pattern("system prompt injection", r"new\s+(system\s+)?instructions?:", critical=True),
    _pattern("system role injection", r"\bsystem\s*:\s*", critical=True),
    _pattern(
        "prompt extraction",
        r"what\s+(are|is)\s+your\s+(system|initial|original)\s+(prompt|instructions?|rules?)",
        critical=False,
    ),
    _pattern(
        "prompt extraction",
        r"reveal\s+your\s+(prompt|instructions?|rules?|system)",
        critical=False,
    ),
    _pattern(
        "prompt extraction",
        r"show\s+me\s+your\s+(prompt|instructions?|config)",
        critical=False,
    ),
    _pattern(
        "prompt extraction",
        r"repeat\s+(the|your)\s+(system|above|initial)\s+(prompt|message|instructions?)",
        critical=False,
    ),
    _pattern(
        "fund drain attempt",
        r"send\s+(all|everything|my\s+entire)\s+(balance|funds|tokens?|eth|crypto)",
        critical=True,
    ),
    _pattern(
        "fund drain attempt",
        r"\b(send|transfer|move)\s+(all|everything)\s+(to|of)\b",
        critical=True,
    ),
    _pattern("fund drain attempt", r"send\s+all\s+my\s+", critical=True),
    _pattern("drain keyword", r"\bdrain", critical=False),
    _pattern("code injection", r"eval\s*\(", critical=True),
    _pattern("script injection", r"<script", critical=True),
    _pattern("template injection", r"\{\{.*\}\}", critical=False),
)


def detect_manipulation(text: str) -> list[ManipulationPattern]:
    """Return the distinct patterns matched by the text, in catalogue order."""
    matched: list[ManipulationPattern] = []
    seen: set[str] = set()
    for entry in MANIPULATION_PATTERNS:
        if entry.label in seen:
            continue
        if entry.pattern.search(text):
            matched.append(entry)
            seen.add(entry.label)
    return matched


class PromptManipulationCheck:
    """Regex screen of the raw user text for injection and drain attempts."""

    name = "prompt-manipulation"

    async def evaluate(self, action: ParsedAction, context: SecurityContext) -> SecurityResult:
        text = context.user_message or ""
        if not text.strip():
            return SecurityResult.clear()
        matches = detect_manipulation(text)
        if not matches:
            return SecurityResult.clear()
        details = [f"Prompt manipulation detected: {entry.label}" for entry in matches]
        if any(entry.critical for entry in matches):
            return SecurityResult.blocked("Prompt manipulation blocked", details)
        return SecurityResult.warned("; ".join(details), details)


def _candidate_addresses(params: Mapping[str, Any], keys: Iterable[str]) -> list[tuple[str, str]]:
    found: list[tuple[str, str]] = []
    for key in keys:
        value = params.get(key)
        if isinstance(value, str) and value.strip().lower().startswith("0x"):
            found.append((key, value.strip()))
    return found


def is_valid_address(value: str) -> bool:
    return bool(_ADDRESS_RE.match(value))


class AddressScreenCheck:
    """Screen address-like parameters against a blocklist and basic format rules."""

    name = "address-screen"

    def __init__(self, blocked_addresses: Iterable[str] | None = None) -> None:
        """Initialize the screen with extra blocked addresses."""
        extra = {address.strip().lower() for address in blocked_addresses or [] if address}
        self.blocked_addresses = frozenset(DEFAULT_BLOCKED_ADDRESSES | extra)

    async def evaluate(self, action: ParsedAction, context: SecurityContext) -> SecurityResult:
        warnings: list[str] = []
        for key, address in _candidate_addresses(action.params, ADDRESS_KEYS):
            if address.lower() in self.blocked_addresses:
                return SecurityResult.blocked(
                    f"Address blocked: {address[:10]}...",
                    [f"Address blocked: {address[:10]}... ({key})"],
                )
            if not is_valid_address(address):
                warnings.append(f"Invalid address format for {key}: {address[:12]}")
                continue
            if any(pattern.match(address) for pattern in _SUSPICIOUS_ADDRESS_PATTERNS):
                warnings.append(f"Suspicious address pattern for {key}: {address[:10]}...")
        if warnings:
            return SecurityResult.warned("; ".join(warnings), warnings)
        return SecurityResult.clear()


class TokenContractCheck:
    """Ask the token-risk oracle about contracts touched by value-moving intents."""

    name = "token-screen"

    def __init__(
        self,
        oracle: TokenRiskOracle,
        *,
        timeout: float = 8.0,
        unavailable_policy: str = "warn",
        default_chain: str = "base",
    ) -> None:
        """Initialize the screen around an oracle."""
        self.oracle = oracle
        self.timeout = timeout
        self.unavailable_policy = "block" if unavailable_policy == "block" else "warn"
        self.default_chain = default_chain

    def _token_addresses(self, params: Mapping[str, Any]) -> list[str]:
        addresses: list[str] = []
        for _, value in _candidate_addresses(params, TOKEN_ADDRESS_KEYS):
            if is_valid_address(value) and value.lower() not in {a.lower() for a in addresses}:
                addresses.append(value)
        return addresses

    def _unavailable(self, reason: str) -> SecurityResult:
        message = f"Token risk check unavailable ({reason}); proceed with caution"
        if self.unavailable_policy == "block":
            return SecurityResult.blocked(f"Token risk check unavailable ({reason})")
        return SecurityResult.warned(message)

    async def evaluate(self, action: ParsedAction, context: SecurityContext) -> SecurityResult:
        if action.intent not in TOKEN_MOVING_INTENTS:
            return SecurityResult.clear()
        addresses = self._token_addresses(action.params)
        if not addresses:
            return SecurityResult.clear()
        chain = str(action.params.get("chain") or self.default_chain).lower()
        warnings: list[str] = []
        for address in addresses:
            try:
                assessment = await asyncio.wait_for(
                    self.oracle.assess(address, chain), timeout=self.timeout
                )
            except asyncio.TimeoutError:
                logging.warning("Token oracle timed out for {} on {}", address, chain)
                result = self._unavailable("timed out")
                if not result.passed:
                    return result
                warnings.append(result.reason or "")
                continue
            except OracleUnavailableError as exc:
                result = self._unavailable(str(exc) or "oracle error")
                if not result.passed:
                    return result
                warnings.append(result.reason or "")
                continue
            if assessment.risk_level is RiskLevel.DANGER:
                return SecurityResult.blocked(
                    f"Dangerous token contract {address[:10]}...", list(assessment.reasons)
                )
            if assessment.risk_level is RiskLevel.WARNING:
                warnings.extend(assessment.reasons)
        if warnings:
            return SecurityResult.warned("; ".join(warnings), warnings)
        return SecurityResult.clear()


__all__ = [
    "ADDRESS_KEYS",
    "AddressScreenCheck",
    "DEAD_ADDRESS",
    "DEFAULT_BLOCKED_ADDRESSES",
    "MANIPULATION_PATTERNS",
    "ManipulationPattern",
    "PromptManipulationCheck",
    "TokenContractCheck",
    "ZERO_ADDRESS",
    "detect_manipulation",
    "is_valid_address",
]
