#!/usr/bin/env python3
"""Token-risk oracle interface and the GoPlus-backed implementation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

import httpx

from vaultmind_core.common import get_logger
from vaultmind_core.config import get_config_value
from vaultmind_core.errors import OracleUnavailableError

logging = get_logger(name="core.security.oracle")

CHAIN_IDS: dict[str, str] = {
    "base": "8453",
    "ethereum": "1",
    "polygon": "137",
    "bsc": "56",
    "arbitrum": "42161",
    "optimism": "10",
}

HIGH_TAX_THRESHOLD = 0.10
MIN_HOLDER_COUNT = 10


class RiskLevel(str, Enum):
    SAFE = "safe"
    WARNING = "warning"
    DANGER = "danger"


@dataclass(frozen=True)
class TokenRiskAssessment:
    risk_level: RiskLevel
    reasons: list[str] = field(default_factory=list)


class TokenRiskOracle(Protocol):
    """Classifies a token contract on a chain."""

    async def assess(self, token_address: str, chain: str) -> TokenRiskAssessment:
        ...


def _flag(data: dict[str, Any], key: str) -> bool:
    return str(data.get(key, "")).strip() == "1"


def _ratio(data: dict[str, Any], key: str) -> float:
    try:
        return float(data.get(key) or 0)
    except (TypeError, ValueError):
        return 0.0


def classify_token_security(data: dict[str, Any]) -> TokenRiskAssessment:
    """Map a GoPlus token-security record to a risk assessment."""
    danger: list[str] = []
    warning: list[str] = []
    if _flag(data, "is_honeypot"):
        danger.append("Token is a honeypot (cannot sell)")
    if _flag(data, "is_blacklisted") or _flag(data, "is_airdrop_scam"):
        danger.append("Token flagged as malicious")
    if _flag(data, "can_take_back_ownership"):
        danger.append("Owner can reclaim ownership")
    if _flag(data, "hidden_owner"):
        warning.append("Hidden owner detected")
    if _flag(data, "selfdestruct"):
        warning.append("Contract can self-destruct")
    buy_tax = _ratio(data, "buy_tax")
    sell_tax = _ratio(data, "sell_tax")
    if buy_tax > HIGH_TAX_THRESHOLD or sell_tax > HIGH_TAX_THRESHOLD:
        warning.append(f"High tax: buy {buy_tax * 100:.1f}%, sell {sell_tax * 100:.1f}%")
    holder_count = data.get("holder_count")
    if holder_count is not None:
        try:
            if int(holder_count) < MIN_HOLDER_COUNT:
                warning.append(f"Very few holders ({int(holder_count)})")
        except (TypeError, ValueError):
            pass
    if danger:
        return TokenRiskAssessment(RiskLevel.DANGER, danger + warning)
    if warning:
        return TokenRiskAssessment(RiskLevel.WARNING, warning)
    return TokenRiskAssessment(RiskLevel.SAFE, [])


class GoPlusTokenOracle:
    """Query the GoPlus token-security API.

    Transport failures and non-2xx responses raise
    :class:`OracleUnavailableError`. Unknown chains and tokens missing from
    the GoPlus database produce a warning assessment.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the oracle client settings."""
        self.base_url = (
            base_url
            or get_config_value(
                "security", "oracle_base_url", default="https://api.gopluslabs.io/api/v1"
            )
        ).rstrip("/")
        self.timeout = float(
            timeout or get_config_value("security", "oracle_timeout", default=8.0)
        )
        self._transport = transport

    async def assess(self, token_address: str, chain: str) -> TokenRiskAssessment:
        chain_id = CHAIN_IDS.get(chain.lower())
        if chain_id is None:
            return TokenRiskAssessment(
                RiskLevel.WARNING, [f"Unsupported chain for token check: {chain}"]
            )
        address = token_address.lower()
        url = f"{self.base_url}/token_security/{chain_id}"
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout), transport=self._transport
            ) as client:
                response = await client.get(url, params={"contract_addresses": address})
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logging.warning("Token oracle request failed for {} on {}: {}", address, chain, exc)
            raise OracleUnavailableError(str(exc)) from exc
        result = payload.get("result") if isinstance(payload, dict) else None
        data = result.get(address) if isinstance(result, dict) else None
        if not isinstance(data, dict):
            return TokenRiskAssessment(RiskLevel.WARNING, ["Token not found in security database"])
        return classify_token_security(data)


__all__ = [
    "CHAIN_IDS",
    "GoPlusTokenOracle",
    "RiskLevel",
    "TokenRiskAssessment",
    "TokenRiskOracle",
    "classify_token_security",
]
