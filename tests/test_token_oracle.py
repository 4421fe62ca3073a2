"""Tests for the GoPlus token oracle client and risk classification."""

import asyncio

import httpx
import pytest

from vaultmind_core.errors import OracleUnavailableError
from vaultmind_core.security.oracle import (
    GoPlusTokenOracle,
    RiskLevel,
    classify_token_security,
)

TOKEN = "0x" + "Cd" * 20


def _oracle(handler):
    return GoPlusTokenOracle(
        "https://oracle.test/api/v1/",
        timeout=2,
        transport=httpx.MockTransport(handler),
    )


def test_classify_token_security_levels():
    """Map honeypots to danger, taxes and owners to warnings."""
    assert classify_token_security({}).risk_level is RiskLevel.SAFE
    honeypot = classify_token_security({"is_honeypot": "1", "hidden_owner": "1"})
    assert honeypot.risk_level is RiskLevel.DANGER
    assert honeypot.reasons == ["Token is a honeypot (cannot sell)", "Hidden owner detected"]
    taxed = classify_token_security({"buy_tax": "0.2", "sell_tax": "0.05", "holder_count": "3"})
    assert taxed.risk_level is RiskLevel.WARNING
    assert taxed.reasons == ["High tax: buy 20.0%, sell 5.0%", "Very few holders (3)"]


def test_assess_queries_chain_endpoint_with_lowercase_address():
    """Request the chain-specific endpoint and classify the record."""
    seen = []

    def handler(request):
        seen.append(request)
        address = request.url.params["contract_addresses"]
        return httpx.Response(200, json={"code": 1, "result": {address: {"selfdestruct": "1"}}})

    assessment = asyncio.run(_oracle(handler).assess(TOKEN, "Base"))
    assert assessment.risk_level is RiskLevel.WARNING
    assert assessment.reasons == ["Contract can self-destruct"]
    assert seen[0].url.path == "/api/v1/token_security/8453"
    assert seen[0].url.params["contract_addresses"] == TOKEN.lower()


def test_assess_warns_for_unsupported_chain():
    """Warn without a request for chains the oracle does not cover."""

    def handler(request):
        raise AssertionError("no request expected")

    assessment = asyncio.run(_oracle(handler).assess(TOKEN, "solana"))
    assert assessment.risk_level is RiskLevel.WARNING
    assert assessment.reasons == ["Unsupported chain for token check: solana"]


def test_assess_warns_when_token_missing():
    """Warn when the database has no record for the token."""

    def handler(request):
        return httpx.Response(200, json={"code": 1, "result": {}})

    assessment = asyncio.run(_oracle(handler).assess(TOKEN, "ethereum"))
    assert assessment.risk_level is RiskLevel.WARNING
    assert assessment.reasons == ["Token not found in security database"]


def test_assess_raises_on_http_error():
    """Surface non-2xx responses as an unavailable oracle."""

    def handler(request):
        return httpx.Response(503, text="maintenance")

    with pytest.raises(OracleUnavailableError):
        asyncio.run(_oracle(handler).assess(TOKEN, "base"))


def test_assess_raises_on_transport_error():
    """Surface connection failures as an unavailable oracle."""

    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(OracleUnavailableError):
        asyncio.run(_oracle(handler).assess(TOKEN, "base"))
