"""Tests for tool-result compression and extractive summaries."""

import json

from vaultmind_core.classes import Intent, Message, ParsedAction, Role
from vaultmind_core.compaction import (
    TRUNCATION_MARKER,
    compress_tool_result,
    extract_facts,
    summarize_messages,
)


def test_compress_tool_result_keeps_short_content():
    """Return content unchanged when it already fits."""
    assert compress_tool_result("ok", max_chars=10) == "ok"


def test_compress_tool_result_reduces_json_to_key_facts():
    """Keep identifying fields of oversized JSON payloads."""
    payload = {
        "success": True,
        "message": "Swap complete",
        "data": {
            "txHash": "0x" + "a" * 64,
            "amount": "0.1",
            "balances": [{"token": "ETH"}] * 50,
            "noise": "x" * 2000,
        },
    }
    compressed = compress_tool_result(json.dumps(payload), max_chars=300)
    facts = json.loads(compressed)
    assert facts["success"] is True
    assert facts["txHash"] == "0x" + "a" * 64
    assert facts["balances"] == "50 tokens"
    assert "noise" not in facts


def test_compress_tool_result_truncates_plain_text():
    """Cut non-JSON content and append the truncation marker."""
    compressed = compress_tool_result("y" * 100, max_chars=20)
    assert compressed == "y" * 20 + TRUNCATION_MARKER


def test_extract_facts_finds_known_patterns():
    """Pull swap, send and wallet facts in message order."""
    messages = [
        Message(role=Role.ASSISTANT, content="Swapped 0.1 ETH for 250 USDC on base."),
        Message(role=Role.ASSISTANT, content="Sent 5 USDC to 0x1234567890abcdef."),
        Message(role=Role.USER, content="my wallet is 0x" + "b" * 40),
    ]
    facts = extract_facts(messages)
    assert facts[0].startswith("Swapped 0.1 ETH for 250 USDC")
    assert facts[1].startswith("Sent 5 USDC to 0x1234567890abcdef")
    assert facts[2] == "Wallet 0x" + "b" * 40


def test_extract_facts_uses_action_for_unmatched_messages():
    """Fall back to intent plus first line for action-bearing replies."""
    action = ParsedAction(intent=Intent.POOL_STATUS)
    messages = [Message(role=Role.ASSISTANT, content="Pool is healthy\nmore", action=action)]
    assert extract_facts(messages) == ["pool_status: Pool is healthy"]


def test_extract_facts_dedupes_and_caps():
    """Skip duplicate facts and stop at the cap."""
    text = "Swapped 1 ETH for 2 USDC"
    messages = [Message(role=Role.ASSISTANT, content=text) for _ in range(3)]
    assert len(extract_facts(messages)) == 1
    many = [Message(role=Role.ASSISTANT, content=f"Swapped {i} ETH for 1 USDC") for i in range(9)]
    assert len(extract_facts(many, max_facts=5)) == 5


def test_summarize_messages_counts_when_no_facts():
    """Report the omitted count when nothing can be extracted."""
    messages = [Message(role=Role.USER, content="hi"), Message(role=Role.ASSISTANT, content="yo")]
    assert summarize_messages(messages) == "[Earlier context: 2 earlier messages omitted.]"


def test_summarize_messages_joins_facts():
    """Join extracted facts into one bracketed line."""
    messages = [Message(role=Role.ASSISTANT, content="Launched Nova ($NOVA) just now")]
    assert summarize_messages(messages) == "[Earlier context: Launched Nova ($NOVA)]"
