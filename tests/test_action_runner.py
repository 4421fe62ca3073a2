"""Tests for intent routing and screened dispatch."""

import asyncio

from vaultmind_core.action_runner import ActionRouter, blocked_result, screen_and_execute
from vaultmind_core.classes import ActionResult, Intent, ParsedAction
from vaultmind_core.handlers import HELP_TEXT, UNKNOWN_TEXT
from vaultmind_core.security import (
    PipelineResult,
    SecurityContext,
    SecurityPipeline,
    SecurityResult,
)


class StaticCheck:
    """Check with a fixed verdict."""

    def __init__(self, name, result):
        """Initialize the check."""
        self.name = name
        self.result = result

    async def evaluate(self, action, context):
        return self.result


def test_builtin_help_and_unknown_handlers():
    """Answer help and unknown intents without registration."""
    router = ActionRouter()
    help_result = asyncio.run(router.execute(Intent.HELP))
    assert help_result.success is True
    assert help_result.message == HELP_TEXT.strip()
    unknown = asyncio.run(router.execute("gibberish"))
    assert unknown.success is False
    assert unknown.message == UNKNOWN_TEXT


def test_missing_handler_reports_unavailable():
    """Fail gracefully for intents without a handler."""
    result = asyncio.run(ActionRouter().execute(Intent.CLAIM_REWARD, {}))
    assert result.success is False
    assert result.message == "The claim reward action is not available right now."
    bare = ActionRouter(include_builtins=False)
    fallback = asyncio.run(bare.execute(Intent.UNKNOWN))
    assert fallback.message == "I'm not sure how to help with that."


def test_handler_receives_params_and_session():
    """Pass a copy of the params and the session id to the handler."""
    seen = {}

    async def handler(params, session_id):
        seen["params"] = params
        seen["session_id"] = session_id
        return ActionResult(success=True, message="1.5 ETH")

    router = ActionRouter({Intent.BALANCE: handler})
    params = {"chain": "base"}
    result = asyncio.run(router.execute("balance", params, raw_user_text="bal?", session_id="s9"))
    assert result.message == "1.5 ETH"
    assert seen == {"params": {"chain": "base"}, "session_id": "s9"}
    assert seen["params"] is not params


def test_handler_exception_becomes_failure():
    """Convert handler exceptions into failure results."""

    async def handler(params, session_id):
        raise RuntimeError("rpc down")

    router = ActionRouter({Intent.PRICE: handler})
    result = asyncio.run(router.execute(Intent.PRICE, {"token": "ETH"}))
    assert result.success is False
    assert "rpc down" in result.message
    assert result.data == {"error": "rpc down"}


def test_handler_returning_wrong_type_becomes_failure():
    """Reject handler return values that are not ActionResult."""

    async def handler(params, session_id):
        return {"success": True}

    router = ActionRouter({Intent.PRICE: handler})
    result = asyncio.run(router.execute(Intent.PRICE))
    assert result.success is False
    assert result.message == "The price handler returned an invalid result."


def test_blocked_result_matches_failure_shape():
    """Report blocks with the same shape as handler failures."""
    result = blocked_result(
        PipelineResult(passed=False, failed_check="address-screen", details=["Address blocked"])
    )
    assert isinstance(result, ActionResult)
    assert result.success is False
    assert set(result.to_dict()) == {"success", "message", "data"}
    assert result.data == {
        "blocked": True,
        "failedCheck": "address-screen",
        "details": ["Address blocked"],
        "warnings": [],
    }


def test_screen_and_execute_skips_handler_when_blocked():
    """Never dispatch a blocked action."""
    calls = []

    async def handler(params, session_id):
        calls.append(params)
        return ActionResult(success=True, message="sent")

    pipeline = SecurityPipeline([StaticCheck("deny", SecurityResult.blocked("no"))])
    router = ActionRouter({Intent.SEND: handler})
    action = ParsedAction(intent=Intent.SEND, params={"amount": "1"})
    result = asyncio.run(screen_and_execute(action, pipeline=pipeline, router=router))
    assert result.success is False
    assert result.data["failedCheck"] == "deny"
    assert calls == []


def test_screen_and_execute_prepends_warnings():
    """Prefix the handler message with the warning notice."""

    async def handler(params, session_id):
        return ActionResult(success=True, message="sent", data={"txHash": "0xabc"})

    pipeline = SecurityPipeline([StaticCheck("careful", SecurityResult.warned("new address"))])
    router = ActionRouter({Intent.SEND: handler})
    action = ParsedAction(intent=Intent.SEND, params={"amount": "1"})
    result = asyncio.run(
        screen_and_execute(
            action, pipeline=pipeline, router=router, context=SecurityContext(session_id="s1")
        )
    )
    assert result.success is True
    assert result.message.startswith("Security screen: warning\n\n- new address")
    assert result.message.endswith("\n\nsent")
    assert result.data == {"txHash": "0xabc", "warnings": ["new address"]}
