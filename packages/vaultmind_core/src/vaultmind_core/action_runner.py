#!/usr/bin/env python3
"""Route screened actions to intent handlers."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from vaultmind_core.classes import ActionResult, Intent, ParsedAction
from vaultmind_core.common import format_action_argument, get_logger
from vaultmind_core.handlers import handle_help, handle_unknown
from vaultmind_core.security import (
    PipelineResult,
    SecurityContext,
    SecurityPipeline,
    format_screen_message,
)

logging = get_logger(name="core.action_runner")

ActionHandler = Callable[[dict[str, Any], str | None], Awaitable[ActionResult]]


class ActionRouter:
    """Map intents to async handlers and convert handler faults into failures."""

    def __init__(
        self,
        handlers: Mapping[Intent, ActionHandler] | None = None,
        *,
        include_builtins: bool = True,
    ) -> None:
        """Initialize the router with optional handlers."""
        self._handlers: dict[Intent, ActionHandler] = {}
        if include_builtins:
            self._handlers[Intent.HELP] = handle_help
            self._handlers[Intent.UNKNOWN] = handle_unknown
        for intent, handler in (handlers or {}).items():
            self.register(intent, handler)

    def register(self, intent: Intent | str, handler: ActionHandler) -> None:
        """Register or replace the handler for an intent."""
        self._handlers[Intent.parse(intent)] = handler

    def handler_for(self, intent: Intent) -> ActionHandler | None:
        return self._handlers.get(intent)

    def registered_intents(self) -> list[Intent]:
        return list(self._handlers)

    async def execute(
        self,
        intent: Intent | str,
        params: Mapping[str, Any] | None = None,
        raw_user_text: str | None = None,
        session_id: str | None = None,
    ) -> ActionResult:
        """Dispatch to the intent's handler. Never raises.

        ``raw_user_text`` is only used for diagnostics; handlers receive the
        canonical parameters and the session id.
        """
        intent = Intent.parse(intent)
        handler = self._handlers.get(intent)
        if handler is None:
            if intent is Intent.UNKNOWN:
                return ActionResult.failure("I'm not sure how to help with that.")
            logging.warning(
                "No handler registered for intent {} (text: {!r})", intent.value, raw_user_text
            )
            return ActionResult.failure(
                f"The {intent.value.replace('_', ' ')} action is not available right now."
            )
        payload = dict(params or {})
        try:
            result = await handler(payload, session_id)
        except Exception as exc:
            logging.exception(
                "Handler for {} failed with params {}",
                intent.value,
                format_action_argument(payload),
            )
            return ActionResult.failure(
                f"Something went wrong while running {intent.value}: {exc}",
                {"error": str(exc)},
            )
        if not isinstance(result, ActionResult):
            logging.error(
                "Handler for {} returned {} instead of ActionResult",
                intent.value,
                type(result).__name__,
            )
            return ActionResult.failure(f"The {intent.value} handler returned an invalid result.")
        return result


def blocked_result(result: PipelineResult) -> ActionResult:
    """Build the failure result reported when the pipeline blocks an action."""
    return ActionResult.failure(
        format_screen_message(result),
        {
            "blocked": True,
            "failedCheck": result.failed_check,
            "details": list(result.details),
            "warnings": list(result.warnings),
        },
    )


async def screen_and_execute(
    action: ParsedAction,
    *,
    pipeline: SecurityPipeline,
    router: ActionRouter,
    context: SecurityContext | None = None,
) -> ActionResult:
    """Screen an action, then dispatch it when the pipeline passes.

    Warnings from passing checks are prepended to the handler's message.
    """
    context = context or SecurityContext()
    screen = await pipeline.run(action, context)
    if not screen.passed:
        return blocked_result(screen)
    result = await router.execute(
        action.intent,
        action.params,
        raw_user_text=action.raw_text or context.user_message,
        session_id=context.session_id,
    )
    if screen.warnings:
        notice = format_screen_message(screen)
        data = dict(result.data or {})
        data["warnings"] = list(screen.warnings)
        result = ActionResult(
            success=result.success,
            message=f"{notice}\n\n{result.message}",
            data=data,
        )
    return result


__all__ = [
    "ActionHandler",
    "ActionRouter",
    "blocked_result",
    "screen_and_execute",
]
