#!/usr/bin/env python3
"""Bounded tool-invocation loop driving the reasoning engine."""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from vaultmind_core.action_runner import ActionRouter, screen_and_execute
from vaultmind_core.agent_tools import build_action
from vaultmind_core.classes import (
    ActionResult,
    EngineMessage,
    ParsedAction,
    Role,
    StopReason,
    ToolInvocation,
    ToolResultBlock,
)
from vaultmind_core.common import get_logger
from vaultmind_core.config import get_config_value
from vaultmind_core.errors import ToolInputError
from vaultmind_core.llm import ReasoningEngine
from vaultmind_core.permissions import Scope, ScopeAuthorizer
from vaultmind_core.security import SecurityContext, SecurityPipeline
from vaultmind_core.tool_registry import ToolRegistry, validate_tool_input

logging = get_logger(name="core.orchestrator")

FALLBACK_MESSAGE = "I ran into an issue processing that. Could you try again?"


class LoopState(str, Enum):
    ITERATING = "iterating"
    DONE = "done"
    EXHAUSTED = "exhausted"


@dataclass
class LoopOutcome:
    """Terminal state of one loop run and everything it executed."""

    state: LoopState
    message: str
    iterations: int
    actions: list[ParsedAction] = field(default_factory=list)
    results: list[ActionResult] = field(default_factory=list)

    @property
    def last_action(self) -> ParsedAction | None:
        return self.actions[-1] if self.actions else None


class ToolInvocationLoop:
    """Propose, screen, execute and feed back, for at most ``max_iterations`` rounds."""

    def __init__(
        self,
        engine: ReasoningEngine,
        pipeline: SecurityPipeline,
        router: ActionRouter,
        registry: ToolRegistry,
        *,
        max_iterations: int | None = None,
        max_output_tokens: int | None = None,
        default_chain: str | None = None,
    ) -> None:
        """Initialize the loop with its collaborators and bounds."""
        self.engine = engine
        self.pipeline = pipeline
        self.router = router
        self.registry = registry
        self.max_iterations = int(
            max_iterations or get_config_value("agent", "max_iterations", default=5)
        )
        self.max_output_tokens = int(
            max_output_tokens or get_config_value("agent", "max_output_tokens", default=1024)
        )
        self.default_chain = default_chain or get_config_value(
            "agent", "default_chain", default="base"
        )

    async def run(
        self,
        context_messages: Sequence[EngineMessage],
        user_message: str,
        session_id: str | None,
        system_prompt: str,
        allowed_scopes: Iterable[Scope | str] | None = None,
    ) -> LoopOutcome:
        """Run the loop for one user turn.

        ``context_messages`` must already end with the user's message. The
        loop appends its own assistant and tool-result turns to a private
        copy. ``allowed_scopes`` of None means every tool may be used.
        """
        scopes = frozenset(allowed_scopes) if allowed_scopes is not None else None
        messages = list(context_messages)
        catalog = self.registry.tool_catalog(scopes)
        outcome = LoopOutcome(state=LoopState.ITERATING, message="", iterations=0)

        while outcome.iterations < self.max_iterations:
            outcome.iterations += 1
            try:
                response = await self.engine.generate(
                    messages,
                    system_prompt=system_prompt,
                    tools=catalog,
                    max_output_tokens=self.max_output_tokens,
                )
            except Exception as exc:
                logging.exception(
                    "Reasoning engine failed on iteration {} for session {}: {}",
                    outcome.iterations,
                    session_id,
                    exc,
                )
                outcome.state = LoopState.EXHAUSTED
                outcome.message = FALLBACK_MESSAGE
                return outcome

            invocations = response.invocations
            if not invocations:
                outcome.state = LoopState.DONE
                outcome.message = response.text.strip() or FALLBACK_MESSAGE
                return outcome

            result_blocks: list[ToolResultBlock] = []
            for invocation in invocations:
                result = await self._invoke(invocation, user_message, session_id, scopes, outcome)
                outcome.results.append(result)
                result_blocks.append(
                    ToolResultBlock(
                        tool_use_id=invocation.id,
                        content=json.dumps(result.to_dict(), default=str),
                        is_error=not result.success,
                    )
                )
            messages.append(EngineMessage(role=Role.ASSISTANT, content=response.blocks))
            messages.append(EngineMessage(role=Role.USER, content=tuple(result_blocks)))

            if response.stop_reason is StopReason.END_TURN and response.text.strip():
                outcome.state = LoopState.DONE
                outcome.message = response.text.strip()
                return outcome

        logging.warning(
            "Tool loop exhausted after {} iterations for session {}",
            outcome.iterations,
            session_id,
        )
        outcome.state = LoopState.EXHAUSTED
        outcome.message = FALLBACK_MESSAGE
        return outcome

    async def _invoke(
        self,
        invocation: ToolInvocation,
        user_message: str,
        session_id: str | None,
        scopes: frozenset[Scope | str] | None,
        outcome: LoopOutcome,
    ) -> ActionResult:
        descriptor = self.registry.get(invocation.name)
        if descriptor is None:
            logging.warning("Engine proposed unknown tool {}", invocation.name)
            return ActionResult.failure(f"Unknown tool: {invocation.name}")
        try:
            arguments = validate_tool_input(descriptor, invocation.input)
        except ToolInputError as exc:
            logging.info("Rejected input for {}: {}", invocation.name, exc.errors)
            return ActionResult.failure(str(exc), {"errors": list(exc.errors)})
        if scopes is not None:
            missing = ScopeAuthorizer.missing_scopes(descriptor, scopes)
            if missing:
                logging.info("Tool {} denied; missing scopes {}", invocation.name, missing)
                return ActionResult.failure(
                    f"This session is not allowed to use {invocation.name}.",
                    {"missingScopes": missing},
                )
        action = build_action(
            invocation.name,
            arguments,
            raw_text=user_message,
            default_chain=self.default_chain,
        )
        outcome.actions.append(action)
        return await screen_and_execute(
            action,
            pipeline=self.pipeline,
            router=self.router,
            context=SecurityContext(user_message=user_message, session_id=session_id),
        )


__all__ = [
    "FALLBACK_MESSAGE",
    "LoopOutcome",
    "LoopState",
    "ToolInvocationLoop",
]
