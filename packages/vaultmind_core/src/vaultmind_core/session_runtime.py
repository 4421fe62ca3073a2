#!/usr/bin/env python3
"""Chat surface: one serialized turn per session message."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from vaultmind_core.action_runner import ActionRouter, screen_and_execute
from vaultmind_core.classes import ParsedAction, Role
from vaultmind_core.common import get_logger, get_system_prompt, session_log_context
from vaultmind_core.components import langfuse_session_context
from vaultmind_core.config import get_config_value
from vaultmind_core.context import ContextBuilder
from vaultmind_core.llm import ReasoningEngine
from vaultmind_core.local_parser import parse_local_message
from vaultmind_core.orchestrator import FALLBACK_MESSAGE, LoopState, ToolInvocationLoop
from vaultmind_core.permissions import ALL_SCOPES, Scope, ScopeAuthorizer
from vaultmind_core.security import SecurityContext, SecurityPipeline
from vaultmind_core.session_store import SessionStore
from vaultmind_core.tool_registry import ToolRegistry

logging = get_logger(name="core.session_runtime")


@dataclass(frozen=True)
class ChatReply:
    """What a chat turn returns to its caller."""

    session_id: str
    message: str
    state: LoopState
    iterations: int = 0
    actions: list[ParsedAction] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "session_id": self.session_id,
            "message": self.message,
            "state": self.state.value,
            "iterations": self.iterations,
            "actions": [
                {"intent": action.intent.value, "params": action.params}
                for action in self.actions
            ],
        }


class ChatService:
    """Drive a chat turn through the loop, or the local parser when offline."""

    def __init__(
        self,
        *,
        store: SessionStore,
        engine: ReasoningEngine,
        pipeline: SecurityPipeline,
        router: ActionRouter,
        registry: ToolRegistry,
        authorizer: ScopeAuthorizer | None = None,
        context_builder: ContextBuilder | None = None,
        loop: ToolInvocationLoop | None = None,
    ) -> None:
        """Initialize the chat service."""
        self.store = store
        self.engine = engine
        self.pipeline = pipeline
        self.router = router
        self.registry = registry
        self.authorizer = authorizer or ScopeAuthorizer()
        self.context_builder = context_builder or ContextBuilder()
        self.loop = loop or ToolInvocationLoop(engine, pipeline, router, registry)

    def resolve_scopes(
        self,
        credential: str | None = None,
        scopes: Iterable[Scope | str] | None = None,
    ) -> frozenset[str] | None:
        """Resolve the scope set of the party driving a turn.

        Explicit scopes win, then a credential. With neither, chat users get
        every scope. An unknown credential resolves to None.
        """
        if scopes is not None:
            return frozenset(getattr(scope, "value", scope) for scope in scopes)
        if credential:
            resolved = self.authorizer.resolve_scopes(credential)
            if resolved is None:
                return None
            return frozenset(scope.value for scope in resolved)
        return frozenset(scope.value for scope in ALL_SCOPES)

    def _system_prompt(self, wallet_address: str | None) -> str:
        return get_system_prompt(
            "agent-system",
            TOOL_NAMES=[descriptor.name for descriptor in self.registry.list_descriptors()],
            DEFAULT_CHAIN=get_config_value("agent", "default_chain", default="base"),
            WALLET_ADDRESS=wallet_address,
        )

    async def process_message(
        self,
        session_id: str,
        user_message: str,
        wallet_address: str | None = None,
        credential: str | None = None,
        scopes: Iterable[Scope | str] | None = None,
        platform: str = "web",
    ) -> ChatReply:
        """Process one user message. Turns in the same session never overlap."""
        async with self.store.turn_lock(session_id):
            with langfuse_session_context(session_id), session_log_context(session_id):
                return await self._process_locked(
                    session_id, user_message, wallet_address, credential, scopes, platform
                )

    async def _process_locked(
        self,
        session_id: str,
        user_message: str,
        wallet_address: str | None,
        credential: str | None,
        scopes: Iterable[Scope | str] | None,
        platform: str,
    ) -> ChatReply:
        session = self.store.get_or_create(session_id, platform=platform)
        if wallet_address:
            self.store.set_wallet(session_id, wallet_address)
        caller_scopes = self.resolve_scopes(credential, scopes)
        if caller_scopes is None:
            logging.warning("Unknown credential for session {}; no tools granted", session_id)
            caller_scopes = frozenset()
        bound = self.store.bind_scopes(session_id, caller_scopes) or frozenset()
        # A turn never exceeds either the session binding or the current caller.
        granted = bound & caller_scopes
        if granted != bound:
            logging.info("Narrowed scopes for session {} to the caller's grant", session_id)

        self.store.append(session_id, Role.USER, user_message)
        snapshot = self.context_builder.build(session.history())
        logging.debug(
            "Turn for {}: {} context messages (~{} tokens, {} dropped)",
            session_id,
            len(snapshot.messages),
            snapshot.token_estimate,
            snapshot.dropped_count,
        )

        if self.engine.is_available():
            outcome = await self.loop.run(
                snapshot.messages,
                user_message,
                session_id,
                self._system_prompt(session.wallet_address),
                allowed_scopes=granted,
            )
            reply = ChatReply(
                session_id=session_id,
                message=outcome.message,
                state=outcome.state,
                iterations=outcome.iterations,
                actions=list(outcome.actions),
            )
        else:
            reply = await self._process_offline(session_id, user_message, granted)

        last_action = reply.actions[-1] if reply.actions else None
        self.store.append(session_id, Role.ASSISTANT, reply.message, action=last_action)
        return reply

    async def _process_offline(
        self, session_id: str, user_message: str, granted: frozenset[str]
    ) -> ChatReply:
        action = parse_local_message(user_message)
        descriptor = next(
            (d for d in self.registry.list_descriptors() if d.intent is action.intent), None
        )
        if descriptor is not None:
            missing = ScopeAuthorizer.missing_scopes(descriptor, granted)
            if missing:
                message = f"This session is not allowed to use {descriptor.name}."
                return ChatReply(session_id=session_id, message=message, state=LoopState.DONE)
        result = await screen_and_execute(
            action,
            pipeline=self.pipeline,
            router=self.router,
            context=SecurityContext(user_message=user_message, session_id=session_id),
        )
        return ChatReply(
            session_id=session_id,
            message=result.message or FALLBACK_MESSAGE,
            state=LoopState.DONE,
            iterations=0,
            actions=[action],
        )


__all__ = ["ChatReply", "ChatService"]
