#!/usr/bin/env python3
"""Context window construction for the reasoning engine."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from vaultmind_core.classes import EngineMessage, Message, Role
from vaultmind_core.common import get_logger, num_tokens_from_string
from vaultmind_core.compaction import compress_tool_result, summarize_messages
from vaultmind_core.config import get_config_section

logging = get_logger(name="core.context")

SUMMARY_TOKEN_RESERVE = 200
SUMMARY_ACKNOWLEDGEMENT = "Understood, continuing from that context."

TokenCounter = Callable[[str], int]


@dataclass(frozen=True)
class ContextWindow:
    """Limits applied when building a context window."""

    recent_window_size: int = 6
    max_context_tokens: int = 4000
    max_tool_result_chars: int = 500
    include_summary: bool = True

    @classmethod
    def from_config(cls) -> ContextWindow:
        section = get_config_section("context")
        return cls(
            recent_window_size=int(section.get("recent_window_size", 6)),
            max_context_tokens=int(section.get("max_context_tokens", 4000)),
            max_tool_result_chars=int(section.get("max_tool_result_chars", 500)),
            include_summary=bool(section.get("include_summary", True)),
        )


@dataclass(frozen=True)
class ContextSnapshot:
    """Engine-ready messages plus bookkeeping about what was elided."""

    messages: tuple[EngineMessage, ...]
    summary: str | None
    token_estimate: int
    dropped_count: int


class ContextBuilder:
    """Build a bounded, deterministic context window from a transcript."""

    def __init__(
        self,
        window: ContextWindow | None = None,
        *,
        token_counter: TokenCounter | None = None,
    ) -> None:
        """Initialize the context builder."""
        self.window = window or ContextWindow.from_config()
        self._count = token_counter or num_tokens_from_string

    def build(self, messages: Sequence[Message]) -> ContextSnapshot:
        """Return the context snapshot for the given transcript."""
        window = self.window
        size = window.recent_window_size
        recent = list(messages[-size:]) if size > 0 else []
        older = list(messages[: len(messages) - len(recent)])

        recent_rendered = [EngineMessage(role=msg.role, content=msg.content) for msg in recent]
        recent_tokens = sum(self._count(msg.content) for msg in recent)
        reserve = SUMMARY_TOKEN_RESERVE if window.include_summary else 0
        budget = window.max_context_tokens - recent_tokens - reserve

        kept: list[EngineMessage] = []
        used = 0
        for message in reversed(older):
            content = message.content
            if message.action is not None:
                content = compress_tool_result(content, window.max_tool_result_chars)
            cost = self._count(content)
            if used + cost > budget:
                break
            kept.insert(0, EngineMessage(role=message.role, content=content))
            used += cost

        dropped = older[: len(older) - len(kept)]
        prefix: list[EngineMessage] = []
        summary: str | None = None
        if window.include_summary and dropped:
            summary = summarize_messages(dropped)
            prefix = [
                EngineMessage(role=Role.USER, content=summary),
                EngineMessage(role=Role.ASSISTANT, content=SUMMARY_ACKNOWLEDGEMENT),
            ]
            used += self._count(summary) + self._count(SUMMARY_ACKNOWLEDGEMENT)
        if dropped:
            logging.debug(
                "Context window elided {} of {} messages (summary={})",
                len(dropped),
                len(messages),
                summary is not None,
            )
        return ContextSnapshot(
            messages=tuple(prefix + kept + recent_rendered),
            summary=summary,
            token_estimate=used + recent_tokens,
            dropped_count=len(dropped),
        )


__all__ = [
    "ContextBuilder",
    "ContextSnapshot",
    "ContextWindow",
    "SUMMARY_ACKNOWLEDGEMENT",
]
