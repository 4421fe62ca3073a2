#!/usr/bin/env python3
"""Core data models shared by the chat surface and the protocol front door."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic.v1 import BaseModel, Field, validator

from vaultmind_core.types import ActionResultPayload, MessagePayload


class Intent(str, Enum):
    """Closed set of actions the agent can route."""

    SWAP = "swap"
    BRIDGE = "bridge"
    SEND = "send"
    BALANCE = "balance"
    HISTORY = "history"
    PRICE = "price"
    LAUNCH_TOKEN = "launch_token"
    VERIFY_PROJECT = "verify_project"
    CLAIM_REWARD = "claim_reward"
    POOL_STATUS = "pool_status"
    EXPORT_KEY = "export_key"
    DEPOSIT = "deposit"
    HELP = "help"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: object) -> Intent:
        """Return the matching intent, or UNKNOWN for anything unrecognised."""
        if isinstance(value, cls):
            return value
        normalized = str(value or "").strip().lower()
        try:
            return cls(normalized)
        except ValueError:
            return cls.UNKNOWN


TOKEN_MOVING_INTENTS = frozenset({Intent.SWAP, Intent.BRIDGE, Intent.SEND})


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ParsedAction(BaseModel):
    """A structured action proposed by the engine or the fallback parser."""

    intent: Intent = Intent.UNKNOWN
    params: dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(1.0, ge=0.0, le=1.0)
    raw_text: str = ""

    class Config:
        """Parsed actions are values once built."""

        allow_mutation = False

    @validator("intent", pre=True, always=True)
    def _normalize_intent(cls, value: Any) -> Intent:
        return Intent.parse(value)

    @validator("params", pre=True, always=True)
    def _normalize_params(cls, value: Any) -> dict[str, Any]:
        if value is None:
            return {}
        return dict(value)


class ActionResult(BaseModel):
    """Outcome of a handler dispatch, a security block, or a handler fault."""

    success: bool
    message: str
    data: dict[str, Any] | None = None

    @classmethod
    def failure(cls, message: str, data: dict[str, Any] | None = None) -> ActionResult:
        return cls(success=False, message=message, data=data)

    def to_dict(self) -> ActionResultPayload:
        payload: ActionResultPayload = {"success": self.success, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        return payload


@dataclass(frozen=True)
class Message:
    """A single conversation turn stored in a session."""

    role: Role
    content: str
    timestamp: float = field(default_factory=time.time)
    action: ParsedAction | None = None

    def to_dict(self) -> MessagePayload:
        payload: MessagePayload = {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.action is not None:
            payload["action"] = {
                "intent": self.action.intent.value,
                "params": self.action.params,
            }
        return payload


@dataclass
class Session:
    """Conversation state owned by the session store."""

    id: str
    platform: str = "web"
    messages: list[Message] = field(default_factory=list)
    wallet_address: str | None = None
    created_at: float = field(default_factory=time.time)
    scopes: frozenset[str] | None = None

    def history(self) -> tuple[Message, ...]:
        """Return a read-only snapshot of the transcript."""
        return tuple(self.messages)


class StopReason(str, Enum):
    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"
    OTHER = "other"

    @classmethod
    def parse(cls, value: object) -> StopReason:
        normalized = str(value or "").strip().lower()
        if normalized in {"end_turn", "stop", "stop_sequence", "complete"}:
            return cls.END_TURN
        if normalized in {"tool_use", "tool_calls", "function_call"}:
            return cls.TOOL_USE
        if normalized in {"max_tokens", "length"}:
            return cls.MAX_TOKENS
        return cls.OTHER


@dataclass(frozen=True)
class TextFragment:
    text: str


@dataclass(frozen=True)
class ToolInvocation:
    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)


ContentBlock = TextFragment | ToolInvocation


@dataclass(frozen=True)
class ToolResultBlock:
    """Result of one tool invocation, fed back to the engine."""

    tool_use_id: str
    content: str
    is_error: bool = False


@dataclass(frozen=True)
class EngineMessage:
    """Conversation entry in the shape the reasoning engine consumes."""

    role: Role
    content: str | tuple[ContentBlock | ToolResultBlock, ...]

    @property
    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return "".join(block.text for block in self.content if isinstance(block, TextFragment))


@dataclass(frozen=True)
class EngineResponse:
    """Reasoning engine reply: ordered content blocks plus a stop reason."""

    blocks: tuple[ContentBlock, ...] = ()
    stop_reason: StopReason = StopReason.END_TURN

    @property
    def text(self) -> str:
        return "".join(block.text for block in self.blocks if isinstance(block, TextFragment))

    @property
    def invocations(self) -> list[ToolInvocation]:
        return [block for block in self.blocks if isinstance(block, ToolInvocation)]


__all__ = [
    "ActionResult",
    "ContentBlock",
    "EngineMessage",
    "EngineResponse",
    "Intent",
    "Message",
    "ParsedAction",
    "Role",
    "Session",
    "StopReason",
    "TOKEN_MOVING_INTENTS",
    "TextFragment",
    "ToolInvocation",
    "ToolResultBlock",
]
