#!/usr/bin/env python3
"""Reasoning engine adapter built on ChatLiteLLM."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterable, Sequence
from typing import Any, Protocol, cast

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage

from vaultmind_core.classes import (
    ContentBlock,
    EngineMessage,
    EngineResponse,
    Role,
    StopReason,
    TextFragment,
    ToolInvocation,
    ToolResultBlock,
)
from vaultmind_core.common import get_logger
from vaultmind_core.components import build_langfuse_handler, current_langfuse_session
from vaultmind_core.config import get_config_value
from vaultmind_core.types import ToolCatalogEntry

logging = get_logger(name="core.llm")


class ChatModel(Protocol):
    """Protocol for LangChain-compatible chat models."""

    def bind_tools(self, tools: Sequence[dict[str, Any]], **kwargs: object) -> ChatModel:
        """Return a model that may emit tool calls."""

    async def ainvoke(
        self, input_data: object, config: object | None = None, **kwargs: object
    ) -> object:
        """Invoke the model asynchronously."""


class ReasoningEngine(Protocol):
    """Produces text and tool invocations for a conversation."""

    def is_available(self) -> bool:
        ...

    async def generate(
        self,
        messages: Sequence[EngineMessage],
        *,
        system_prompt: str,
        tools: Sequence[ToolCatalogEntry],
        max_output_tokens: int,
    ) -> EngineResponse:
        ...


def _normalize_model_list(raw: object) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, list):
        return [str(item).strip().lower() for item in raw if str(item).strip()]
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            return []
        return [entry.strip().lower() for entry in raw.split(",") if entry.strip()]
    return []


def _matches_model_list(model_name: str, entries: Iterable[str]) -> bool:
    for entry in entries:
        if entry.endswith("*") and model_name.startswith(entry[:-1]):
            return True
        if model_name == entry:
            return True
    return False


def model_supports_reasoning_effort(model_name: str | None) -> bool:
    """Return True if the model is known to support reasoning_effort."""
    if not model_name:
        return False
    normalized = model_name.lower()
    allowlist = _normalize_model_list(
        get_config_value("llm", "reasoning_effort_models", default=[])
    )
    if _matches_model_list(normalized, allowlist):
        return True
    return normalized.startswith("gpt-5")


def resolve_reasoning_effort(model_name: str | None) -> str | None:
    """Resolve the reasoning effort to use for a model."""
    configured = get_config_value("llm", "reasoning_effort", default="")
    if isinstance(configured, str) and configured.strip():
        return configured.strip().lower()
    if not model_supports_reasoning_effort(model_name):
        return None
    return "low"


def allows_temperature(model_name: str | None, reasoning_effort: str | None) -> bool:
    """Return True when temperature can be sent for the model/effort combo."""
    if not model_name:
        return True
    normalized = model_name.lower()
    if not normalized.startswith("gpt-5"):
        return True
    if normalized.startswith(("gpt-5.1", "gpt-5.2")):
        return reasoning_effort == "none"
    return False


def _resolve_litellm_model(model_name: str, openai_api_base: str | None) -> str:
    if "/" in model_name:
        return model_name
    if openai_api_base:
        return f"openai/{model_name}"
    return model_name


def build_chat_model(
    model_name: str,
    temperature: float,
    *,
    openai_api_base: str | None = None,
    api_key: str | None = None,
    max_tokens: int | None = None,
) -> ChatModel:
    """Build a ChatLiteLLM model with reasoning-effort compatibility."""
    from langchain_litellm import ChatLiteLLM

    reasoning_effort = resolve_reasoning_effort(model_name)
    allow_temp = allows_temperature(model_name, reasoning_effort)
    if not allow_temp:
        logging.info(
            "Omitting temperature for model '{}' with reasoning_effort '{}'.",
            model_name,
            reasoning_effort,
        )
        temperature_value: float | None = None
    else:
        temperature_value = temperature

    model_kwargs: dict[str, Any] = {}
    if reasoning_effort is not None:
        model_kwargs["reasoning_effort"] = reasoning_effort

    kwargs: dict[str, Any] = {
        "model": _resolve_litellm_model(model_name, openai_api_base),
    }
    if openai_api_base:
        kwargs["api_base"] = openai_api_base
    if api_key:
        kwargs["api_key"] = api_key
    if temperature_value is not None:
        kwargs["temperature"] = temperature_value
    if max_tokens:
        kwargs["max_tokens"] = max_tokens
    if model_kwargs:
        kwargs["model_kwargs"] = model_kwargs

    return cast(ChatModel, ChatLiteLLM(**kwargs))


def to_langchain_messages(
    messages: Sequence[EngineMessage], system_prompt: str | None = None
) -> list[BaseMessage]:
    """Convert engine messages into LangChain chat messages."""
    converted: list[BaseMessage] = []
    if system_prompt:
        converted.append(SystemMessage(content=system_prompt))
    for message in messages:
        if isinstance(message.content, str):
            if message.role is Role.USER:
                converted.append(HumanMessage(content=message.content))
            else:
                converted.append(AIMessage(content=message.content))
            continue
        if message.role is Role.ASSISTANT:
            tool_calls = [
                {"name": block.name, "args": dict(block.input), "id": block.id, "type": "tool_call"}
                for block in message.content
                if isinstance(block, ToolInvocation)
            ]
            converted.append(AIMessage(content=message.text, tool_calls=tool_calls))
            continue
        for block in message.content:
            if isinstance(block, ToolResultBlock):
                converted.append(
                    ToolMessage(
                        content=block.content,
                        tool_call_id=block.tool_use_id,
                        status="error" if block.is_error else "success",
                    )
                )
            elif isinstance(block, TextFragment) and block.text:
                converted.append(HumanMessage(content=block.text))
    return converted


def _text_blocks(content: object) -> list[TextFragment]:
    if isinstance(content, str):
        return [TextFragment(content)] if content else []
    blocks: list[TextFragment] = []
    if isinstance(content, list):
        for item in content:
            if isinstance(item, str) and item:
                blocks.append(TextFragment(item))
            elif isinstance(item, dict) and item.get("type") == "text" and item.get("text"):
                blocks.append(TextFragment(str(item["text"])))
    return blocks


def from_langchain_response(response: object) -> EngineResponse:
    """Convert a LangChain AI message into an engine response."""
    if not isinstance(response, AIMessage):
        return EngineResponse(blocks=(TextFragment(str(response)),), stop_reason=StopReason.OTHER)
    blocks: list[ContentBlock] = list(_text_blocks(response.content))
    for index, call in enumerate(response.tool_calls or []):
        args = call.get("args") or {}
        if isinstance(args, str):
            try:
                args = json.loads(args)
            except ValueError:
                args = {}
        blocks.append(
            ToolInvocation(
                id=str(call.get("id") or f"call_{index}"),
                name=str(call.get("name") or ""),
                input=dict(args) if isinstance(args, dict) else {},
            )
        )
    metadata = response.response_metadata or {}
    reported = metadata.get("finish_reason") or metadata.get("stop_reason")
    if reported:
        stop_reason = StopReason.parse(reported)
    elif response.tool_calls:
        stop_reason = StopReason.TOOL_USE
    else:
        stop_reason = StopReason.OTHER
    return EngineResponse(blocks=tuple(blocks), stop_reason=stop_reason)


def _catalog_to_openai_tools(tools: Sequence[ToolCatalogEntry]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool["description"],
                "parameters": tool["inputSchema"],
            },
        }
        for tool in tools
    ]


class LiteLLMReasoningEngine:
    """Reasoning engine backed by a LangChain ChatLiteLLM model."""

    def __init__(
        self,
        model: ChatModel | None = None,
        *,
        model_name: str | None = None,
        timeout: float | None = None,
    ) -> None:
        """Initialize the engine. The model is built lazily when not provided."""
        self._model = model
        self.model_name = cast(
            str,
            model_name
            or get_config_value("llm", "agent_model")
            or get_config_value("llm", "default_model", default="gpt-5.2"),
        )
        self.timeout = float(timeout or get_config_value("agent", "llm_timeout", default=60.0))

    def is_available(self) -> bool:
        if self._model is not None:
            return True
        return bool(get_config_value("llm", "api_key") or get_config_value("llm", "api_base"))

    def _resolve_model(self, max_output_tokens: int) -> ChatModel:
        if self._model is None:
            self._model = build_chat_model(
                model_name=self.model_name,
                temperature=float(get_config_value("llm", "temperature", default=0.3)),
                openai_api_base=get_config_value("llm", "api_base") or None,
                api_key=get_config_value("llm", "api_key") or None,
                max_tokens=max_output_tokens,
            )
        return self._model

    def _callbacks(self) -> list[object]:
        session_id = current_langfuse_session() or "vaultmind-agent"
        handler = build_langfuse_handler(
            user_id=session_id,
            session_id=session_id,
            trace_name="vaultmind-agent-turn",
            version=get_config_value("runtime", "version", default="Not Specified"),
            release=get_config_value("runtime", "envmode", default="Not Specified"),
        )
        return [handler] if handler is not None else []

    async def generate(
        self,
        messages: Sequence[EngineMessage],
        *,
        system_prompt: str,
        tools: Sequence[ToolCatalogEntry],
        max_output_tokens: int,
    ) -> EngineResponse:
        model = self._resolve_model(max_output_tokens)
        bound = model.bind_tools(_catalog_to_openai_tools(tools)) if tools else model
        callbacks = self._callbacks()
        config = {"callbacks": callbacks} if callbacks else None
        logging.debug(
            "Calling {} with {} messages and {} tools", self.model_name, len(messages), len(tools)
        )
        response = await asyncio.wait_for(
            bound.ainvoke(to_langchain_messages(messages, system_prompt), config=config),
            timeout=self.timeout,
        )
        return from_langchain_response(response)


__all__ = [
    "ChatModel",
    "LiteLLMReasoningEngine",
    "ReasoningEngine",
    "allows_temperature",
    "build_chat_model",
    "from_langchain_response",
    "model_supports_reasoning_effort",
    "resolve_reasoning_effort",
    "to_langchain_messages",
]
