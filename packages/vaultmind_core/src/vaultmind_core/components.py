#!/usr/bin/env python3
"""Helpers for optional components and observability integration."""

from __future__ import annotations

import os
import re
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from vaultmind_core.common import get_logger
from vaultmind_core.config import get_config
from vaultmind_core.types import JsonValue

if TYPE_CHECKING:  # pragma: no cover - typing only
    from langfuse.langchain import CallbackHandler as LangfuseCallbackHandler

logging = get_logger(name="core.components")

_LANGFUSE_TRACE_CONTEXT: ContextVar[dict[str, str] | None] = ContextVar(
    "langfuse_trace_context",
    default=None,
)
_LANGFUSE_SESSION_ID: ContextVar[str | None] = ContextVar("langfuse_session_id", default=None)
_LANGFUSE_USER_ID: ContextVar[str | None] = ContextVar("langfuse_user_id", default=None)


@dataclass(frozen=True)
class ComponentStatus:
    """Describe whether a component is enabled and why."""

    name: str
    enabled: bool
    reason: str | None = None
    metadata: dict[str, JsonValue] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "enabled": self.enabled,
            "reason": self.reason,
            "metadata": self.metadata,
        }


def resolve_langfuse_status() -> ComponentStatus:
    """Determine whether Langfuse callbacks are available and configured."""
    enabled, reason, metadata = get_config().langfuse.evaluate()
    return ComponentStatus(name="langfuse", enabled=enabled, reason=reason, metadata=metadata)


def resolve_llm_status() -> ComponentStatus:
    """Report whether the reasoning engine can be reached, or the fallback parser is used."""
    llm = get_config().llm
    if llm.is_configured():
        model = llm.agent_model or llm.default_model
        return ComponentStatus(name="reasoning_engine", enabled=True, metadata={"model": model})
    return ComponentStatus(
        name="reasoning_engine",
        enabled=False,
        reason="llm.api_key/llm.api_base not set; using the local parser",
    )


def resolve_token_oracle_status() -> ComponentStatus:
    security = get_config().security
    if not security.oracle_enabled:
        return ComponentStatus(name="token_oracle", enabled=False, reason="disabled via config")
    return ComponentStatus(
        name="token_oracle",
        enabled=True,
        metadata={
            "base_url": security.oracle_base_url,
            "unavailable_policy": security.oracle_unavailable_policy,
        },
    )


def build_langfuse_handler(
    *,
    user_id: str,
    session_id: str,
    trace_name: str,
    version: str,
    release: str,
) -> LangfuseCallbackHandler | None:
    """Create a Langfuse callback handler when configured."""
    status = resolve_langfuse_status()
    if not status.enabled:
        logging.debug("Langfuse disabled: {}", status.reason)
        return None

    config = get_config().langfuse
    _ensure_langfuse_client(config)

    from langfuse.langchain import CallbackHandler

    trace_context = _LANGFUSE_TRACE_CONTEXT.get()
    session_id_value = _LANGFUSE_SESSION_ID.get() or session_id
    user_id_value = _LANGFUSE_USER_ID.get() or user_id

    try:
        handler = CallbackHandler(public_key=config.public_key or None, trace_context=trace_context)
        _attach_langfuse_metadata(
            handler,
            user_id=user_id_value,
            session_id=session_id_value,
            trace_name=trace_name,
            version=version,
            release=release,
        )
        return handler
    except Exception as exc:
        logging.warning("Langfuse initialization failed: {}", exc)
        return None


def _is_hex_trace_id(value: str) -> bool:
    return bool(re.fullmatch(r"[0-9a-f]{32}", value))


def _build_langfuse_trace_context(session_id: str | None) -> dict[str, str] | None:
    if not session_id:
        return None
    if _is_hex_trace_id(session_id):
        return {"trace_id": session_id}
    if not resolve_langfuse_status().enabled:
        return None
    from langfuse import Langfuse

    trace_id = Langfuse.create_trace_id(seed=session_id)
    if not trace_id or not _is_hex_trace_id(trace_id):
        return None
    return {"trace_id": trace_id}


@contextmanager
def langfuse_session_context(session_id: str, *, user_id: str | None = None) -> Iterator[None]:
    """Bind a stable Langfuse trace context to the current session."""
    trace_context = _build_langfuse_trace_context(session_id)
    token_ctx = _LANGFUSE_TRACE_CONTEXT.set(trace_context)
    token_session = _LANGFUSE_SESSION_ID.set(session_id)
    token_user = _LANGFUSE_USER_ID.set(user_id or session_id)
    try:
        yield
    finally:
        _LANGFUSE_TRACE_CONTEXT.reset(token_ctx)
        _LANGFUSE_SESSION_ID.reset(token_session)
        _LANGFUSE_USER_ID.reset(token_user)


def current_langfuse_session() -> str | None:
    return _LANGFUSE_SESSION_ID.get()


def _ensure_langfuse_client(config) -> None:
    if config is None:
        return
    if not config.public_key or not config.secret_key:
        return

    os.environ.setdefault("LANGFUSE_PUBLIC_KEY", config.public_key)
    os.environ.setdefault("LANGFUSE_SECRET_KEY", config.secret_key)
    if config.host:
        os.environ.setdefault("LANGFUSE_BASE_URL", config.host)
        os.environ.setdefault("LANGFUSE_HOST", config.host)

    from langfuse import Langfuse

    try:
        Langfuse(
            public_key=config.public_key,
            secret_key=config.secret_key,
            base_url=config.host or None,
        )
    except Exception as exc:
        logging.debug("Langfuse client init failed: {}", exc)


def _attach_langfuse_metadata(
    handler: object,
    *,
    user_id: str,
    session_id: str,
    trace_name: str,
    version: str,
    release: str,
) -> None:
    metadata: dict[str, object] = {}
    if user_id:
        metadata["langfuse_user_id"] = user_id
    if session_id:
        metadata["langfuse_session_id"] = session_id
    tags: list[str] = []
    if trace_name:
        tags.append(trace_name)
    if version:
        tags.append(f"version:{version}")
    if release:
        tags.append(f"release:{release}")
    if tags:
        metadata["langfuse_tags"] = tags
    if metadata:
        setattr(handler, "langfuse_metadata", metadata)


__all__ = [
    "ComponentStatus",
    "build_langfuse_handler",
    "current_langfuse_session",
    "langfuse_session_context",
    "resolve_langfuse_status",
    "resolve_llm_status",
    "resolve_token_oracle_status",
]
