#!/usr/bin/env python3
"""Common helpers shared across the agent runtime."""

from __future__ import annotations

import json
import logging as logging_real
import os
import sys
from collections.abc import Mapping
from contextlib import contextmanager
from typing import Any

import tiktoken
from jinja2 import Environment, PackageLoader
from loguru import logger as loguru_logger

from vaultmind_core.config import get_config_value

_LOG_CONFIGURED = False
_SESSION_SINKS: dict[str, dict[str, int]] = {}
_PROMPT_ENV: Environment | None = None


def _resolve_log_level() -> str:
    level_name = get_config_value("runtime", "log_level", default="DEBUG")
    if isinstance(level_name, str) and level_name.strip():
        return level_name.strip().upper()
    return "DEBUG"


def _should_use_dark_logs() -> bool:
    style = get_config_value("runtime", "log_style", default="")
    return str(style).lower() == "dark"


def _configure_logging() -> None:
    global _LOG_CONFIGURED
    if _LOG_CONFIGURED:
        return
    log_level = _resolve_log_level()
    loggers_to_suppress = [
        "httpx",
        "httpcore",
        "urllib3.connectionpool",
        "openai._base_client",
        "LiteLLM",
        "LiteLLM Router",
        "LiteLLM Proxy",
        "LangChainDeprecationWarning",
        "werkzeug",
    ]
    for logger_name in loggers_to_suppress:
        logging_real.getLogger(logger_name).setLevel(logging_real.ERROR)

    loguru_logger.remove()
    colorize = sys.stderr.isatty()
    if _should_use_dark_logs():
        format_str = (
            "<dim>{time:YYYY-MM-DD HH:mm:ss} [{extra[name]}] "
            "<level>{level}</level> {message}{exception}</dim>"
        )
    else:
        format_str = "{time:YYYY-MM-DD HH:mm:ss} [{extra[name]}] <level>{level}</level> {message}"
    loguru_logger.add(sys.stderr, level=log_level, format=format_str, colorize=colorize)
    _LOG_CONFIGURED = True


def _resolve_session_log_dir() -> str:
    cache_dir = get_config_value("runtime", "cache_dir", default=".cache")
    cache_dir = str(cache_dir or ".cache")
    return os.path.join(cache_dir, "session-logs")


def _session_log_format() -> str:
    return "{time:YYYY-MM-DD HH:mm:ss} [{extra[name]}] {level} {message}"


def _ensure_session_log_sink(session_id: str, log_dir: str | None = None) -> None:
    _configure_logging()
    if session_id in _SESSION_SINKS:
        _SESSION_SINKS[session_id]["count"] += 1
        return
    target_dir = log_dir or _resolve_session_log_dir()
    os.makedirs(target_dir, exist_ok=True)
    log_path = os.path.join(target_dir, f"{session_id}.log")
    sink_id = loguru_logger.add(
        log_path,
        level=_resolve_log_level(),
        format=_session_log_format(),
        colorize=False,
        filter=lambda record: record["extra"].get("session_id") == session_id,
    )
    _SESSION_SINKS[session_id] = {"id": sink_id, "count": 1}


def _release_session_log_sink(session_id: str) -> None:
    entry = _SESSION_SINKS.get(session_id)
    if not entry:
        return
    entry["count"] -= 1
    if entry["count"] <= 0:
        loguru_logger.remove(entry["id"])
        _SESSION_SINKS.pop(session_id, None)


@contextmanager
def session_log_context(session_id: str, log_dir: str | None = None):
    """Context manager that logs all session output to a session log file."""
    _ensure_session_log_sink(session_id, log_dir=log_dir)
    try:
        with loguru_logger.contextualize(session_id=session_id):
            yield
    finally:
        _release_session_log_sink(session_id)


def get_logger(name: str | None = None):
    """Get the logger for the module."""
    _configure_logging()
    if not name:
        name = __name__
    return loguru_logger.bind(name=name)


def num_tokens_from_string(string: str, encoding_name: str = "cl100k_base") -> int:
    """Get the number of tokens in a string using a specific model."""
    encoding = tiktoken.get_encoding(encoding_name)
    return len(encoding.encode(string))


def _prompt_environment() -> Environment:
    global _PROMPT_ENV
    if _PROMPT_ENV is None:
        _PROMPT_ENV = Environment(
            loader=PackageLoader("vaultmind_core", "prompts"),
            keep_trailing_newline=False,
        )
    return _PROMPT_ENV


def get_system_prompt(name: str = "agent-system", **variables: Any) -> str:
    """Render a system prompt template from the packaged prompts."""
    logging = get_logger(name="core.common.get_system_prompt")
    template = _prompt_environment().get_template(f"{name}.txt")
    logging.debug("Render system prompt for `{}`", name)
    del logging
    return template.render(**variables).strip()


def format_action_argument(argument: object) -> str:
    """Format an action argument for logs and prompts."""
    if isinstance(argument, Mapping):
        return json.dumps(dict(argument), ensure_ascii=True, default=str)
    return str(argument)


__all__ = [
    "format_action_argument",
    "get_logger",
    "get_system_prompt",
    "num_tokens_from_string",
    "session_log_context",
]
