#!/usr/bin/env python3
"""Central JSON configuration for VaultMind."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from pydantic.v1 import BaseModel, Field, validator

_APP_CONFIG_PATH = Path("configs/app.json")
_APP_EXAMPLE_PATH = Path("configs/app.example.json")
_APP_CONFIG_PATH_OVERRIDE: Path | None = None
_APP_CONFIG_OVERRIDE: dict[str, Any] = {}
_CONFIG_CACHE: AppConfig | None = None
_CONFIG_WARNED = False
_LAST_PREFLIGHT: dict[str, dict[str, Any]] | None = None
_logger = logging.getLogger("core.config")

_SUPPORTED_CHAINS = ("base", "ethereum", "polygon", "arbitrum", "optimism", "bsc")


def _coerce_bool(value: Any, *, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    if isinstance(value, int | float):
        return bool(value)
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    return default


def _coerce_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return []
        return [entry.strip() for entry in raw.split(",") if entry.strip()]
    return []


def _coerce_positive_int(value: Any, default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return max(parsed, 1)


def _coerce_positive_float(value: Any, default: float) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    if parsed <= 0:
        return default
    return parsed


class RuntimeConfig(BaseModel):
    version: str = Field("1.4.0", example="1.4.0")
    envmode: str = Field("dev", example="dev")
    log_level: str = Field("DEBUG", example="INFO")
    log_style: str = Field("", example="dark")
    preflight_enabled: bool = False
    cache_dir: str = Field(".cache", example=".cache")

    @validator("log_level", pre=True, always=True)
    def _normalize_log_level(cls, value: Any) -> str:
        if not value:
            return "DEBUG"
        return str(value).strip().upper()

    @validator("cache_dir", pre=True, always=True)
    def _normalize_paths(cls, value: Any, field) -> str:
        if value is None:
            return str(field.default)
        return str(value)

    @validator("preflight_enabled", pre=True, always=True)
    def _normalize_preflight_enabled(cls, value: Any) -> bool:
        return _coerce_bool(value, default=False)


class LLMConfig(BaseModel):
    api_base: str = Field("", example="https://lite-llm.server.local/v1")
    api_key: str = Field("", example="sk-OPENAI_API_KEY")
    default_model: str = Field("gpt-5.2", example="gpt-5.2")
    agent_model: str = Field("", example="anthropic/claude-sonnet-4")
    temperature: float = Field(0.3, example=0.3)
    reasoning_effort: str = Field("", example="medium")
    reasoning_effort_models: list[str] = Field(default_factory=list)

    @validator("temperature", pre=True, always=True)
    def _normalize_temperature(cls, value: Any) -> float:
        try:
            parsed = float(value)
        except (TypeError, ValueError):
            return 0.3
        return min(max(parsed, 0.0), 2.0)

    @validator("reasoning_effort", pre=True, always=True)
    def _normalize_reasoning_effort(cls, value: Any) -> str:
        if value is None:
            return ""
        normalized = str(value).strip().lower()
        if normalized in {"low", "medium", "high", "none"}:
            return normalized
        return ""

    @validator("reasoning_effort_models", pre=True, always=True)
    def _normalize_reasoning_effort_models(cls, value: Any) -> list[str]:
        return [entry.lower() for entry in _coerce_list(value)]

    def is_configured(self) -> bool:
        """Return True when an API key or a proxy base URL is present."""
        return bool(self.api_key.strip() or self.api_base.strip())

    def _resolve_api_base(self) -> str | None:
        base = self.api_base.strip()
        return base or None

    def _models_endpoint(self) -> str:
        base = self._resolve_api_base()
        if not base:
            raise ValueError("llm.api_base is not set.")
        base = base.rstrip("/")
        if base.endswith("/v1"):
            return f"{base}/models"
        return f"{base}/v1/models"

    def list_models(self, *, timeout: float = 8.0) -> list[str]:
        api_key = self.api_key.strip()
        if not api_key:
            raise ValueError("llm.api_key is not set.")
        request = Request(
            self._models_endpoint(),
            headers={"Authorization": f"Bearer {api_key}"},
        )
        try:
            with urlopen(request, timeout=timeout) as response:
                payload = json.loads(response.read().decode("utf-8"))
        except HTTPError as exc:
            raise ValueError(f"Model listing failed: HTTP {exc.code}") from exc
        except URLError as exc:
            raise ValueError(f"Model listing failed: {exc.reason}") from exc
        data = payload.get("data", [])
        return sorted([item.get("id") for item in data if item.get("id")])

    def validate_models(self) -> ConfigCheck:
        if not self._resolve_api_base():
            return ConfigCheck(
                name="llm",
                enabled=True,
                ok=False,
                reason="llm.api_base is not set",
            )
        if not self.api_key.strip():
            return ConfigCheck(
                name="llm",
                enabled=True,
                ok=False,
                reason="llm.api_key is not set",
            )
        try:
            models = self.list_models()
        except ValueError as exc:
            return ConfigCheck(name="llm", enabled=True, ok=False, reason=str(exc))
        missing: list[str] = []
        for model_name in {self.default_model, self.agent_model}:
            if model_name and model_name not in models:
                missing.append(model_name)
        if missing:
            return ConfigCheck(
                name="llm",
                enabled=True,
                ok=False,
                reason="Configured model not found in API",
                metadata={"missing_models": missing, "available_models": models},
            )
        return ConfigCheck(name="llm", enabled=True, ok=True, metadata={"available_models": models})


class AgentConfig(BaseModel):
    max_iterations: int = Field(5, example=5)
    max_output_tokens: int = Field(1024, example=1024)
    llm_timeout: float = Field(60.0, example=60.0)
    default_chain: str = Field("base", example="base")

    @validator("max_iterations", pre=True, always=True)
    def _normalize_max_iterations(cls, value: Any) -> int:
        return _coerce_positive_int(value, 5)

    @validator("max_output_tokens", pre=True, always=True)
    def _normalize_max_output_tokens(cls, value: Any) -> int:
        return _coerce_positive_int(value, 1024)

    @validator("llm_timeout", pre=True, always=True)
    def _normalize_llm_timeout(cls, value: Any) -> float:
        return _coerce_positive_float(value, 60.0)

    @validator("default_chain", pre=True, always=True)
    def _normalize_default_chain(cls, value: Any) -> str:
        if value is None:
            return "base"
        normalized = str(value).strip().lower()
        if normalized in _SUPPORTED_CHAINS:
            return normalized
        return "base"


class ContextConfig(BaseModel):
    recent_window_size: int = Field(6, example=6)
    max_context_tokens: int = Field(4000, example=4000)
    max_tool_result_chars: int = Field(500, example=500)
    include_summary: bool = Field(True, example=True)

    @validator("recent_window_size", pre=True, always=True)
    def _normalize_recent_window_size(cls, value: Any) -> int:
        return _coerce_positive_int(value, 6)

    @validator("max_context_tokens", pre=True, always=True)
    def _normalize_max_context_tokens(cls, value: Any) -> int:
        return _coerce_positive_int(value, 4000)

    @validator("max_tool_result_chars", pre=True, always=True)
    def _normalize_max_tool_result_chars(cls, value: Any) -> int:
        return _coerce_positive_int(value, 500)

    @validator("include_summary", pre=True, always=True)
    def _normalize_include_summary(cls, value: Any) -> bool:
        return _coerce_bool(value, default=True)


class SessionConfig(BaseModel):
    ttl_seconds: int = Field(86400, example=86400)

    @validator("ttl_seconds", pre=True, always=True)
    def _normalize_ttl(cls, value: Any) -> int:
        return _coerce_positive_int(value, 86400)


class SecurityConfig(BaseModel):
    blocked_addresses: list[str] = Field(default_factory=list)
    oracle_enabled: bool = Field(True, example=True)
    oracle_base_url: str = Field(
        "https://api.gopluslabs.io/api/v1", example="https://api.gopluslabs.io/api/v1"
    )
    oracle_timeout: float = Field(8.0, example=8.0)
    oracle_unavailable_policy: str = Field("warn", example="warn")

    @validator("blocked_addresses", pre=True, always=True)
    def _normalize_blocked_addresses(cls, value: Any) -> list[str]:
        return [entry.lower() for entry in _coerce_list(value)]

    @validator("oracle_enabled", pre=True, always=True)
    def _normalize_oracle_enabled(cls, value: Any) -> bool:
        return _coerce_bool(value, default=True)

    @validator("oracle_timeout", pre=True, always=True)
    def _normalize_oracle_timeout(cls, value: Any) -> float:
        return _coerce_positive_float(value, 8.0)

    @validator("oracle_unavailable_policy", pre=True, always=True)
    def _normalize_unavailable_policy(cls, value: Any) -> str:
        if value is None:
            return "warn"
        normalized = str(value).strip().lower()
        if normalized in {"block", "deny", "fail"}:
            return "block"
        return "warn"


class LangfuseConfig(BaseModel):
    enabled: bool = Field(False, example=False)
    host: str = Field("", example="https://langfuse.server.local")
    public_key: str = Field("", example="pk-lf-xxxxxxxxxxxxxxxx")
    secret_key: str = Field("", example="sk-lf-xxxxxxxxxxxxxxxx")

    @validator("enabled", pre=True, always=True)
    def _normalize_enabled(cls, value: Any) -> bool:
        return _coerce_bool(value, default=False)

    def evaluate(self) -> tuple[bool, str | None, dict[str, Any]]:
        if not self.enabled:
            return False, "disabled via config", {}
        missing: list[str] = []
        if not self.public_key:
            missing.append("langfuse.public_key")
        if not self.secret_key:
            missing.append("langfuse.secret_key")
        if missing:
            return (
                False,
                "missing langfuse.public_key/langfuse.secret_key",
                {"required_config": missing},
            )
        try:
            from langfuse.langchain import CallbackHandler  # noqa: F401
        except ModuleNotFoundError as exc:
            message = str(exc).lower()
            if "langchain" in message:
                return False, "langchain not installed", {}
            return False, "langfuse not installed", {}
        return True, None, {}


class PermissionsConfig(BaseModel):
    tokens_path: str = Field("", example="./configs/tokens.json")
    tokens: list[dict[str, Any]] = Field(default_factory=list)

    @validator("tokens", pre=True, always=True)
    def _normalize_tokens(cls, value: Any) -> list[dict[str, Any]]:
        if not isinstance(value, list):
            return []
        return [entry for entry in value if isinstance(entry, dict)]


class APIConfig(BaseModel):
    master_token: str = Field("vmk-strong-password", example="vmk-strong-password")
    host: str = Field("127.0.0.1", example="0.0.0.0")
    port: int = Field(5123, example=5123)
    max_body_bytes: int = Field(512 * 1024, example=524288)

    @validator("port", pre=True, always=True)
    def _normalize_port(cls, value: Any) -> int:
        return _coerce_positive_int(value, 5123)

    @validator("max_body_bytes", pre=True, always=True)
    def _normalize_max_body_bytes(cls, value: Any) -> int:
        return _coerce_positive_int(value, 512 * 1024)


def _runtime_config_default() -> RuntimeConfig:
    return RuntimeConfig.parse_obj({})


def _llm_config_default() -> LLMConfig:
    return LLMConfig.parse_obj({})


def _agent_config_default() -> AgentConfig:
    return AgentConfig.parse_obj({})


def _context_config_default() -> ContextConfig:
    return ContextConfig.parse_obj({})


def _session_config_default() -> SessionConfig:
    return SessionConfig.parse_obj({})


def _security_config_default() -> SecurityConfig:
    return SecurityConfig.parse_obj({})


def _langfuse_config_default() -> LangfuseConfig:
    return LangfuseConfig.parse_obj({})


def _permissions_config_default() -> PermissionsConfig:
    return PermissionsConfig.parse_obj({})


def _api_config_default() -> APIConfig:
    return APIConfig.parse_obj({})


class AppConfig(BaseModel):
    """Typed configuration for the VaultMind runtime."""

    runtime: RuntimeConfig = Field(default_factory=_runtime_config_default)
    llm: LLMConfig = Field(default_factory=_llm_config_default)
    agent: AgentConfig = Field(default_factory=_agent_config_default)
    context: ContextConfig = Field(default_factory=_context_config_default)
    session: SessionConfig = Field(default_factory=_session_config_default)
    security: SecurityConfig = Field(default_factory=_security_config_default)
    langfuse: LangfuseConfig = Field(default_factory=_langfuse_config_default)
    permissions: PermissionsConfig = Field(default_factory=_permissions_config_default)
    api: APIConfig = Field(default_factory=_api_config_default)

    class Config:
        """Pydantic configuration settings."""

        extra = "ignore"

    @classmethod
    def load(cls, path: str | Path) -> AppConfig:
        """Load configuration from a JSON file."""
        payload = _load_json(path)
        return cls.parse_obj(payload)

    def to_json(self, *, indent: int = 2) -> str:
        """Serialize config to JSON."""
        return self.json(indent=indent, exclude_none=True)

    def write(self, path: str | Path, *, indent: int = 2) -> None:
        """Write config JSON to disk."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.to_json(indent=indent) + "\n", encoding="utf-8")

    async def preflight(self, *, disable_on_failure: bool = True) -> dict[str, dict[str, Any]]:
        """Run async validation checks for optional integrations."""
        results: dict[str, ConfigCheck] = {}

        async def _llm_check() -> ConfigCheck:
            return await asyncio.to_thread(self.llm.validate_models)

        async def _langfuse_check() -> ConfigCheck:
            enabled, reason, metadata = self.langfuse.evaluate()
            if not enabled:
                return ConfigCheck(
                    name="langfuse",
                    enabled=False,
                    ok=True,
                    reason=reason,
                    metadata=metadata,
                )
            try:
                host = self.langfuse.host.rstrip("/")
                if host:
                    await asyncio.to_thread(_probe_http, f"{host}/api/public/health")
                return ConfigCheck(name="langfuse", enabled=True, ok=True)
            except ValueError as exc:
                return ConfigCheck(name="langfuse", enabled=True, ok=False, reason=str(exc))

        async def _oracle_check() -> ConfigCheck:
            if not self.security.oracle_enabled:
                return ConfigCheck(
                    name="token_oracle",
                    enabled=False,
                    ok=True,
                    reason="disabled via config",
                )
            try:
                base = self.security.oracle_base_url.rstrip("/")
                await asyncio.to_thread(_probe_http, f"{base}/supported_chains")
                return ConfigCheck(name="token_oracle", enabled=True, ok=True)
            except ValueError as exc:
                return ConfigCheck(name="token_oracle", enabled=True, ok=False, reason=str(exc))

        checks = await asyncio.gather(_llm_check(), _langfuse_check(), _oracle_check())
        for check in checks:
            results[check.name] = check
        if disable_on_failure:
            langfuse_check = results.get("langfuse")
            if langfuse_check and not langfuse_check.ok and self.langfuse.enabled:
                self.langfuse.enabled = False
        return {name: check.to_dict() for name, check in results.items()}


def _probe_http(url: str, headers: dict[str, str] | None = None) -> None:
    request = Request(url, headers=headers or {})
    try:
        with urlopen(request, timeout=6.0):
            return None
    except HTTPError as exc:
        raise ValueError(f"HTTP {exc.code} for {url}") from exc
    except URLError as exc:
        raise ValueError(f"Connection error for {url}: {exc.reason}") from exc


def start_preflight(
    config: AppConfig | None = None,
    *,
    disable_on_failure: bool = True,
    on_complete: Callable[[dict[str, dict[str, Any]]], None] | None = None,
) -> threading.Thread:
    """Run config preflight checks in a background thread."""
    target = config or get_config()

    def _runner() -> None:
        global _LAST_PREFLIGHT
        results = asyncio.run(target.preflight(disable_on_failure=disable_on_failure))
        _LAST_PREFLIGHT = results
        failures = {
            name: info
            for name, info in results.items()
            if info.get("enabled") and not info.get("ok")
        }
        for name, info in failures.items():
            reason = info.get("reason") or "unknown failure"
            _logger.warning("Preflight check failed for %s: %s", name, reason)
        if on_complete is not None:
            on_complete(results)

    thread = threading.Thread(target=_runner, daemon=True)
    thread.start()
    return thread


def get_last_preflight() -> dict[str, dict[str, Any]] | None:
    """Return the most recent preflight results if available."""
    return _LAST_PREFLIGHT


@dataclass
class ConfigCheck:
    """Result of a configuration preflight check."""

    name: str
    enabled: bool
    ok: bool
    reason: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the check result to a dictionary."""
        return {
            "name": self.name,
            "enabled": self.enabled,
            "ok": self.ok,
            "reason": self.reason,
            "metadata": self.metadata,
        }


def _load_json(path: str | Path) -> dict[str, Any]:
    target = Path(path)
    if not target.exists():
        return {}
    with target.open(encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, dict):
        raise ValueError("Config payload must be a JSON object.")
    return payload


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            base[key] = _deep_merge(dict(base.get(key, {})), value)
        else:
            base[key] = value
    return base


def set_app_config_path(path: str | Path) -> None:
    """Override the app config path (tests only)."""
    global _APP_CONFIG_PATH_OVERRIDE, _CONFIG_CACHE
    _APP_CONFIG_PATH_OVERRIDE = Path(path)
    _CONFIG_CACHE = None


def reset_config() -> None:
    """Clear cached configuration and overrides."""
    global _CONFIG_CACHE, _APP_CONFIG_OVERRIDE, _APP_CONFIG_PATH_OVERRIDE, _CONFIG_WARNED
    _CONFIG_CACHE = None
    _APP_CONFIG_OVERRIDE = {}
    _APP_CONFIG_PATH_OVERRIDE = None
    _CONFIG_WARNED = False


def set_config_override(payload: dict[str, Any], *, replace: bool = False) -> None:
    """Override config values in-memory (tests/CLI)."""
    global _APP_CONFIG_OVERRIDE, _CONFIG_CACHE
    if replace:
        _APP_CONFIG_OVERRIDE = payload
    else:
        _APP_CONFIG_OVERRIDE = _deep_merge(_APP_CONFIG_OVERRIDE, payload)
    _CONFIG_CACHE = None


def get_app_config_path() -> str:
    """Return the configured app JSON path."""
    return str(_APP_CONFIG_PATH_OVERRIDE or _APP_CONFIG_PATH)


def get_config() -> AppConfig:
    """Return cached AppConfig instance."""
    global _CONFIG_CACHE, _CONFIG_WARNED
    if _CONFIG_CACHE is not None:
        return _CONFIG_CACHE
    config_path = Path(get_app_config_path())
    if not config_path.exists() and not _CONFIG_WARNED:
        _logger.warning(
            "Config file not found at %s. Falling back to built-in defaults.",
            config_path,
        )
        _CONFIG_WARNED = True
    base_payload = AppConfig().dict()
    file_payload = _load_json(get_app_config_path())
    merged = _deep_merge(base_payload, file_payload)
    if _APP_CONFIG_OVERRIDE:
        merged = _deep_merge(merged, _APP_CONFIG_OVERRIDE)
    _CONFIG_CACHE = AppConfig.parse_obj(merged)
    return _CONFIG_CACHE


def get_config_value(*keys: str, default: Any | None = None) -> Any:
    """Return a nested config value or default."""
    current: Any = get_config()
    for key in keys:
        if isinstance(current, BaseModel):
            current = getattr(current, key, None)
        elif isinstance(current, dict):
            current = current.get(key)
        else:
            return default
        if current is None:
            return default
    return current


def get_config_section(*keys: str) -> dict[str, Any]:
    """Return a config section as a dictionary."""
    value = get_config_value(*keys, default={})
    if isinstance(value, BaseModel):
        return value.dict()
    if isinstance(value, dict):
        return value
    return {}


def ensure_app_config(path: str | Path) -> None:
    """Write the default config file if missing."""
    target = Path(path)
    if target.exists():
        return
    AppConfig().write(target)


def _example_app_payload() -> dict[str, Any]:
    payload = AppConfig().dict()
    payload["llm"]["api_base"] = "https://lite-llm.server.local/v1"
    payload["llm"]["api_key"] = "sk-OPENAI_API_KEY"
    payload["langfuse"]["host"] = "https://langfuse.server.local"
    payload["langfuse"]["public_key"] = "pk-lf-xxxxxxxxxxxxxxxx"
    payload["langfuse"]["secret_key"] = "sk-lf-xxxxxxxxxxxxxxxx"
    payload["permissions"]["tokens_path"] = "./configs/tokens.json"
    return payload


def ensure_example_configs(app_path: str | Path | None = None) -> None:
    """Write the example config file if missing."""
    app_target = Path(app_path) if app_path else _APP_EXAMPLE_PATH
    if app_target.exists():
        return
    app_target.parent.mkdir(parents=True, exist_ok=True)
    app_target.write_text(json.dumps(_example_app_payload(), indent=2) + "\n", encoding="utf-8")


__all__ = [
    "AppConfig",
    "ConfigCheck",
    "ensure_app_config",
    "ensure_example_configs",
    "get_app_config_path",
    "get_config",
    "get_config_section",
    "get_config_value",
    "get_last_preflight",
    "reset_config",
    "set_app_config_path",
    "set_config_override",
    "start_preflight",
]
