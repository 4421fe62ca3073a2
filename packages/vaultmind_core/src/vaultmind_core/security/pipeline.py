#!/usr/bin/env python3
"""Ordered, short-circuiting security screening for proposed actions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol, runtime_checkable

from vaultmind_core.classes import ParsedAction
from vaultmind_core.common import get_logger
from vaultmind_core.types import PipelinePayload

logging = get_logger(name="core.security.pipeline")


class Verdict(str, Enum):
    CLEAR = "clear"
    WARNED = "warned"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class SecurityResult:
    """Tagged verdict returned by a single check."""

    verdict: Verdict = Verdict.CLEAR
    reason: str | None = None
    details: tuple[str, ...] = ()

    @classmethod
    def clear(cls, details: list[str] | None = None) -> SecurityResult:
        return cls(Verdict.CLEAR, None, tuple(details or ()))

    @classmethod
    def warned(cls, reason: str, details: list[str] | None = None) -> SecurityResult:
        return cls(Verdict.WARNED, reason, tuple(details or (reason,)))

    @classmethod
    def blocked(cls, reason: str, details: list[str] | None = None) -> SecurityResult:
        return cls(Verdict.BLOCKED, reason, tuple(details or (reason,)))

    @property
    def passed(self) -> bool:
        return self.verdict is not Verdict.BLOCKED

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"pass": self.passed}
        if self.reason:
            payload["reason"] = self.reason
        if self.details:
            payload["details"] = list(self.details)
        return payload


@dataclass(frozen=True)
class SecurityContext:
    """Per-request inputs shared by every check."""

    user_message: str | None = None
    session_id: str | None = None


@runtime_checkable
class SecurityCheck(Protocol):
    """A named screening step."""

    name: str

    async def evaluate(self, action: ParsedAction, context: SecurityContext) -> SecurityResult:
        ...


@dataclass(frozen=True)
class PipelineResult:
    """Aggregate outcome of a pipeline run."""

    passed: bool
    failed_check: str | None = None
    warnings: list[str] = field(default_factory=list)
    details: list[str] = field(default_factory=list)

    def to_dict(self) -> PipelinePayload:
        return {
            "passed": self.passed,
            "failed_check": self.failed_check,
            "warnings": list(self.warnings),
            "details": list(self.details),
        }


class SecurityPipeline:
    """Run checks in registration order, stopping at the first block.

    Warnings from passing checks accumulate in order. A check that raises is
    logged and recorded as a warning.
    """

    def __init__(self, checks: list[SecurityCheck] | None = None) -> None:
        """Initialize the pipeline with optional initial checks."""
        self._checks: list[SecurityCheck] = []
        for check in checks or []:
            self.add(check)

    def add(self, check: SecurityCheck) -> SecurityPipeline:
        """Register a check after the existing ones."""
        if any(existing.name == check.name for existing in self._checks):
            raise ValueError(f"Security check '{check.name}' is already registered.")
        self._checks.append(check)
        return self

    def check_names(self) -> list[str]:
        return [check.name for check in self._checks]

    async def run(
        self,
        action: ParsedAction,
        context: SecurityContext | None = None,
    ) -> PipelineResult:
        """Screen an action and return the aggregate verdict."""
        context = context or SecurityContext()
        warnings: list[str] = []
        details: list[str] = []
        for check in self._checks:
            try:
                result = await check.evaluate(action, context)
            except Exception as exc:
                logging.exception(
                    "Security check '{}' errored for intent {}", check.name, action.intent.value
                )
                warnings.append(f"{check.name} check errored: {exc}")
                continue
            if result.verdict is Verdict.BLOCKED:
                logging.warning(
                    "Action {} blocked by '{}': {}", action.intent.value, check.name, result.reason
                )
                return PipelineResult(
                    passed=False,
                    failed_check=check.name,
                    warnings=warnings,
                    details=list(result.details) or [result.reason or check.name],
                )
            if result.verdict is Verdict.WARNED and result.reason:
                warnings.append(result.reason)
            details.extend(result.details)
        return PipelineResult(passed=True, warnings=warnings, details=details)


def format_screen_message(result: PipelineResult) -> str:
    """Render a user-facing notice for a blocked or warned pipeline result."""
    if not result.passed:
        lines = ["Security screen: action blocked", ""]
        lines.extend(f"- {detail}" for detail in result.details)
        lines.append("")
        lines.append(
            "This action was blocked for your protection. "
            "If you believe this is an error, please review the details above."
        )
        return "\n".join(lines)
    if result.warnings:
        lines = ["Security screen: warning", ""]
        lines.extend(f"- {warning}" for warning in result.warnings)
        lines.append("")
        lines.append("Proceeding with caution.")
        return "\n".join(lines)
    return ""


__all__ = [
    "PipelineResult",
    "SecurityCheck",
    "SecurityContext",
    "SecurityPipeline",
    "SecurityResult",
    "Verdict",
    "format_screen_message",
]
