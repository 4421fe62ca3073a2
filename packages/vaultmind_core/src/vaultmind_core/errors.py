#!/usr/bin/env python3
"""Core error types for tool/runtime coordination."""

from __future__ import annotations


class ToolInputError(Exception):
    """Raised when tool input does not match the tool's input schema."""

    def __init__(self, tool_name: str, errors: list[str]) -> None:
        self.tool_name = tool_name
        self.errors = list(errors)
        super().__init__(f"Invalid input for {tool_name}: {'; '.join(self.errors)}")


class OracleUnavailableError(Exception):
    """Raised when the token-risk oracle cannot produce an assessment."""


__all__ = ["OracleUnavailableError", "ToolInputError"]
