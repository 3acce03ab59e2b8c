"""Exceptions raised by SpecRun.

Transport failures are never raised; they come back as ApiCallResult
envelopes from the HTTP client.
"""

from __future__ import annotations

from pydantic import ValidationError


class SpecRunError(Exception):
    """Base class for SpecRun errors."""


class SpecLoadError(SpecRunError):
    """A description document could not be read, parsed or validated."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class UnknownToolError(SpecRunError):
    """No tool with the given name is registered."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Unknown tool: {tool_name}")
        self.tool_name = tool_name


class ToolValidationError(SpecRunError):
    """Arguments for a tool failed schema validation."""

    def __init__(self, tool_name: str, error: ValidationError) -> None:
        super().__init__(f"Invalid arguments for {tool_name}: {error}")
        self.tool_name = tool_name
        self.error = error
