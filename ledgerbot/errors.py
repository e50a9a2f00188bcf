"""
Exception taxonomy.

Tool failures (``ValidationError``, ``UnknownToolError``,
``ToolExecutionError``) are captured per call and surfaced as structured
results.  ``ModelAPIError`` aborts the current turn only.  The last two
classes are terminal-state markers carried on ``TurnResult.error``.
"""

from __future__ import annotations

from ledgerbot.types import ErrorCode


class LedgerbotError(Exception):
    """Base class for all ledgerbot errors."""


class ToolError(LedgerbotError):
    """A tool call failed.  ``code`` is one of the ``ErrorCode`` values."""

    code = ErrorCode.TOOL_EXCEPTION

    def __init__(self, message: str, *, tool_name: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.tool_name = tool_name


class ValidationError(ToolError):
    code = ErrorCode.VALIDATION_ERROR

    def __init__(
        self,
        message: str,
        *,
        tool_name: str | None = None,
        field: str | None = None,
    ) -> None:
        super().__init__(message, tool_name=tool_name)
        self.field = field


class UnknownToolError(ToolError):
    code = ErrorCode.UNKNOWN_TOOL


class ToolExecutionError(ToolError):
    code = ErrorCode.TOOL_EXCEPTION


class SchemaDefinitionError(LedgerbotError):
    """A tool declared an argument schema that is not valid JSON Schema."""


class StreamProtocolError(LedgerbotError):
    """A malformed delta payload.  Logged and skipped, never fatal."""

    code = ErrorCode.LLM_PROTOCOL_ERROR


class ModelAPIError(LedgerbotError):
    """Transport or authentication failure talking to the model endpoint."""

    code = ErrorCode.MODEL_API_ERROR

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class IterationLimitExceeded(LedgerbotError):
    code = ErrorCode.ITERATION_LIMIT

    def __init__(self, max_iterations: int) -> None:
        super().__init__(f"Reached the maximum of {max_iterations} processing rounds")
        self.max_iterations = max_iterations


class CancellationRequested(LedgerbotError):
    code = ErrorCode.CANCELLED
