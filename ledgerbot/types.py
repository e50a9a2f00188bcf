from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ConversationContext:
    """Application context handed to tool executors and the prompt builder."""

    book_id: str | None = None
    book_name: str | None = None
    user: dict[str, Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def has_book(self) -> bool:
        return bool(self.book_id)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "current_book": (
                {"book_id": self.book_id, "book_name": self.book_name or "Current book"}
                if self.book_id
                else None
            ),
            "user": self.user,
        }
        d.update(self.extra)
        return d


@dataclass
class ToolResult:
    success: bool
    tool_name: str
    data: Any = None
    error: str | None = None
    error_code: str | None = None
    duration_ms: int = 0
    metadata: dict = field(default_factory=dict)


class ErrorCode:
    VALIDATION_ERROR = "validation_error"
    UNKNOWN_TOOL = "unknown_tool"
    TOOL_EXCEPTION = "tool_exception"
    LLM_PROTOCOL_ERROR = "llm_protocol_error"
    MODEL_API_ERROR = "model_api_error"
    CANCELLED = "cancelled"
    ITERATION_LIMIT = "iteration_limit"
