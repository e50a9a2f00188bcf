"""
Structured assistant messages.

One user turn produces a single ``AIMessage`` whose ``message_list`` grows as
the model streams: text, thinking, tool calls (each settled in place with a
``ToolResultMessage``) and images.  The orchestrator owns and mutates it;
callers only ever receive ``snapshot()`` copies.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar


class MessageKind(str, Enum):
    TEXT = "text"
    THINKING = "thinking"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    IMAGE = "image"
    AI = "ai"


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class BaseMessage:
    kind: ClassVar[MessageKind]

    id: str = ""
    timestamp: datetime = field(default_factory=_now)
    loading: bool = False
    error: bool = False

    def __post_init__(self) -> None:
        if not self.id:
            self.id = _new_id(self.kind.value)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind.value,
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "loading": self.loading,
            "error": self.error,
        }


@dataclass
class TextMessage(BaseMessage):
    kind: ClassVar[MessageKind] = MessageKind.TEXT

    content: str = ""
    is_user: bool = False

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d.update(content=self.content, is_user=self.is_user)
        return d


@dataclass
class ThinkingMessage(BaseMessage):
    kind: ClassVar[MessageKind] = MessageKind.THINKING

    thinking_content: str = ""
    collapsed: bool = False

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d.update(thinking_content=self.thinking_content, collapsed=self.collapsed)
        return d


@dataclass
class ToolResultMessage(BaseMessage):
    kind: ClassVar[MessageKind] = MessageKind.TOOL_RESULT

    tool_name: str = ""
    success: bool = False
    result: Any = None
    error_message: str | None = None
    error_code: str | None = None
    duration_ms: int = 0
    collapsed: bool = True

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d.update(
            tool_name=self.tool_name,
            success=self.success,
            result=self.result,
            error_message=self.error_message,
            error_code=self.error_code,
            duration_ms=self.duration_ms,
        )
        return d


@dataclass
class ToolCallMessage(BaseMessage):
    kind: ClassVar[MessageKind] = MessageKind.TOOL_CALL

    tool_name: str = ""
    arguments: dict[str, Any] | str = field(default_factory=dict)
    result_message: ToolResultMessage | None = None
    collapsed: bool = True

    def settle(self, result: ToolResultMessage) -> None:
        self.result_message = result
        self.loading = False

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d.update(
            tool_name=self.tool_name,
            arguments=self.arguments,
            result_message=self.result_message.to_dict() if self.result_message else None,
        )
        return d


@dataclass
class ImageMessage(BaseMessage):
    kind: ClassVar[MessageKind] = MessageKind.IMAGE

    image_uri: str = ""

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["image_uri"] = self.image_uri
        return d


Message = TextMessage | ThinkingMessage | ToolCallMessage | ToolResultMessage | ImageMessage


@dataclass
class AIMessage(BaseMessage):
    """The composite response of one assistant turn."""

    kind: ClassVar[MessageKind] = MessageKind.AI

    message_list: list[BaseMessage] = field(default_factory=list)

    def snapshot(self) -> AIMessage:
        """Deep copy handed to callbacks; mutating it never affects the turn."""
        return copy.deepcopy(self)

    @property
    def tool_calls(self) -> list[ToolCallMessage]:
        return [m for m in self.message_list if isinstance(m, ToolCallMessage)]

    @property
    def text(self) -> str:
        return "".join(
            m.content for m in self.message_list
            if isinstance(m, TextMessage) and not m.is_user
        )

    def find(self, message_id: str) -> BaseMessage | None:
        for m in self.message_list:
            if m.id == message_id:
                return m
        return None

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["message_list"] = [m.to_dict() for m in self.message_list]
        return d


# ---------------------------------------------------------------------------
# Append-or-new merging
# ---------------------------------------------------------------------------


def _extends(last: BaseMessage | None, kind: MessageKind, is_user: bool = False) -> bool:
    """Whether a new *kind* fragment continues *last* instead of starting a message."""
    if last is None:
        return False
    lk = last.kind
    if lk is MessageKind.TEXT:
        return kind is MessageKind.TEXT and not last.is_user and not is_user
    if lk is MessageKind.THINKING:
        return kind is MessageKind.THINKING
    if lk in (
        MessageKind.TOOL_CALL,
        MessageKind.TOOL_RESULT,
        MessageKind.IMAGE,
        MessageKind.AI,
    ):
        return False
    raise TypeError(f"Unhandled message kind: {lk!r}")


def append_text(message_list: list[BaseMessage], content: str, *, is_user: bool = False) -> TextMessage:
    """Append *content* to the trailing assistant text message, or start one."""
    last = message_list[-1] if message_list else None
    if _extends(last, MessageKind.TEXT, is_user):
        last.content += content
        last.loading = False
        return last
    msg = TextMessage(content=content, is_user=is_user)
    message_list.append(msg)
    return msg


def append_thinking(message_list: list[BaseMessage], content: str) -> ThinkingMessage:
    """Append *content* to the trailing thinking message, or start one."""
    last = message_list[-1] if message_list else None
    if _extends(last, MessageKind.THINKING):
        last.thinking_content += content
        last.loading = False
        return last
    msg = ThinkingMessage(thinking_content=content)
    message_list.append(msg)
    return msg
