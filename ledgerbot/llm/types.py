"""Core types for the LLM subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ledgerbot.errors import StreamProtocolError


@dataclass
class ChatMessage:
    """A single message sent to the model."""

    role: str  # "system", "user", "assistant"
    content: str

    def to_wire(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ToolCall:
    """
    A finalized tool call.

    ``arguments`` is the parsed JSON object, or the raw argument string when
    the model produced something that does not parse.
    """

    name: str
    arguments: dict[str, Any] | str = field(default_factory=dict)
    id: str | None = None


@dataclass
class ToolCallFragment:
    """
    One incremental piece of a streamed tool call.

    Fragments sharing an ``index`` belong to the same call.
    """

    index: int
    id: str | None = None
    name: str | None = None
    arguments_chunk: str | None = None


@dataclass
class StreamDelta:
    """
    One transport unit of a streamed completion.

    *content* carries new answer text, *thinking* new reasoning text,
    *tool_call_fragments* incremental tool-call pieces.  *is_final* is
    ``True`` on the last delta of the stream.
    """

    content: str = ""
    thinking: str = ""
    tool_call_fragments: list[ToolCallFragment] | None = None
    is_final: bool = False

    @classmethod
    def from_wire(cls, delta: dict[str, Any], is_final: bool = False) -> StreamDelta:
        """
        Build a delta from an OpenAI-style ``choices[0].delta`` payload.

        Reasoning text is read from ``reasoning_content`` or ``thinking``.
        A field of the wrong JSON type raises ``StreamProtocolError``.
        """
        if not isinstance(delta, dict):
            raise StreamProtocolError(f"delta is not an object: {delta!r}")

        thinking = delta.get("reasoning_content")
        if thinking is None:
            thinking = delta.get("thinking")

        fragments: list[ToolCallFragment] | None = None
        raw_tcs = delta.get("tool_calls")
        if raw_tcs:
            if not isinstance(raw_tcs, list):
                raise StreamProtocolError(f"tool_calls is not an array: {raw_tcs!r}")
            fragments = [_fragment_from_wire(raw_tc) for raw_tc in raw_tcs]

        return cls(
            content=_optional_str(delta, "content"),
            thinking=_optional_str({"thinking": thinking}, "thinking"),
            tool_call_fragments=fragments,
            is_final=is_final,
        )


def _optional_str(obj: dict[str, Any], key: str) -> str:
    value = obj.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise StreamProtocolError(f"{key} is not a string: {value!r}")
    return value


def _fragment_from_wire(raw_tc: Any) -> ToolCallFragment:
    if not isinstance(raw_tc, dict):
        raise StreamProtocolError(f"tool_calls entry is not an object: {raw_tc!r}")
    func = raw_tc.get("function") or {}
    if not isinstance(func, dict):
        raise StreamProtocolError(f"tool_calls function is not an object: {func!r}")
    index = raw_tc.get("index", 0)
    if isinstance(index, bool) or not isinstance(index, int):
        raise StreamProtocolError(f"tool_calls index is not an integer: {index!r}")
    return ToolCallFragment(
        index=index,
        id=_optional_str(raw_tc, "id") or None,
        name=_optional_str(func, "name") or None,
        arguments_chunk=_optional_str(func, "arguments") or None,
    )
