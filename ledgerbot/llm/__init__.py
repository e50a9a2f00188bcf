"""LLM subsystem -- transports, stream deltas and incremental parsing."""

from ledgerbot.llm.stream_parser import ParseResult, StreamMessageParser
from ledgerbot.llm.types import (
    ChatMessage,
    StreamDelta,
    ToolCall,
    ToolCallFragment,
)

__all__ = [
    "ChatMessage",
    "ParseResult",
    "StreamDelta",
    "StreamMessageParser",
    "ToolCall",
    "ToolCallFragment",
]
