"""Assistant message model, conversation history and prompt suggestions."""

from ledgerbot.agent.history import ConversationHistory, HistoryEntry
from ledgerbot.agent.messages import (
    AIMessage,
    BaseMessage,
    ImageMessage,
    MessageKind,
    TextMessage,
    ThinkingMessage,
    ToolCallMessage,
    ToolResultMessage,
)
from ledgerbot.agent.suggestions import (
    PromptSuggester,
    fallback_suggestions,
    parse_suggestions,
)

__all__ = [
    "AIMessage",
    "BaseMessage",
    "ConversationHistory",
    "HistoryEntry",
    "ImageMessage",
    "MessageKind",
    "PromptSuggester",
    "TextMessage",
    "ThinkingMessage",
    "ToolCallMessage",
    "ToolResultMessage",
    "fallback_suggestions",
    "parse_suggestions",
]
