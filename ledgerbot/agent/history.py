"""Bounded conversation history replayed into each model call."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone

from ledgerbot.llm.types import ChatMessage

ROLES = ("user", "assistant", "system")


@dataclass
class HistoryEntry:
    role: str
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ConversationHistory:
    """
    Append-only history capped at *limit* entries (oldest evicted first).

    Only non-system entries among the most recent *window* are replayed
    into the next model call.
    """

    def __init__(self, limit: int = 100, window: int = 20) -> None:
        if limit < 1 or window < 1:
            raise ValueError("history limit and window must be positive")
        self.limit = limit
        self.window = window
        self._entries: deque[HistoryEntry] = deque(maxlen=limit)

    def append(self, role: str, content: str) -> HistoryEntry:
        if role not in ROLES:
            raise ValueError(f"Unknown history role {role!r}")
        entry = HistoryEntry(role=role, content=content)
        self._entries.append(entry)
        return entry

    def recent(self, *, exclude_last: int = 0) -> list[ChatMessage]:
        entries = list(self._entries)
        if exclude_last:
            entries = entries[:-exclude_last]
        return [
            ChatMessage(role=e.role, content=e.content)
            for e in entries[-self.window:]
            if e.role != "system"
        ]

    def entries(self) -> list[HistoryEntry]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
