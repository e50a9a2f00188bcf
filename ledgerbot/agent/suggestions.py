"""Prompt suggestions for a partially typed request."""

from __future__ import annotations

import asyncio
import logging
import re
from contextlib import aclosing

from ledgerbot.errors import ModelAPIError
from ledgerbot.llm.providers.base import Provider
from ledgerbot.llm.types import ChatMessage
from ledgerbot.prompts.system import build_suggestion_prompt

logger = logging.getLogger(__name__)

DEFAULT_SUGGESTIONS = (
    "Record a dining expense of 50",
    "Show this month's spending summary",
    "Analyze my dining spending",
    "Set this month's budget to 3000",
    "Show my recent entries",
    "Total income for this year",
    "Find duplicate entries",
    "Show entries that can be balanced",
)

# (words in the input, words a matching suggestion contains); first hit wins.
_KEYWORD_RULES: tuple[tuple[tuple[str, ...], tuple[str, ...]], ...] = (
    (("record", "spent", "paid", "expense", "income"), ("record",)),
    (("show", "view", "stats", "summary", "total"), ("show", "summary", "total")),
    (("analy",), ("analyze",)),
    (("budget",), ("budget",)),
    (("duplicate",), ("duplicate",)),
    (("balance",), ("balanced",)),
)

_LEADING_MARKER = re.compile(r"^(?:[0-9一二三四五六七八九十]+[.、)\]\s]*|[-*•]+)\s*")


def parse_suggestions(text: str, count: int) -> list[str]:
    """Split a model reply into at most *count* suggestions, dropping list markers."""
    suggestions = []
    for line in text.splitlines():
        line = _LEADING_MARKER.sub("", line.strip()).strip()
        if line:
            suggestions.append(line)
    return suggestions[:count]


def fallback_suggestions(user_input: str, count: int) -> list[str]:
    """
    Canned suggestions used when the model is unavailable.

    Suggestions related to keywords in *user_input* come first; the rest of
    the defaults fill up to *count*.
    """
    text = user_input.lower()
    related: list[str] = []
    for needles, markers in _KEYWORD_RULES:
        if any(n in text for n in needles):
            related = [s for s in DEFAULT_SUGGESTIONS if any(m in s.lower() for m in markers)]
            break
    rest = [s for s in DEFAULT_SUGGESTIONS if s not in related]
    return (related + rest)[:count]


class PromptSuggester:
    """
    Asks the model to complete a partial request into *count* suggestions.

    Never raises for model trouble; ``fallback_suggestions`` stands in
    whenever the model gives nothing usable in time.
    """

    def __init__(self, provider: Provider, *, timeout: float = 10.0, max_tokens: int = 200) -> None:
        self.provider = provider
        self.timeout = timeout
        self.max_tokens = max_tokens

    @property
    def available(self) -> bool:
        return True

    async def suggest(self, user_input: str, count: int = 3) -> list[str]:
        if count < 1:
            raise ValueError("count must be at least 1")

        system, user = build_suggestion_prompt(user_input, count)
        messages = [ChatMessage("system", system), ChatMessage("user", user)]
        try:
            text = await asyncio.wait_for(self._complete(messages), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Suggestion request timed out after %.1fs", self.timeout)
            return fallback_suggestions(user_input, count)
        except ModelAPIError as exc:
            logger.warning("Suggestion request failed: %s", exc)
            return fallback_suggestions(user_input, count)

        suggestions = parse_suggestions(text, count)
        if not suggestions:
            logger.info("Model returned no usable suggestions; using defaults")
            return fallback_suggestions(user_input, count)
        return suggestions

    async def _complete(self, messages: list[ChatMessage]) -> str:
        parts: list[str] = []
        async with aclosing(
            self.provider.stream(messages, max_tokens=self.max_tokens, temperature=1.0)
        ) as stream:
            async for delta in stream:
                parts.append(delta.content)
                if delta.is_final:
                    break
        return "".join(parts)
