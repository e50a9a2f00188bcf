"""
Folds streamed ``StreamDelta`` objects into content, thinking and tool calls.

Design goals:
  - Accumulate ``ToolCallFragment`` pieces keyed by ``index``.  The ``id``
    and ``name`` of an accumulator are set once and never overwritten; the
    argument string only ever grows, in arrival order.
  - On a final chunk, JSON-parse every named accumulator.  A parse failure
    degrades to the raw argument string and is logged; it never raises.
  - Finalizing is idempotent: the tool-call list is rebuilt from the
    accumulators each time, so a repeated final chunk cannot duplicate it.

One parser serves one turn; ``reset()`` clears everything between turns.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

from ledgerbot.errors import StreamProtocolError
from ledgerbot.llm.types import StreamDelta, ToolCall, ToolCallFragment

logger = logging.getLogger(__name__)


@dataclass
class _Accumulator:
    id: str = ""
    name: str = ""
    arguments: str = ""


@dataclass
class ParseResult:
    content: str
    thinking: str | None
    tool_calls: list[ToolCall]
    content_delta: str = ""
    thinking_delta: str = ""
    finalized: bool = False


@dataclass
class StreamMessageParser:
    """Per-turn state machine over a sequence of stream deltas."""

    content: str = ""
    thinking: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    _accumulators: dict[int, _Accumulator] = field(default_factory=dict, repr=False)
    _dirty: bool = field(default=False, repr=False)
    _finalized: bool = field(default=False, repr=False)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def process_chunk(self, delta: StreamDelta, is_final: bool | None = None) -> ParseResult:
        """
        Feed one delta.

        *is_final* defaults to ``delta.is_final``.  Returns the cumulative
        content, the cumulative thinking (``None`` while empty) and the list
        of finalized tool calls, which stays empty until a final chunk.
        """
        if is_final is None:
            is_final = delta.is_final

        if delta.content:
            self.content += delta.content
        if delta.thinking:
            self.thinking += delta.thinking

        for fragment in delta.tool_call_fragments or ():
            try:
                self._feed(fragment)
            except StreamProtocolError as exc:
                logger.warning("Skipping tool-call fragment: %s", exc)
                self.errors.append(str(exc))

        if is_final:
            self.finalize()

        return ParseResult(
            content=self.content,
            thinking=self.thinking or None,
            tool_calls=list(self.tool_calls),
            content_delta=delta.content or "",
            thinking_delta=delta.thinking or "",
            finalized=self._finalized,
        )

    def finalize(self) -> list[ToolCall]:
        """Build the tool-call list from the accumulators."""
        if self._finalized and not self._dirty:
            return list(self.tool_calls)

        calls: list[ToolCall] = []
        for idx in sorted(self._accumulators):
            acc = self._accumulators[idx]
            if not acc.name:
                continue
            calls.append(
                ToolCall(
                    name=acc.name,
                    arguments=self._parse_arguments(idx, acc),
                    id=acc.id or None,
                )
            )

        self.tool_calls = calls
        self._finalized = True
        self._dirty = False
        return list(calls)

    def reset(self) -> None:
        """Discard all accumulated state."""
        self.content = ""
        self.thinking = ""
        self.tool_calls = []
        self.errors = []
        self._accumulators.clear()
        self._dirty = False
        self._finalized = False

    def has_pending(self) -> bool:
        """``True`` when fragments arrived that no final chunk has covered yet."""
        return self._dirty

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _feed(self, fragment: ToolCallFragment) -> None:
        index = fragment.index
        if isinstance(index, bool) or not isinstance(index, int):
            raise StreamProtocolError(f"tool-call fragment has invalid index {index!r}")
        for attr in ("id", "name", "arguments_chunk"):
            value = getattr(fragment, attr)
            if value is not None and not isinstance(value, str):
                raise StreamProtocolError(f"tool-call fragment {attr} is not a string: {value!r}")

        acc = self._accumulators.setdefault(index, _Accumulator())
        if fragment.id and not acc.id:
            acc.id = fragment.id
        if fragment.name and not acc.name:
            acc.name = fragment.name.strip()
        if fragment.arguments_chunk:
            acc.arguments += fragment.arguments_chunk
        self._dirty = True

    def _parse_arguments(self, idx: int, acc: _Accumulator) -> dict | str:
        if not acc.arguments.strip():
            return {}
        try:
            return json.loads(acc.arguments)
        except (json.JSONDecodeError, ValueError) as exc:
            self.errors.append(f"tool_call_json_parse_failed idx={idx} err={exc}")
            logger.warning(
                "Could not parse arguments for tool call %s (index %d): %s",
                acc.name,
                idx,
                acc.arguments[:200],
            )
            return acc.arguments
