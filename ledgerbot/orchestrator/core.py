"""
Orchestrator core -- the bounded agent loop of one conversation turn.

The orchestrator:
1. Takes user input and records it in the conversation history
2. Builds the system prompt and replays recent history to the model
3. Streams the completion through the ``StreamMessageParser``, growing a
   single ``AIMessage`` and reporting every change to the caller
4. Runs detected tool calls one by one through the ``ToolRegistry``
5. Feeds a summary of the tool results back to the model and loops
6. Stops on a final answer, the iteration ceiling, cancellation or a
   model transport failure

States::

    INIT -> STREAMING -> (TOOL_EXECUTION -> STREAMING)* ->
        FINALIZED | TIMED_OUT | CANCELLED | ERROR
"""

from __future__ import annotations

import json
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from ledgerbot.agent.history import ConversationHistory
from ledgerbot.agent.messages import (
    AIMessage,
    TextMessage,
    ToolCallMessage,
    ToolResultMessage,
    append_text,
    append_thinking,
)
from ledgerbot.agent.suggestions import PromptSuggester
from ledgerbot.errors import (
    CancellationRequested,
    IterationLimitExceeded,
    LedgerbotError,
    ModelAPIError,
)
from ledgerbot.llm.providers.base import Provider
from ledgerbot.llm.stream_parser import StreamMessageParser
from ledgerbot.llm.types import ChatMessage, ToolCall
from ledgerbot.prompts.system import PromptBuilder, build_system_prompt
from ledgerbot.tools.registry import ToolRegistry
from ledgerbot.types import ConversationContext, ToolResult

logger = logging.getLogger(__name__)

StreamCallback = Callable[[AIMessage, bool], None]

DEFAULT_MAX_ITERATIONS = 100


class TurnState(str, Enum):
    INIT = "init"
    STREAMING = "streaming"
    TOOL_EXECUTION = "tool_execution"
    FINALIZED = "finalized"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclass
class IterationState:
    """Mutable bookkeeping for one user turn; discarded when the turn ends."""

    max_iterations: int
    current_input: str
    response: AIMessage
    iteration: int = 0
    tool_rounds: int = 0
    accumulated_text: str = ""
    cancelled: bool = False
    state: TurnState = TurnState.INIT


@dataclass
class TurnResult:
    response: AIMessage
    text: str
    state: TurnState
    iterations: int = 0
    tool_rounds: int = 0
    error: LedgerbotError | None = field(default=None)

    @property
    def ok(self) -> bool:
        return self.state is TurnState.FINALIZED

    def raise_for_state(self) -> None:
        """Raise the terminal-state error, if the turn did not finalize normally."""
        if self.error is not None:
            raise self.error


class Orchestrator:
    """
    Drives one conversation turn at a time.

    Parameters
    ----------
    registry : ToolRegistry
        Tools the model may call.
    provider : Provider
        Streaming model transport.
    prompt_builder : callable
        ``(tools, context) -> str`` producing the system prompt.
    context : ConversationContext
        Application context (current book, user) passed to tools.
    context_provider : callable
        Optional zero-argument callable returning a fresh context per
        iteration; takes precedence over *context*.
    history : ConversationHistory
        Replayed history; a new one is created when omitted.
    max_iterations : int
        Ceiling on model calls within one turn.
    max_tokens, temperature :
        Completion settings sent with every model call.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        provider: Provider,
        prompt_builder: PromptBuilder = build_system_prompt,
        *,
        context: ConversationContext | None = None,
        context_provider: Callable[[], ConversationContext] | None = None,
        history: ConversationHistory | None = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        max_tokens: int = 1000,
        temperature: float = 0.7,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.registry = registry
        self.provider = provider
        self.prompt_builder = prompt_builder
        self.context = context or ConversationContext()
        self.context_provider = context_provider
        self.history = history if history is not None else ConversationHistory()
        self.max_iterations = max_iterations
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.parser = StreamMessageParser()
        self._cancel_requested = False
        self._running = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    def cancel(self) -> None:
        """
        Request cooperative cancellation of the running turn.

        Honoured at loop entry, between stream deltas and before and after
        tool execution.  A tool that is already executing runs to completion.
        """
        if self._running:
            logger.info("Cancellation requested")
        self._cancel_requested = True

    def clear_history(self) -> None:
        self.history.clear()

    async def suggest(self, user_input: str, count: int = 3) -> list[str]:
        """Complete a partially typed request into *count* suggestions; see ``PromptSuggester``."""
        return await PromptSuggester(self.provider).suggest(user_input, count)

    async def send_message(
        self,
        text: str,
        callback: StreamCallback | None = None,
    ) -> TurnResult:
        """
        Run one user turn to completion.

        *callback* receives ``(snapshot, is_final)`` after every change to the
        turn's ``AIMessage``.  Model transport failures are reported in the
        returned ``TurnResult`` and never raised.
        """
        if self._running:
            raise RuntimeError("A turn is already in progress")

        self._running = True
        self._cancel_requested = False
        self.parser.reset()
        state = IterationState(
            max_iterations=self.max_iterations,
            current_input=text,
            response=AIMessage(loading=True),
        )
        try:
            self.history.append("user", text)
            self._emit(callback, state.response, False)
            return await self._run(state, callback)
        finally:
            self._running = False

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _run(self, state: IterationState, callback: StreamCallback | None) -> TurnResult:
        while True:
            if self._cancel_requested:
                return self._finish_cancelled(state, callback)

            if state.iteration >= state.max_iterations:
                return self._finish_timed_out(state, callback)

            state.iteration += 1
            state.state = TurnState.STREAMING
            logger.debug("Iteration %d/%d", state.iteration, state.max_iterations)

            try:
                tool_calls, streamed_text = await self._stream_iteration(state, callback)
            except Exception as exc:
                return self._finish_error(state, callback, exc)

            state.accumulated_text += streamed_text

            if self._cancel_requested:
                return self._finish_cancelled(state, callback)

            if not tool_calls:
                return self._finish_final(state, callback)

            state.state = TurnState.TOOL_EXECUTION
            logger.debug(
                "Iteration %d requested tools: %s",
                state.iteration,
                [c.name for c in tool_calls],
            )
            try:
                results = await self._execute_tool_calls(tool_calls, state, callback)
            except Exception as exc:
                return self._finish_error(state, callback, exc)
            state.tool_rounds += 1

            if self._cancel_requested:
                return self._finish_cancelled(state, callback)

            summary = self._build_tool_results_message(tool_calls, results)
            self.history.append("user", summary)
            state.current_input = summary

    async def _stream_iteration(
        self,
        state: IterationState,
        callback: StreamCallback | None,
    ) -> tuple[list[ToolCall], str]:
        """Run one model call.  Returns the finalized tool calls and the streamed text."""
        self.parser.reset()
        system_prompt = self.prompt_builder(self.registry.list(), self._current_context())
        # The current input is already the newest history entry.
        messages = [
            ChatMessage(role="system", content=system_prompt),
            *self.history.recent(exclude_last=1),
            ChatMessage(role="user", content=state.current_input),
        ]

        response = state.response
        saw_final = False
        async with aclosing(
            self.provider.stream(
                messages, max_tokens=self.max_tokens, temperature=self.temperature
            )
        ) as stream:
            async for delta in stream:
                result = self.parser.process_chunk(delta)

                changed = False
                if result.thinking_delta:
                    append_thinking(response.message_list, result.thinking_delta)
                    changed = True
                if result.content_delta:
                    append_text(response.message_list, result.content_delta)
                    changed = True
                if changed:
                    self._emit(callback, response, False)

                if self._cancel_requested:
                    logger.info("Stopping stream at iteration %d: cancelled", state.iteration)
                    return [], self.parser.content
                if delta.is_final:
                    saw_final = True
                    break

        if not saw_final:
            logger.warning("Stream ended without a final delta; finalizing anyway")
        tool_calls = self.parser.finalize()
        return tool_calls, self.parser.content

    async def _execute_tool_calls(
        self,
        tool_calls: list[ToolCall],
        state: IterationState,
        callback: StreamCallback | None,
    ) -> list[ToolResult]:
        """Run *tool_calls* in order, reporting each one before and after it settles."""
        response = state.response
        context = self._current_context()
        results: list[ToolResult] = []

        for call in tool_calls:
            message_id = call.id if call.id and response.find(call.id) is None else ""
            message = ToolCallMessage(
                id=message_id,
                tool_name=call.name,
                arguments=call.arguments,
                loading=True,
            )
            response.message_list.append(message)
            self._emit(callback, response, False)

            result = await self.registry.invoke_safe(call.name, call.arguments, context)
            message.settle(
                ToolResultMessage(
                    tool_name=call.name,
                    success=result.success,
                    result=result.data,
                    error_message=result.error,
                    error_code=result.error_code,
                    duration_ms=result.duration_ms,
                    error=not result.success,
                )
            )
            self._emit(callback, response, False)
            results.append(result)

        return results

    # ------------------------------------------------------------------
    # Terminal states
    # ------------------------------------------------------------------

    def _finish(
        self,
        state: IterationState,
        callback: StreamCallback | None,
        turn_state: TurnState,
        error: LedgerbotError | None = None,
    ) -> TurnResult:
        state.state = turn_state
        state.response.loading = False
        self._emit(callback, state.response, True)
        logger.debug(
            "Turn finished: state=%s iterations=%d tool_rounds=%d",
            turn_state.value,
            state.iteration,
            state.tool_rounds,
        )
        return TurnResult(
            response=state.response,
            text=state.accumulated_text,
            state=turn_state,
            iterations=state.iteration,
            tool_rounds=state.tool_rounds,
            error=error,
        )

    def _finish_final(self, state: IterationState, callback: StreamCallback | None) -> TurnResult:
        if state.accumulated_text:
            self.history.append("assistant", state.accumulated_text)
        return self._finish(state, callback, TurnState.FINALIZED)

    def _finish_cancelled(self, state: IterationState, callback: StreamCallback | None) -> TurnResult:
        state.cancelled = True
        logger.info("Turn cancelled at iteration %d", state.iteration)
        return self._finish(
            state,
            callback,
            TurnState.CANCELLED,
            CancellationRequested("The turn was cancelled"),
        )

    def _finish_timed_out(self, state: IterationState, callback: StreamCallback | None) -> TurnResult:
        limit = IterationLimitExceeded(state.max_iterations)
        notice = f"{limit}. The request may not be complete."
        if state.accumulated_text:
            state.accumulated_text += "\n\n"
        state.accumulated_text += notice
        state.response.message_list.append(TextMessage(content=notice))
        self.history.append("assistant", state.accumulated_text)
        logger.warning("Iteration ceiling of %d reached", state.max_iterations)
        return self._finish(state, callback, TurnState.TIMED_OUT, limit)

    def _finish_error(
        self,
        state: IterationState,
        callback: StreamCallback | None,
        exc: Exception,
    ) -> TurnResult:
        if isinstance(exc, ModelAPIError):
            logger.warning("Model call failed: %s", exc)
            error = exc
        else:
            logger.exception("Turn failed at iteration %d", state.iteration)
            error = ModelAPIError(str(exc))
            error.__cause__ = exc

        notice = (
            f"Sorry, the assistant request failed: {exc}\n\n"
            "Check the network connection or try again later."
        )
        state.response.message_list.append(TextMessage(content=notice, error=True))
        state.response.error = True
        return self._finish(state, callback, TurnState.ERROR, error)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _current_context(self) -> ConversationContext:
        if self.context_provider is not None:
            return self.context_provider()
        return self.context

    @staticmethod
    def _emit(callback: StreamCallback | None, response: AIMessage, final: bool) -> None:
        if callback is None:
            return
        try:
            callback(response.snapshot(), final)
        except Exception:
            logger.exception("Stream callback failed")

    @staticmethod
    def _build_tool_results_message(
        tool_calls: list[ToolCall], results: list[ToolResult]
    ) -> str:
        entries = []
        for call, result in zip(tool_calls, results):
            entry: dict = {
                "name": call.name,
                "arguments": call.arguments,
                "success": result.success,
            }
            if result.success:
                entry["result"] = result.data
            else:
                entry["error"] = result.error
                entry["error_code"] = result.error_code
            entries.append(entry)
        return (
            "Tool execution results:\n"
            f"{json.dumps(entries, ensure_ascii=False, default=str)}\n\n"
            "Continue based on these results or give the final answer."
        )
