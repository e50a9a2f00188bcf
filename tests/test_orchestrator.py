"""Tests for the orchestrator core."""

from __future__ import annotations

import json

import pytest

from ledgerbot.agent.history import ConversationHistory
from ledgerbot.agent.messages import (
    MessageKind,
    TextMessage,
    ThinkingMessage,
    ToolCallMessage,
)
from ledgerbot.errors import (
    CancellationRequested,
    IterationLimitExceeded,
    ModelAPIError,
)
from ledgerbot.llm.types import StreamDelta, ToolCallFragment
from ledgerbot.orchestrator.core import Orchestrator, TurnState
from ledgerbot.tools.registry import ToolRegistry
from ledgerbot.types import ConversationContext, ErrorCode
from tests.mock_providers import (
    FailingProvider,
    MockProvider,
    make_looping_tool_provider,
    make_text_provider,
    make_tool_call_provider,
    text_script,
    tool_call_script,
)
from tests.mock_tools import CallRecorder, context_tool, echo_tool, failing_tool, record_tool


class Emissions:
    """Stream callback that keeps every snapshot it receives."""

    def __init__(self) -> None:
        self.snapshots = []
        self.finals = []

    def __call__(self, snapshot, final):
        self.snapshots.append(snapshot)
        self.finals.append(final)


@pytest.fixture
def recorder():
    return CallRecorder()


@pytest.fixture
def registry(recorder):
    reg = ToolRegistry()
    reg.register_all([echo_tool(recorder), record_tool(recorder), failing_tool()])
    return reg


def _orchestrator(registry, provider, **kwargs) -> Orchestrator:
    return Orchestrator(registry=registry, provider=provider, **kwargs)


# ---------------------------------------------------------------------------
# Plain answers
# ---------------------------------------------------------------------------


async def test_no_tools_single_iteration(registry):
    provider = make_text_provider("Hello there friend")
    orch = _orchestrator(registry, provider)
    emissions = Emissions()

    result = await orch.send_message("hi", emissions)

    assert result.state is TurnState.FINALIZED
    assert result.ok
    assert result.iterations == 1
    assert result.tool_rounds == 0
    assert result.text == "Hello there friend"
    assert result.response.loading is False
    assert result.response.tool_calls == []
    assert provider.call_count == 1
    assert emissions.finals[-1] is True
    assert emissions.finals.count(True) == 1


async def test_initial_emission_is_loading_and_empty(registry):
    orch = _orchestrator(registry, make_text_provider("ok"))
    emissions = Emissions()
    await orch.send_message("hi", emissions)
    first = emissions.snapshots[0]
    assert first.loading is True
    assert first.message_list == []
    assert emissions.finals[0] is False


async def test_text_streams_into_single_message(registry):
    orch = _orchestrator(registry, make_text_provider("one two three"))
    emissions = Emissions()
    result = await orch.send_message("count", emissions)

    assert len(result.response.message_list) == 1
    growth = [s.message_list[0].content for s in emissions.snapshots[1:] if s.message_list]
    assert growth[0] == "one "
    assert growth[-1] == "one two three"


async def test_thinking_and_text_alternate(registry):
    provider = MockProvider(scripts=[[
        StreamDelta(thinking="plan "),
        StreamDelta(thinking="more"),
        StreamDelta(content="Answer "),
        StreamDelta(thinking="second thought"),
        StreamDelta(content="done"),
        StreamDelta(is_final=True),
    ]])
    result = await _orchestrator(registry, provider).send_message("q")

    kinds = [m.kind for m in result.response.message_list]
    assert kinds == [
        MessageKind.THINKING,
        MessageKind.TEXT,
        MessageKind.THINKING,
        MessageKind.TEXT,
    ]
    assert result.response.message_list[0].thinking_content == "plan more"
    assert result.text == "Answer done"


async def test_callback_snapshots_are_isolated(registry):
    orch = _orchestrator(registry, make_text_provider("abc def"))

    def vandal(snapshot, final):
        snapshot.message_list.append(TextMessage(content="injected"))
        snapshot.loading = False

    result = await orch.send_message("hi", vandal)
    assert [m.content for m in result.response.message_list] == ["abc def"]


async def test_callback_exception_does_not_abort_turn(registry, caplog):
    def broken(snapshot, final):
        raise RuntimeError("ui crashed")

    result = await _orchestrator(registry, make_text_provider("fine")).send_message("hi", broken)
    assert result.state is TurnState.FINALIZED
    assert "Stream callback failed" in caplog.text


# ---------------------------------------------------------------------------
# Tool rounds
# ---------------------------------------------------------------------------


async def test_tool_round_then_answer(registry, recorder):
    provider = make_tool_call_provider("echo", {"message": "ping"}, final_text="pong")
    emissions = Emissions()
    result = await _orchestrator(registry, provider).send_message("echo ping", emissions)

    assert result.state is TurnState.FINALIZED
    assert result.iterations == 2
    assert result.tool_rounds == 1
    assert recorder.calls == [("echo", {"message": "ping"})]

    calls = result.response.tool_calls
    assert len(calls) == 1
    assert calls[0].id == "call_abc123"
    assert calls[0].loading is False
    assert calls[0].result_message.success
    assert calls[0].result_message.result == {"message": "ping"}
    assert result.response.message_list[-1].content == "pong"


async def test_per_call_emissions(registry):
    script = [
        StreamDelta(tool_call_fragments=[
            ToolCallFragment(index=0, id="c1", name="echo", arguments_chunk='{"message": "a"}'),
            ToolCallFragment(index=1, id="c2", name="echo", arguments_chunk='{"message": "b"}'),
        ]),
        StreamDelta(is_final=True),
    ]
    provider = MockProvider(scripts=[script, text_script("ok")])
    emissions = Emissions()
    await _orchestrator(registry, provider).send_message("two", emissions)

    tool_states = []
    for snap in emissions.snapshots:
        calls = snap.tool_calls
        state = tuple((c.id, c.loading) for c in calls)
        if state and (not tool_states or tool_states[-1] != state):
            tool_states.append(state)

    assert tool_states == [
        (("c1", True),),
        (("c1", False),),
        (("c1", False), ("c2", True)),
        (("c1", False), ("c2", False)),
    ]


async def test_tool_failures_surface_as_results(registry):
    script = [
        StreamDelta(tool_call_fragments=[
            ToolCallFragment(index=0, id="c1", name="record", arguments_chunk='{"name": "x"}'),
            ToolCallFragment(index=1, id="c2", name="boom", arguments_chunk="{}"),
            ToolCallFragment(index=2, id="c3", name="ghost", arguments_chunk="{}"),
            ToolCallFragment(index=3, id="c4", name="echo", arguments_chunk="{oops"),
        ]),
        StreamDelta(is_final=True),
    ]
    provider = MockProvider(scripts=[script, text_script("sorry")])
    result = await _orchestrator(registry, provider).send_message("do it")

    assert result.state is TurnState.FINALIZED
    codes = [c.result_message.error_code for c in result.response.tool_calls]
    assert codes == [
        ErrorCode.VALIDATION_ERROR,
        ErrorCode.TOOL_EXCEPTION,
        ErrorCode.UNKNOWN_TOOL,
        ErrorCode.VALIDATION_ERROR,
    ]
    assert all(c.result_message.error for c in result.response.tool_calls)
    assert result.response.tool_calls[3].arguments == "{oops"


async def test_tool_results_fed_back_as_user_message(registry):
    provider = make_tool_call_provider("echo", {"message": "ping"})
    orch = _orchestrator(registry, provider)
    await orch.send_message("echo ping")

    second_call = provider.calls[1]
    assert second_call[0].role == "system"
    summary = second_call[-1]
    assert summary.role == "user"
    assert summary.content.startswith("Tool execution results:")
    payload = json.loads(summary.content.splitlines()[1])
    assert payload == [{
        "name": "echo",
        "arguments": {"message": "ping"},
        "success": True,
        "result": {"message": "ping"},
    }]


async def test_tools_receive_context(registry):
    registry.register(context_tool())
    provider = make_tool_call_provider("whoami", {})
    orch = _orchestrator(
        registry, provider, context=ConversationContext(book_id="book-7")
    )
    result = await orch.send_message("who")
    assert result.response.tool_calls[0].result_message.result == {"book_id": "book-7"}


async def test_context_provider_wins(registry):
    registry.register(context_tool())
    provider = make_tool_call_provider("whoami", {})
    orch = _orchestrator(
        registry,
        provider,
        context=ConversationContext(book_id="stale"),
        context_provider=lambda: ConversationContext(book_id="fresh"),
    )
    result = await orch.send_message("who")
    assert result.response.tool_calls[0].result_message.result == {"book_id": "fresh"}


# ---------------------------------------------------------------------------
# Iteration ceiling
# ---------------------------------------------------------------------------


async def test_iteration_limit(registry, recorder):
    provider = make_looping_tool_provider("echo", {"message": "again"})
    emissions = Emissions()
    orch = _orchestrator(registry, provider, max_iterations=2)

    result = await orch.send_message("loop", emissions)

    assert result.state is TurnState.TIMED_OUT
    assert provider.call_count == 2
    assert result.tool_rounds == 2
    assert len(recorder) == 2
    assert isinstance(result.error, IterationLimitExceeded)
    assert "maximum of 2 processing rounds" in result.text
    last = result.response.message_list[-1]
    assert isinstance(last, TextMessage)
    assert "maximum of 2" in last.content
    assert result.response.loading is False
    assert emissions.finals[-1] is True
    assert orch.history.entries()[-1].role == "assistant"


def test_max_iterations_must_be_positive(registry):
    with pytest.raises(ValueError):
        _orchestrator(registry, make_text_provider("x"), max_iterations=0)


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


async def test_cancel_before_first_iteration(registry, recorder):
    provider = make_tool_call_provider("echo", {"message": "x"})
    orch = _orchestrator(registry, provider)
    emissions = Emissions()

    def cancel_at_start(snapshot, final):
        emissions(snapshot, final)
        if len(emissions.snapshots) == 1:
            orch.cancel()

    result = await orch.send_message("hi", cancel_at_start)

    assert result.state is TurnState.CANCELLED
    assert isinstance(result.error, CancellationRequested)
    assert result.response.loading is False
    assert result.response.message_list == []
    assert provider.call_count == 0
    assert len(recorder) == 0
    assert emissions.finals[-1] is True


async def test_cancel_mid_stream_stops_consuming(registry):
    provider = MockProvider(scripts=[text_script("a b c d e f")])
    orch = _orchestrator(registry, provider)

    def cancel_on_text(snapshot, final):
        if snapshot.message_list:
            orch.cancel()

    result = await orch.send_message("hi", cancel_on_text)

    assert result.state is TurnState.CANCELLED
    assert result.text == "a "
    assert provider.closed == 1


async def test_cancel_after_tools_skips_next_model_call(registry, recorder):
    provider = make_tool_call_provider("echo", {"message": "x"})
    orch = _orchestrator(registry, provider)

    def cancel_on_settle(snapshot, final):
        calls = snapshot.tool_calls
        if calls and not calls[-1].loading:
            orch.cancel()

    result = await orch.send_message("hi", cancel_on_settle)

    assert result.state is TurnState.CANCELLED
    assert len(recorder) == 1
    assert provider.call_count == 1


async def test_cancel_flag_resets_between_turns(registry):
    orch = _orchestrator(registry, make_text_provider("ok"))
    orch.cancel()
    result = await orch.send_message("hi")
    assert result.state is TurnState.FINALIZED


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


async def test_model_error_degrades_turn(registry):
    provider = FailingProvider("connection refused", status_code=503)
    emissions = Emissions()
    orch = _orchestrator(registry, provider)

    result = await orch.send_message("hi", emissions)

    assert result.state is TurnState.ERROR
    assert isinstance(result.error, ModelAPIError)
    assert result.error.status_code == 503
    assert result.response.error is True
    assert result.response.loading is False
    last = result.response.message_list[-1]
    assert isinstance(last, TextMessage) and last.error
    assert "connection refused" in last.content
    assert emissions.finals[-1] is True
    assert not orch.is_running

    with pytest.raises(ModelAPIError):
        result.raise_for_state()


async def test_unexpected_transport_exception_wrapped(registry):
    class Exploding(MockProvider):
        async def stream(self, messages, *, max_tokens=1000, temperature=0.7):
            yield StreamDelta(content="partial ")
            raise OSError("socket closed")

    result = await _orchestrator(registry, Exploding()).send_message("hi")
    assert result.state is TurnState.ERROR
    assert isinstance(result.error, ModelAPIError)
    assert isinstance(result.error.__cause__, OSError)
    assert result.response.message_list[0].content == "partial "


async def test_conversation_continues_after_error(registry):
    orch = _orchestrator(registry, FailingProvider())
    await orch.send_message("first")
    orch.provider = make_text_provider("recovered")
    result = await orch.send_message("second")
    assert result.state is TurnState.FINALIZED


class FlakyContext:
    """Context provider that starts raising after *ok_calls* successful calls."""

    def __init__(self, ok_calls: int) -> None:
        self.ok_calls = ok_calls
        self.calls = 0

    def __call__(self) -> ConversationContext:
        self.calls += 1
        if self.calls > self.ok_calls:
            raise RuntimeError("book store unavailable")
        return ConversationContext(book_id="book-1")


@pytest.mark.parametrize("ok_calls", [0, 1])
async def test_context_provider_failure_degrades_turn(registry, recorder, ok_calls):
    # ok_calls=1 fails while resolving the context for tool execution.
    provider = make_tool_call_provider("echo", {"message": "ping"})
    emissions = Emissions()
    orch = _orchestrator(registry, provider, context_provider=FlakyContext(ok_calls))

    result = await orch.send_message("hi", emissions)

    assert result.state is TurnState.ERROR
    assert isinstance(result.error.__cause__, RuntimeError)
    assert result.response.loading is False
    assert "book store unavailable" in result.response.message_list[-1].content
    assert emissions.finals[-1] is True
    assert recorder.calls == []
    assert not orch.is_running


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


async def test_history_replay_does_not_duplicate_input(registry):
    provider = MockProvider(scripts=[text_script("first answer"), text_script("second")])
    orch = _orchestrator(registry, provider)
    await orch.send_message("first question")
    await orch.send_message("second question")

    roles_contents = [(m.role, m.content) for m in provider.calls[1]]
    assert roles_contents[1:] == [
        ("user", "first question"),
        ("assistant", "first answer"),
        ("user", "second question"),
    ]


async def test_history_window_respected(registry):
    provider = make_text_provider("ok")
    orch = _orchestrator(
        registry, provider, history=ConversationHistory(limit=100, window=2)
    )
    for i in range(3):
        await orch.send_message(f"q{i}")
    # system + 2 replayed + current
    assert len(provider.last_messages) == 4


async def test_clear_history(registry):
    orch = _orchestrator(registry, make_text_provider("ok"))
    await orch.send_message("hi")
    orch.clear_history()
    assert len(orch.history) == 0


async def test_system_prompt_lists_tools(registry):
    provider = make_text_provider("ok")
    await _orchestrator(registry, provider).send_message("hi")
    system = provider.last_messages[0].content
    for name in ("echo", "record", "boom"):
        assert f"**{name}**" in system
