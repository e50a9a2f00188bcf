"""Tests for the StreamMessageParser."""

import pytest

from ledgerbot.errors import StreamProtocolError
from ledgerbot.llm.stream_parser import StreamMessageParser
from ledgerbot.llm.types import StreamDelta, ToolCall, ToolCallFragment


def _frag(index=0, id=None, name=None, args=None):
    return StreamDelta(tool_call_fragments=[
        ToolCallFragment(index=index, id=id, name=name, arguments_chunk=args)
    ])


class TestWireExample:
    def test_three_chunk_create_flow(self):
        """Wire-format chunks fold into one finalized call."""
        parser = StreamMessageParser()
        chunks = [
            {"tool_calls": [{"index": 0, "id": "a", "function": {"name": "create_flow"}}]},
            {"tool_calls": [{"index": 0, "function": {"arguments": '{"name":"lunch"'}}]},
            {"tool_calls": [{"index": 0, "function": {"arguments": ',"money":50}'}}]},
        ]
        r1 = parser.process_chunk(StreamDelta.from_wire(chunks[0]))
        r2 = parser.process_chunk(StreamDelta.from_wire(chunks[1]))
        r3 = parser.process_chunk(StreamDelta.from_wire(chunks[2], is_final=True))

        assert r1.tool_calls == []
        assert r2.tool_calls == []
        assert r3.tool_calls == [
            ToolCall(name="create_flow", arguments={"name": "lunch", "money": 50}, id="a")
        ]
        assert r3.finalized


class TestAccumulation:
    def test_id_and_name_set_once(self):
        parser = StreamMessageParser()
        parser.process_chunk(_frag(id="first", name="echo"))
        parser.process_chunk(_frag(id="second", name="other", args='{"message": "x"}'))
        calls = parser.finalize()
        assert calls == [ToolCall(name="echo", arguments={"message": "x"}, id="first")]

    def test_parallel_calls_ordered_by_index(self):
        parser = StreamMessageParser()
        parser.process_chunk(_frag(index=1, id="b", name="second"))
        parser.process_chunk(_frag(index=0, id="a", name="first"))
        parser.process_chunk(_frag(index=1, args='{"n": 2}'))
        parser.process_chunk(_frag(index=0, args='{"n": 1}'))
        result = parser.process_chunk(StreamDelta(is_final=True))
        assert [c.name for c in result.tool_calls] == ["first", "second"]
        assert [c.arguments for c in result.tool_calls] == [{"n": 1}, {"n": 2}]

    def test_unnamed_accumulator_skipped(self):
        parser = StreamMessageParser()
        parser.process_chunk(_frag(index=0, args='{"x": 1}'))
        assert parser.finalize() == []

    def test_empty_arguments_become_empty_object(self):
        parser = StreamMessageParser()
        result = parser.process_chunk(_frag(name="get_budget"), is_final=True)
        assert result.tool_calls == [ToolCall(name="get_budget", arguments={})]

    def test_malformed_arguments_degrade_to_raw_string(self, caplog):
        parser = StreamMessageParser()
        parser.process_chunk(_frag(name="create_flow", args='{"money": INVALID'))
        calls = parser.finalize()
        assert calls == [ToolCall(name="create_flow", arguments='{"money": INVALID')]
        assert parser.errors
        assert "Could not parse arguments" in caplog.text

    def test_invalid_index_skipped(self, caplog):
        parser = StreamMessageParser()
        parser.process_chunk(_frag(index="zero", name="bad"))
        parser.process_chunk(_frag(index=0, name="good"))
        assert [c.name for c in parser.finalize()] == ["good"]
        assert len(parser.errors) == 1

    @pytest.mark.parametrize("fragment", [
        {"name": 7},
        {"id": ["a"], "name": "good"},
        {"name": "good", "args": {"money": 1}},
    ])
    def test_non_string_fragment_fields_skipped(self, fragment, caplog):
        parser = StreamMessageParser()
        parser.process_chunk(_frag(**fragment))
        parser.process_chunk(_frag(index=1, name="ok", args="{}"))
        assert parser.finalize() == [ToolCall(name="ok", arguments={})]
        assert len(parser.errors) == 1
        assert "Skipping tool-call fragment" in caplog.text


class TestContent:
    def test_cumulative_content_and_thinking(self):
        parser = StreamMessageParser()
        r = parser.process_chunk(StreamDelta(thinking="hmm "))
        assert r.content == ""
        assert r.thinking == "hmm "
        r = parser.process_chunk(StreamDelta(content="Hello "))
        r = parser.process_chunk(StreamDelta(content="world", thinking="ok"))
        assert r.content == "Hello world"
        assert r.thinking == "hmm ok"
        assert r.content_delta == "world"
        assert r.thinking_delta == "ok"

    def test_thinking_none_while_empty(self):
        r = StreamMessageParser().process_chunk(StreamDelta(content="hi"))
        assert r.thinking is None

    def test_from_wire_reasoning_content(self):
        delta = StreamDelta.from_wire({"reasoning_content": "because", "content": None})
        assert delta.thinking == "because"
        assert delta.content == ""

    @pytest.mark.parametrize("wire", [
        {"content": 5},
        {"tool_calls": "call"},
        {"tool_calls": [{"index": 0, "function": "oops"}]},
        None,
    ])
    def test_from_wire_rejects_wrong_types(self, wire):
        with pytest.raises(StreamProtocolError):
            StreamDelta.from_wire(wire)


class TestFinalize:
    def test_idempotent_finalize(self):
        parser = StreamMessageParser()
        parser.process_chunk(_frag(id="a", name="create_flow", args='{"money": 5}'))
        first = parser.process_chunk(StreamDelta(is_final=True)).tool_calls
        second = parser.process_chunk(StreamDelta(is_final=True)).tool_calls
        assert first == second
        assert len(second) == 1

    def test_finalize_twice_directly(self):
        parser = StreamMessageParser()
        parser.process_chunk(_frag(name="a", args="{}"))
        parser.process_chunk(_frag(index=1, name="b", args='{"k": 1}'))
        assert parser.finalize() == parser.finalize()

    def test_fragments_after_final_are_merged_not_duplicated(self):
        parser = StreamMessageParser()
        parser.process_chunk(_frag(name="create_flow", args='{"money":'), is_final=True)
        assert parser.has_pending() is False
        parser.process_chunk(_frag(args=" 5}"))
        assert parser.has_pending() is True
        calls = parser.process_chunk(StreamDelta(is_final=True)).tool_calls
        assert calls == [ToolCall(name="create_flow", arguments={"money": 5})]

    def test_is_final_argument_overrides_delta(self):
        parser = StreamMessageParser()
        r = parser.process_chunk(_frag(name="echo"), is_final=True)
        assert len(r.tool_calls) == 1


class TestReset:
    def test_reset_clears_everything(self):
        parser = StreamMessageParser()
        parser.process_chunk(StreamDelta(content="x", thinking="y"))
        parser.process_chunk(_frag(name="create_flow", args="{bad"), is_final=True)
        parser.reset()
        r = parser.process_chunk(StreamDelta(is_final=True))
        assert r.content == ""
        assert r.thinking is None
        assert r.tool_calls == []
        assert parser.errors == []
