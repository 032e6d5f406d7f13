"""Tests for wire line decoding and outward event translation."""

import json

import pytest

from relayagent.core.wire import decode_line, normalize_kind, terminal_event, to_stream_event
from relayagent.models.wire import WireEvent, WireEventKind


class TestDecodeLine:
    """Tests for decode_line."""

    @pytest.mark.parametrize(
        "spelling,kind",
        [
            ("turn_begin", WireEventKind.TURN_BEGIN),
            ("TurnBegin", WireEventKind.TURN_BEGIN),
            ("text_part", WireEventKind.TEXT_PART),
            ("TextPart", WireEventKind.TEXT_PART),
            ("ThinkPart", WireEventKind.THINK_PART),
            ("tool_call", WireEventKind.TOOL_CALL),
            ("ToolResult", WireEventKind.TOOL_RESULT),
            ("StepBegin", WireEventKind.STEP_BEGIN),
            ("step_end", WireEventKind.STEP_END),
            ("TurnEnd", WireEventKind.TURN_END),
            ("Error", WireEventKind.ERROR),
        ],
    )
    def test_recognized_spellings(self, spelling, kind):
        event = decode_line(json.dumps({"type": spelling}))
        assert event.kind == kind

    def test_msg_type_discriminator(self):
        event = decode_line('{"msg_type": "text_part", "content": "hi"}')
        assert event.kind == WireEventKind.TEXT_PART
        assert event.text == "hi"

    def test_text_part_extracts_content(self):
        event = decode_line('{"type": "text_part", "content": "hello"}')
        assert event.text == "hello"
        assert event.payload == {"content": "hello"}

    def test_text_part_without_content(self):
        event = decode_line('{"type": "text_part"}')
        assert event.kind == WireEventKind.TEXT_PART
        assert event.text is None

    def test_error_message_defaults(self):
        assert decode_line('{"type": "error", "message": "boom"}').text == "boom"
        assert decode_line('{"type": "error"}').text == "Unknown error"

    def test_turn_begin_user_input(self):
        event = decode_line('{"type": "TurnBegin", "user_input": "do it"}')
        assert event.user_input == "do it"
        assert decode_line('{"type": "TurnBegin"}').user_input == ""

    @pytest.mark.parametrize(
        "line",
        [
            "plain output from an old agent",
            "{not json",
            "[1, 2, 3]",
            '"just a string"',
            '{"content": "no type"}',
            '{"type": "mystery_event"}',
            '{"type": 42}',
        ],
    )
    def test_fallback_to_plain_text(self, line):
        event = decode_line(line)
        assert event.kind == WireEventKind.PLAIN_TEXT
        assert event.text == line
        assert event.raw == line

    @pytest.mark.parametrize("line", ["", "   ", "\t"])
    def test_blank_lines_dropped(self, line):
        assert decode_line(line) is None

    def test_redecode_is_stable(self):
        line = '{"type": "tool_call", "id": "c1", "function": {"name": "Shell"}}'
        assert decode_line(line) == decode_line(decode_line(line).raw)

    def test_normalize_kind(self):
        assert normalize_kind("turn-begin") == WireEventKind.TURN_BEGIN
        assert normalize_kind("nope") is None


class TestToStreamEvent:
    """Tests for translating wire events into outward events."""

    def test_chunk_from_text_part(self):
        out = to_stream_event(decode_line('{"type": "text_part", "content": "x"}'), "s1")
        assert out.event == "chunk"
        assert out.data == {"session_id": "s1", "content": "x"}

    def test_chunk_from_plain_text(self):
        out = to_stream_event(WireEvent.plain("raw line"), "s1")
        assert out.event == "chunk"
        assert out.data["content"] == "raw line"

    def test_tool_call_and_result_carry_payload(self):
        call = to_stream_event(decode_line('{"type": "ToolCall", "id": "c1"}'), "s1")
        result = to_stream_event(decode_line('{"type": "ToolResult", "tool_call_id": "c1"}'), "s1")
        assert call.event == "tool_call"
        assert call.data == {"session_id": "s1", "data": {"id": "c1"}}
        assert result.event == "tool_result"
        assert result.data["data"] == {"tool_call_id": "c1"}

    def test_step_events(self):
        assert to_stream_event(decode_line('{"type": "StepBegin"}'), "s").event == "step_begin"
        assert to_stream_event(decode_line('{"type": "StepEnd"}'), "s").event == "step_end"
        assert to_stream_event(decode_line('{"type": "TurnEnd"}'), "s").event == "step_end"

    def test_error_event(self):
        out = to_stream_event(decode_line('{"type": "Error", "message": "bad"}'), "s1")
        assert out.event == "error"
        assert out.data == {"session_id": "s1", "message": "bad"}

    def test_silent_kinds(self):
        assert to_stream_event(decode_line('{"type": "TurnBegin"}'), "s") is None
        assert to_stream_event(decode_line('{"type": "ThinkPart", "think": "hm"}'), "s") is None
        assert to_stream_event(decode_line('{"type": "TextPart"}'), "s") is None

    def test_terminal_event(self):
        done = terminal_event("done", "s1")
        assert done.event == "done"
        assert done.data == {"session_id": "s1"}
        assert done.is_terminal
