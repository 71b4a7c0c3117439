"""Tests for the line stream parser."""

from __future__ import annotations

import json
import random
from typing import Any

import pytest

from subspawn.spawn.events import (
    MessageEndEvent,
    ResponseEvent,
    ResultEvent,
    ToolExecutionStartEvent,
)
from subspawn.spawn.parser import LineStreamParser, OutputLimitExceeded, decode_event

# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _line(obj: dict[str, Any]) -> bytes:
    return json.dumps(obj, ensure_ascii=False).encode() + b"\n"


_EVENTS: list[dict[str, Any]] = [
    {"type": "tool_execution_start", "toolName": "read", "args": {"path": "a.py"}, "toolCallId": "c1"},
    {"type": "tool_execution_end", "toolName": "read", "toolCallId": "c1", "isError": False},
    {"type": "message_update", "assistantMessageEvent": {"type": "text_delta", "delta": "héllo ✓"}},
    {
        "type": "message_end",
        "message": {
            "role": "assistant",
            "content": [{"type": "text", "text": "résumé, done ⠋"}],
            "usage": {"input": 10, "output": 5},
            "stopReason": "end_turn",
        },
    },
    {"type": "result", "result": "final answer"},
]

_STREAM = b"".join(_line(e) for e in _EVENTS)


def _feed_chunks(chunks: list[bytes]) -> list[Any]:
    parser = LineStreamParser()
    events: list[Any] = []
    for chunk in chunks:
        events.extend(parser.feed(chunk))
    events.extend(parser.close())
    return events


def _split_at(data: bytes, points: list[int]) -> list[bytes]:
    bounds = [0, *sorted(points), len(data)]
    return [data[a:b] for a, b in zip(bounds, bounds[1:])]


# ------------------------------------------------------------------ #
# decode_event
# ------------------------------------------------------------------ #


class TestDecodeEvent:
    def test_known_tag_decodes_to_model(self) -> None:
        event = decode_event('{"type":"tool_execution_start","toolName":"bash","args":{"command":"ls"}}')
        assert isinstance(event, ToolExecutionStartEvent)
        assert event.tool_name == "bash"
        assert event.args == {"command": "ls"}

    def test_response_ack_decodes(self) -> None:
        event = decode_event('{"type":"response","command":"prompt","success":true}')
        assert isinstance(event, ResponseEvent)

    @pytest.mark.parametrize(
        "line",
        [
            "",
            "   ",
            "not json",
            '{"type":"message_end"',
            "[1, 2, 3]",
            '"just a string"',
            '{"no_type": 1}',
            '{"type":"agent_end"}',
            '{"type": 42}',
        ],
    )
    def test_garbage_returns_none(self, line: str) -> None:
        assert decode_event(line) is None

    def test_extra_fields_are_ignored(self) -> None:
        event = decode_event('{"type":"result","result":"ok","sessionId":"abc"}')
        assert isinstance(event, ResultEvent)
        assert event.result == "ok"

    def test_message_end_without_message(self) -> None:
        event = decode_event('{"type":"message_end"}')
        assert isinstance(event, MessageEndEvent)
        assert event.message is None

    def test_trailing_carriage_return_tolerated(self) -> None:
        assert isinstance(decode_event('{"type":"result","result":"x"}\r'), ResultEvent)


# ------------------------------------------------------------------ #
# Chunk reassembly
# ------------------------------------------------------------------ #


class TestChunkBoundaryInvariance:
    def test_whole_stream_yields_all_events(self) -> None:
        events = _feed_chunks([_STREAM])
        assert [e.type for e in events] == [e["type"] for e in _EVENTS]

    def test_byte_at_a_time_matches_whole(self) -> None:
        whole = _feed_chunks([_STREAM])
        split = _feed_chunks([_STREAM[i : i + 1] for i in range(len(_STREAM))])
        assert split == whole

    @pytest.mark.parametrize("size", [2, 3, 7, 16, 61])
    def test_fixed_size_chunks_match_whole(self, size: int) -> None:
        whole = _feed_chunks([_STREAM])
        chunks = [_STREAM[i : i + size] for i in range(0, len(_STREAM), size)]
        assert _feed_chunks(chunks) == whole

    @pytest.mark.parametrize("seed", range(10))
    def test_random_splits_match_whole(self, seed: int) -> None:
        rng = random.Random(seed)
        points = rng.sample(range(1, len(_STREAM)), k=rng.randint(1, 20))
        assert _feed_chunks(_split_at(_STREAM, points)) == _feed_chunks([_STREAM])

    def test_multibyte_character_split_across_chunks(self) -> None:
        data = _line({"type": "result", "result": "✓ done"})
        cut = data.index("✓".encode()) + 1  # inside the 3-byte sequence
        events = _feed_chunks([data[:cut], data[cut:]])
        assert len(events) == 1
        assert events[0].result == "✓ done"

    def test_str_chunks_accepted(self) -> None:
        parser = LineStreamParser()
        events = parser.feed('{"type":"result","result":"a"}\n{"type":"res')
        events += parser.feed('ult","result":"b"}\n')
        assert [e.result for e in events] == ["a", "b"]


class TestPartialLines:
    def test_incomplete_line_is_held(self) -> None:
        parser = LineStreamParser()
        assert parser.feed(b'{"type":"result",') == []
        assert parser.pending_size > 0

    def test_close_flushes_unterminated_line(self) -> None:
        parser = LineStreamParser()
        assert parser.feed(b'{"type":"result","result":"tail"}') == []
        events = parser.close()
        assert len(events) == 1
        assert events[0].result == "tail"
        assert parser.pending_size == 0

    def test_close_with_empty_buffer(self) -> None:
        parser = LineStreamParser()
        parser.feed(_line({"type": "result", "result": "x"}))
        assert parser.close() == []

    def test_malformed_lines_do_not_affect_neighbours(self) -> None:
        data = (
            _line({"type": "result", "result": "one"})
            + b"{broken json\n"
            + b"\n"
            + b"plain text log line\n"
            + _line({"type": "result", "result": "two"})
        )
        events = _feed_chunks([data])
        assert [e.result for e in events] == ["one", "two"]


class TestBufferLimit:
    def test_exceeding_limit_raises(self) -> None:
        parser = LineStreamParser(max_buffer=50)
        with pytest.raises(OutputLimitExceeded) as exc_info:
            parser.feed(b"x" * 51)
        assert exc_info.value.limit == 50
        assert "exceeded 50 bytes" in str(exc_info.value)

    def test_accumulated_partial_line_counts(self) -> None:
        parser = LineStreamParser(max_buffer=50)
        parser.feed(b"y" * 30)
        with pytest.raises(OutputLimitExceeded):
            parser.feed(b"y" * 30)

    def test_buffer_cleared_after_overflow(self) -> None:
        parser = LineStreamParser(max_buffer=50)
        with pytest.raises(OutputLimitExceeded):
            parser.feed(b"z" * 80)
        assert parser.pending_size == 0

    def test_under_limit_parses_normally(self) -> None:
        parser = LineStreamParser(max_buffer=1000)
        events = parser.feed(_line({"type": "result", "result": "ok"}))
        assert len(events) == 1
