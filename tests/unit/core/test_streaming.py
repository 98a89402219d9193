"""
Unit Tests for the Streaming Coordinator

Tests field-path accumulation, final value reconstruction and the
start → chunk* → end|error protocol of StreamSession.
"""

import pytest

from thinkloop.core.domain.context import ExecutionContext
from thinkloop.core.domain.errors import StreamProtocolError
from thinkloop.core.domain.events import HookEvent
from thinkloop.core.hooks import HookManager
from thinkloop.core.streaming import (
    STREAM_ROOT_PATH,
    StreamAssembler,
    StreamSession,
    StreamState,
    coerce_primitive,
    normalize_indexed,
    parse_path,
)


def record_stream_events(hooks: HookManager) -> list[tuple[str, object]]:
    events = []
    for event in (
        HookEvent.STREAM_START,
        HookEvent.STREAM_CHUNK,
        HookEvent.STREAM_END,
        HookEvent.STREAM_ERROR,
    ):
        hooks.on(event, lambda payload, tag=event.value: events.append((tag, payload)))
    return events


class TestHelpers:
    def test_parse_path(self):
        assert parse_path("steps[2].title") == ["steps", "2", "title"]
        assert parse_path("a.b") == ["a", "b"]
        assert parse_path("") == []

    def test_coerce_primitive(self):
        assert coerce_primitive("true") is True
        assert coerce_primitive(" False ") is False
        assert coerce_primitive("null") is None
        assert coerce_primitive("42") == 42
        assert coerce_primitive("-1.5") == -1.5
        assert coerce_primitive("hello") == "hello"
        assert coerce_primitive("") == ""

    def test_normalize_indexed(self):
        assert normalize_indexed({"0": "a", "2": "c"}) == ["a", None, "c"]
        assert normalize_indexed({"items": {"0": {"x": "1"}}}) == {"items": [{"x": "1"}]}
        assert normalize_indexed({"a": "1"}) == {"a": "1"}


class TestStreamAssembler:
    """Tests for StreamAssembler."""

    def test_empty_stream(self):
        assert StreamAssembler().finalize() == ("empty", None)

    def test_root_text(self):
        assembler = StreamAssembler()
        assembler.feed("Hel")
        assembler.feed("lo")

        assert assembler.finalize() == ("root", "Hello")
        assert assembler.snapshot() == {STREAM_ROOT_PATH: "Hello"}

    def test_none_delta_is_ignored(self):
        assembler = StreamAssembler()
        assert assembler.feed(None) is None
        assert assembler.snapshot() == {}

    def test_accumulates_per_path(self):
        assembler = StreamAssembler()
        assert assembler.feed("Par", "city") == ("city", "Par")
        assert assembler.feed("is", "city") == ("city", "Paris")
        assembler.feed("2", "days")
        assembler.feed("1", "days")

        kind, value = assembler.finalize()

        assert kind == "structured"
        assert value == {"city": "Paris", "days": 21}

    def test_typed_deltas_are_kept(self):
        assembler = StreamAssembler()
        assembler.feed(3.5, "score")
        assembler.feed(True, "done")

        assert assembler.finalize() == ("structured", {"score": 3.5, "done": True})

    def test_nested_and_indexed_paths(self):
        assembler = StreamAssembler()
        assembler.feed("first", "steps[0].title")
        assembler.feed("second", "steps[1].title")
        assembler.feed("x", "meta.tag")

        _, value = assembler.finalize()

        assert value == {
            "steps": [{"title": "first"}, {"title": "second"}],
            "meta": {"tag": "x"},
        }


class TestStreamSession:
    """Tests for the per-call stream state machine."""

    @pytest.mark.asyncio
    async def test_event_sequence(self):
        hooks = HookManager()
        events = record_stream_events(hooks)
        session = StreamSession("think", hooks, ExecutionContext("agent"))

        await session.start()
        chunk = await session.feed("Hel", "reasoning")
        await session.feed("lo", "reasoning")
        result = await session.end()

        assert [tag for tag, _ in events] == [
            "stream:start",
            "stream:chunk",
            "stream:chunk",
            "stream:end",
        ]
        assert chunk.call_type == "think"
        assert chunk.path == "reasoning"
        assert events[2][1].chunk.accumulated == "Hello"
        assert events[3][1].field_buffers == {"reasoning": "Hello"}
        assert result == {"reasoning": "Hello"}
        assert session.result_kind == "structured"
        assert session.state is StreamState.ENDED

    @pytest.mark.asyncio
    async def test_chunk_after_end_is_rejected(self):
        session = StreamSession("think", HookManager(), ExecutionContext("agent"))
        await session.start()
        await session.end()

        with pytest.raises(StreamProtocolError):
            await session.feed("late")
        with pytest.raises(StreamProtocolError):
            await session.end()

    @pytest.mark.asyncio
    async def test_end_before_start_is_rejected(self):
        session = StreamSession("think", HookManager(), ExecutionContext("agent"))

        with pytest.raises(StreamProtocolError):
            await session.end()
        with pytest.raises(StreamProtocolError):
            await session.feed("x")

    @pytest.mark.asyncio
    async def test_double_start_is_rejected(self):
        session = StreamSession("think", HookManager(), ExecutionContext("agent"))
        await session.start()

        with pytest.raises(StreamProtocolError):
            await session.start()

    @pytest.mark.asyncio
    async def test_fail_emits_error_and_discards_buffers(self):
        hooks = HookManager()
        events = record_stream_events(hooks)
        session = StreamSession("final_result", hooks, ExecutionContext("agent"))

        await session.start()
        await session.feed("partial")
        await session.fail(RuntimeError("connection dropped"))

        assert [tag for tag, _ in events] == ["stream:start", "stream:chunk", "stream:error"]
        assert session.field_buffers() == {}
        with pytest.raises(StreamProtocolError):
            await session.feed("more")

    @pytest.mark.asyncio
    async def test_abort_synthesizes_error_once(self):
        hooks = HookManager()
        events = record_stream_events(hooks)
        session = StreamSession("think", hooks, ExecutionContext("agent"))

        await session.start()
        await session.abort()
        await session.abort()

        assert [tag for tag, _ in events] == ["stream:start", "stream:error"]
        assert session.is_closed

    @pytest.mark.asyncio
    async def test_abort_before_start_is_silent(self):
        hooks = HookManager()
        events = record_stream_events(hooks)
        session = StreamSession("think", hooks, ExecutionContext("agent"))

        await session.abort()

        assert events == []
        assert session.is_closed
