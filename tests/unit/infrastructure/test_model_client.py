"""
Unit Tests for ResilientModelClient

Tests error classification, bounded retries with backoff, usage
accounting and per-attempt stream sessions.
"""

import asyncio
import random

import pytest

from conftest import ScriptedProvider, StreamingScriptedProvider, decision, usage
from thinkloop.core.domain.context import ExecutionContext
from thinkloop.core.domain.errors import (
    ConfigurationError,
    PermanentModelError,
    SchemaValidationError,
    TransientModelError,
)
from thinkloop.core.domain.events import HookEvent
from thinkloop.core.hooks import HookManager
from thinkloop.core.interfaces.llm import ModelRequest, RawModelResponse, StreamDelta
from thinkloop.core.streaming import StreamSession
from thinkloop.infrastructure.llm.model_client import (
    ResilientModelClient,
    RetryPolicy,
    classify_error,
)


class StatusError(Exception):
    def __init__(self, message, status_code):
        super().__init__(message)
        self.status_code = status_code


def request(name="think", output_schema=None):
    return ModelRequest(name=name, instructions="test", input={"q": 1}, output_schema=output_schema)


class TestRetryPolicy:
    def test_backoff_is_capped(self):
        policy = RetryPolicy(max_retries=5, initial_delay=1.0, backoff_multiplier=2.0, max_delay=5.0)

        assert [policy.delay_for(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_jitter_stays_within_bounds(self):
        policy = RetryPolicy(initial_delay=2.0, max_delay=10.0, jitter=0.5)
        rng = random.Random(7)

        delays = [policy.delay_for(1, rng) for _ in range(50)]

        assert all(1.0 <= d <= 3.0 for d in delays)

    def test_invalid_values_are_rejected(self):
        with pytest.raises(ConfigurationError):
            RetryPolicy(max_retries=-1)
        with pytest.raises(ConfigurationError):
            RetryPolicy(jitter=1.5)


class TestClassifyError:
    @pytest.mark.parametrize(
        "error, retryable",
        [
            (TransientModelError("busy"), True),
            (PermanentModelError("bad"), False),
            (SchemaValidationError("invalid"), False),
            (StatusError("slow down", 429), True),
            (StatusError("timeout", 408), True),
            (StatusError("unavailable", 503), True),
            (StatusError("unauthorized", 401), False),
            (StatusError("bad request", 400), False),
            (asyncio.TimeoutError(), True),
            (ConnectionError("reset"), True),
            (RuntimeError("ECONNRESET while reading"), True),
            (RuntimeError("Rate limit reached"), True),
            (ValueError("unexpected token"), False),
        ],
    )
    def test_classification(self, error, retryable):
        assert classify_error(error).retryable is retryable


class TestInvoke:
    """Tests for non-streamed calls."""

    @pytest.mark.asyncio
    async def test_retryable_failure_is_attempted_n_plus_one_times(self):
        provider = ScriptedProvider([ConnectionError("reset")] * 4)
        delays = []

        async def record_sleep(delay):
            delays.append(delay)

        client = ResilientModelClient(
            provider,
            RetryPolicy(max_retries=3, initial_delay=1.0, backoff_multiplier=2.0, max_delay=10.0),
            sleep=record_sleep,
        )

        with pytest.raises(ConnectionError):
            await client.invoke(request())

        assert len(provider.requests) == 4
        assert delays == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_non_retryable_failure_is_attempted_once(self, make_client):
        provider = ScriptedProvider([StatusError("unauthorized", 401)])

        with pytest.raises(StatusError):
            await make_client(provider).invoke(request())

        assert len(provider.requests) == 1

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self, make_client):
        provider = ScriptedProvider(
            [TransientModelError("overloaded", status_code=503), decision(final_answer=1)]
        )
        context = ExecutionContext("agent")

        response = await make_client(provider).invoke(request(), context)

        assert response.payload["final_answer"] == 1
        assert len(provider.requests) == 2
        assert context.usage.requests == 1

    @pytest.mark.asyncio
    async def test_usage_is_summed_into_context(self, make_client):
        provider = ScriptedProvider(
            [
                RawModelResponse(message="a", usage=usage(10, 2, cost=0.1)),
                RawModelResponse(message="b", usage=usage(5, 3, cost=0.2)),
                RawModelResponse(message="c"),
            ]
        )
        client = make_client(provider)
        context = ExecutionContext("agent")

        for _ in range(3):
            await client.invoke(request(), context)

        assert context.usage.requests == 3
        assert context.usage.input_tokens == 15
        assert context.usage.output_tokens == 5
        assert context.usage.total_tokens == 20
        assert context.usage.cost.total == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_response_carries_usage_without_context(self, make_client):
        provider = ScriptedProvider([RawModelResponse(message="hi", span_id="s", usage=usage(1, 1))])

        response = await make_client(provider).invoke(request())

        assert response.value == "hi"
        assert response.span_id == "s"
        assert response.usage.total_tokens == 2


class TestStream:
    """Tests for streamed calls."""

    @pytest.mark.asyncio
    async def test_retry_opens_a_new_session(self, make_client):
        provider = StreamingScriptedProvider(
            [
                [StreamDelta(delta="par", path="reasoning"), ConnectionError("reset")],
                [
                    StreamDelta(delta="done", path="reasoning"),
                    StreamDelta(usage=usage(3, 4)),
                ],
            ]
        )
        hooks = HookManager()
        context = ExecutionContext("agent")
        events = []
        for event in (
            HookEvent.STREAM_START,
            HookEvent.STREAM_CHUNK,
            HookEvent.STREAM_END,
            HookEvent.STREAM_ERROR,
        ):
            hooks.on(event, lambda payload, tag=event.value: events.append(tag))
        sessions = []

        def factory(call_type):
            session = StreamSession(call_type, hooks, context)
            sessions.append(session)
            return session

        response = await make_client(provider).stream(request(), factory, context)

        assert response.payload == {"reasoning": "done"}
        assert len(sessions) == 2
        assert events == [
            "stream:start",
            "stream:chunk",
            "stream:error",
            "stream:start",
            "stream:chunk",
            "stream:end",
        ]
        assert context.usage.requests == 1
        assert context.usage.total_tokens == 7

    @pytest.mark.asyncio
    async def test_root_text_is_parsed_when_structured_output_requested(self, make_client):
        provider = StreamingScriptedProvider(
            [[StreamDelta(delta='{"value": '), StreamDelta(delta="5}")]]
        )
        context = ExecutionContext("agent")

        response = await make_client(provider).stream(
            request(output_schema={"type": "object"}),
            lambda call_type: StreamSession(call_type, HookManager(), context),
            context,
        )

        assert response.payload == {"value": 5}
        assert response.message == '{"value": 5}'

    @pytest.mark.asyncio
    async def test_root_text_without_schema_is_a_message(self, make_client):
        provider = StreamingScriptedProvider([[StreamDelta(delta="Hello "), StreamDelta(delta="world")]])
        context = ExecutionContext("agent")

        response = await make_client(provider).stream(
            request(name="final_result"),
            lambda call_type: StreamSession(call_type, HookManager(), context),
            context,
        )

        assert response.payload is None
        assert response.value == "Hello world"

    @pytest.mark.asyncio
    async def test_non_retryable_stream_error_closes_the_session(self, make_client):
        provider = StreamingScriptedProvider([[PermanentModelError("bad")]])
        context = ExecutionContext("agent")
        sessions = []

        def factory(call_type):
            session = StreamSession(call_type, HookManager(), context)
            sessions.append(session)
            return session

        with pytest.raises(PermanentModelError):
            await make_client(provider).stream(request(), factory, context)

        assert len(sessions) == 1
        assert sessions[0].is_closed
