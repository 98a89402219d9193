"""
Shared test fixtures.

ScriptedProvider is a fake ModelProviderProtocol: each model call consumes
the next scripted step (a RawModelResponse, an exception to raise, or a
callable producing either from the request).
"""

from typing import Any

import pytest
from pydantic import BaseModel

from thinkloop.core.domain.context import ExecutionContext
from thinkloop.core.hooks import HookManager
from thinkloop.core.interfaces.llm import ModelRequest, RawModelResponse, StreamDelta
from thinkloop.core.tools.tool import build_tool
from thinkloop.infrastructure.llm.model_client import ResilientModelClient, RetryPolicy


def usage(input_tokens: int = 10, output_tokens: int = 5, cost: float = 0.0) -> dict[str, Any]:
    return {
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "cost": {"generation": cost, "platform": 0.0, "total": cost},
    }


def decision(
    reasoning: str = "thinking",
    tool_calls: list[dict[str, Any]] | None = None,
    final_answer: Any = None,
    raw_usage: dict[str, Any] | None = None,
    **extra: Any,
) -> RawModelResponse:
    """A think response carrying an AgentDecision payload."""
    payload = {
        "reasoning": reasoning,
        "tool_calls": tool_calls or [],
        "final_answer": final_answer,
        **extra,
    }
    return RawModelResponse(payload=payload, span_id="span-think", usage=raw_usage or usage())


def call(tool_name: str, arguments: Any = None, call_id: str | None = None) -> dict[str, Any]:
    entry = {"tool_name": tool_name, "arguments": arguments}
    if call_id:
        entry["id"] = call_id
    return entry


class ScriptedProvider:
    """Fake model transport replaying a script of responses."""

    def __init__(self, script: list[Any] | None = None):
        self.script = list(script or [])
        self.requests: list[ModelRequest] = []

    async def call(self, request: ModelRequest) -> RawModelResponse:
        self.requests.append(request)
        if not self.script:
            raise AssertionError(f"Unexpected model call: {request.name}")
        step = self.script.pop(0)
        if callable(step) and not isinstance(step, RawModelResponse):
            step = step(request)
        if isinstance(step, BaseException):
            raise step
        return step

    @property
    def call_names(self) -> list[str]:
        return [request.name for request in self.requests]


class StreamingScriptedProvider(ScriptedProvider):
    """Fake transport whose script steps are lists of StreamDeltas (or exceptions)."""

    async def stream(self, request: ModelRequest):
        self.requests.append(request)
        if not self.script:
            raise AssertionError(f"Unexpected model call: {request.name}")
        step = self.script.pop(0)
        if isinstance(step, BaseException):
            raise step
        for item in step:
            if isinstance(item, BaseException):
                raise item
            yield item


def structured_deltas(payload: dict[str, str], raw_usage: dict[str, Any] | None = None) -> list[StreamDelta]:
    """Stream each field of a flat payload in two fragments."""
    deltas: list[StreamDelta] = []
    for path, text in payload.items():
        middle = len(text) // 2
        deltas.append(StreamDelta(delta=text[:middle], path=path))
        deltas.append(StreamDelta(delta=text[middle:], path=path))
    deltas.append(StreamDelta(usage=raw_usage or usage()))
    return deltas


class AddInput(BaseModel):
    a: float
    b: float


class DivideInput(BaseModel):
    numerator: float
    denominator: float


def _add(args: AddInput) -> float:
    """Add two numbers."""
    return args.a + args.b


def _divide(args: DivideInput) -> float:
    """Divide the numerator by the denominator."""
    return args.numerator / args.denominator


@pytest.fixture
def add_tool():
    return build_tool("add", _add, input_schema=AddInput)


@pytest.fixture
def divide_tool():
    return build_tool("divide", _divide, input_schema=DivideInput)


@pytest.fixture
def hooks():
    return HookManager()


@pytest.fixture
def context():
    return ExecutionContext("test_agent", goal="test goal")


@pytest.fixture
def no_wait_policy():
    return RetryPolicy(max_retries=2, initial_delay=0.0, backoff_multiplier=2.0, max_delay=0.0)


@pytest.fixture
def make_client(no_wait_policy):
    """Build a ResilientModelClient over a provider without real sleeping."""

    def factory(provider, policy: RetryPolicy | None = None):
        async def no_sleep(_: float) -> None:
            return None

        return ResilientModelClient(provider, policy or no_wait_policy, sleep=no_sleep)

    return factory
