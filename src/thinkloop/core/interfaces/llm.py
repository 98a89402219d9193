"""
Language-model invocation contracts.

The core never talks to a hosted model directly. It sends ModelRequests
through a ModelClientProtocol (retry, usage accounting, streaming), which in
turn drives a ModelProviderProtocol (the transport).
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from thinkloop.core.domain.models import Usage

if TYPE_CHECKING:
    from thinkloop.core.domain.context import ExecutionContext
    from thinkloop.core.streaming import StreamSession


@dataclass(frozen=True)
class ModelRequest:
    """
    One logical model call.

    Attributes:
        name: Call name ("think", "final_result", ...); also the stream call type
        instructions: Static instructions for the model
        input: Input value (JSON-compatible)
        input_schema: Optional JSON schema of the input
        output_schema: Optional JSON schema the response payload must follow
        models: Model identifiers, primary first, forwarded as ordered fallbacks
        parent_span_id: Opaque correlation id
    """

    name: str
    instructions: str
    input: Any = None
    input_schema: Mapping[str, Any] | None = None
    output_schema: Mapping[str, Any] | None = None
    models: tuple[str, ...] = ()
    parent_span_id: str | None = None


@dataclass(frozen=True)
class RawModelResponse:
    """
    What a provider returns for one call.

    Attributes:
        payload: Structured payload (when an output schema was requested)
        message: Plain text message
        span_id: Correlation id assigned by the provider
        usage: Raw usage mapping (input_tokens, output_tokens, total_tokens,
               cost{generation, platform, total}); None when unreported
    """

    payload: Any = None
    message: str | None = None
    span_id: str | None = None
    usage: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class ModelResponse:
    """Normalized response handed back to the orchestrator."""

    payload: Any = None
    message: str | None = None
    span_id: str | None = None
    usage: Usage = field(default_factory=Usage.empty)

    @property
    def value(self) -> Any:
        return self.payload if self.payload is not None else self.message


@dataclass(frozen=True)
class StreamDelta:
    """
    One streamed fragment from a provider.

    Attributes:
        delta: Text or primitive fragment (None for bookkeeping-only deltas)
        path: Field path inside the structured output; None for the root
        usage: Raw usage, typically carried by the last delta
        span_id: Correlation id, when the provider reports one
    """

    delta: Any = None
    path: str | None = None
    usage: Mapping[str, Any] | None = None
    span_id: str | None = None


@runtime_checkable
class ModelProviderProtocol(Protocol):
    """
    Transport for hosted model calls.

    Providers may additionally implement
    ``stream(request) -> AsyncIterator[StreamDelta]``; clients fall back to
    call() when it is missing.
    """

    async def call(self, request: ModelRequest) -> RawModelResponse:
        """
        Perform one model call.

        Raises:
            Exception: Transport failures; classified by the model client
        """
        ...


@runtime_checkable
class StreamingModelProviderProtocol(ModelProviderProtocol, Protocol):
    def stream(self, request: ModelRequest) -> AsyncIterator[StreamDelta]:
        ...


StreamSessionFactory = Callable[[str], "StreamSession"]


class ModelClientProtocol(Protocol):
    """Resilient invocation used by the loop engine."""

    async def invoke(
        self, request: ModelRequest, context: ExecutionContext | None = None
    ) -> ModelResponse:
        ...

    async def stream(
        self,
        request: ModelRequest,
        session_factory: StreamSessionFactory,
        context: ExecutionContext | None = None,
    ) -> ModelResponse:
        ...
