"""
Resilient Model Client

Wraps a ModelProviderProtocol with:
- Error classification (retryable vs. permanent)
- Exponential backoff retries with optional jitter
- Usage extraction and merging into the ExecutionContext
- Streaming through a per-attempt StreamSession

Attempts are bounded: a retryable failure is tried at most
1 + max_retries times, then the last error is re-raised. Permanent
failures are raised after a single attempt.
"""

from __future__ import annotations

import asyncio
import json
import random
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from thinkloop.core.domain.errors import (
    ConfigurationError,
    PermanentModelError,
    SchemaValidationError,
    TransientModelError,
)
from thinkloop.core.domain.models import Usage
from thinkloop.core.interfaces.llm import (
    ModelProviderProtocol,
    ModelRequest,
    ModelResponse,
    RawModelResponse,
    StreamDelta,
    StreamSessionFactory,
    StreamingModelProviderProtocol,
)

if TYPE_CHECKING:
    from thinkloop.core.domain.context import ExecutionContext

__all__ = [
    "ErrorClass",
    "ModelRequest",
    "ModelResponse",
    "ResilientModelClient",
    "RetryPolicy",
    "classify_error",
]

_RETRYABLE_PATTERNS = re.compile(
    r"network|timeout|timed out|econnreset|enotfound|econnrefused|etimedout"
    r"|connection reset|rate limit|too many requests|\b429\b|\b500\b|\b502\b|\b503\b|\b504\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry policy configuration.

    Attributes:
        max_retries: Retries after the first attempt
        initial_delay: Delay before the first retry (seconds)
        backoff_multiplier: Factor applied per subsequent retry
        max_delay: Upper bound for any single delay (seconds)
        jitter: Multiplicative jitter ratio (0 disables); a delay d becomes
                d * uniform(1 - jitter, 1 + jitter), still capped by max_delay
    """

    max_retries: int = 3
    initial_delay: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay: float = 10.0
    jitter: float = 0.0

    def __post_init__(self) -> None:
        for name in ("max_retries", "initial_delay", "backoff_multiplier", "max_delay", "jitter"):
            value = getattr(self, name)
            if value < 0:
                raise ConfigurationError(f"RetryPolicy.{name} must be non-negative, got {value}")
        if self.jitter > 1:
            raise ConfigurationError(f"RetryPolicy.jitter must be <= 1, got {self.jitter}")

    def delay_for(self, retry: int, rng: random.Random | None = None) -> float:
        """
        Delay before the given retry.

        Args:
            retry: 1-based retry index
            rng: Random source for jitter

        Returns:
            min(initial_delay * backoff_multiplier ** (retry - 1), max_delay),
            jittered when configured
        """
        delay = min(self.initial_delay * self.backoff_multiplier ** (retry - 1), self.max_delay)
        if self.jitter:
            factor = (rng or random).uniform(1 - self.jitter, 1 + self.jitter)
            delay = min(delay * factor, self.max_delay)
        return delay


@dataclass(frozen=True)
class ErrorClass:
    retryable: bool
    cause: str


def _status_code(error: BaseException) -> int | None:
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def classify_error(error: BaseException) -> ErrorClass:
    """
    Classify a model call failure.

    Order of precedence:
    1. Explicit TransientModelError / PermanentModelError
    2. Validation errors (never retried)
    3. HTTP-like status code: 408, 429 and 5xx retryable, other 4xx not
    4. Timeouts and connection errors
    5. Message patterns (network, timeout, rate limit, 5xx codes)

    Returns:
        ErrorClass with the retry decision and a short cause label
    """
    if isinstance(error, TransientModelError):
        return ErrorClass(True, "transient")
    if isinstance(error, PermanentModelError):
        return ErrorClass(False, "permanent")
    if isinstance(error, (ValidationError, SchemaValidationError)):
        return ErrorClass(False, "validation")

    status = _status_code(error)
    if status is not None:
        if status == 429:
            return ErrorClass(True, "rate_limit")
        if status == 408:
            return ErrorClass(True, "timeout")
        if status >= 500:
            return ErrorClass(True, f"server_error_{status}")
        if 400 <= status < 500:
            return ErrorClass(False, f"client_error_{status}")

    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return ErrorClass(True, "timeout")
    if isinstance(error, ConnectionError):
        return ErrorClass(True, "network")

    message = f"{type(error).__name__}: {error}"
    match = _RETRYABLE_PATTERNS.search(message)
    if match:
        return ErrorClass(True, match.group(0).lower())
    return ErrorClass(False, "unclassified")


class ResilientModelClient:
    """
    Model invocation with bounded retries and usage accounting.

    Example:
        >>> client = ResilientModelClient(LiteLLMProvider(), RetryPolicy(max_retries=2))
        >>> response = await client.invoke(ModelRequest(name="think", instructions="..."))
    """

    def __init__(
        self,
        provider: ModelProviderProtocol,
        retry_policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
        logger: Any = None,
    ):
        """
        Initialize the client.

        Args:
            provider: Transport performing the actual calls
            retry_policy: Retry configuration (defaults to RetryPolicy())
            sleep: Awaitable sleep used between attempts (injectable for tests)
            rng: Random source for jitter
            logger: Optional structlog logger
        """
        self.provider = provider
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._rng = rng
        self.logger = logger or structlog.get_logger().bind(component="model_client")

    async def invoke(
        self, request: ModelRequest, context: ExecutionContext | None = None
    ) -> ModelResponse:
        """
        Perform one logical model call with retries.

        Args:
            request: The call to perform
            context: Run context receiving the call's usage

        Returns:
            Normalized ModelResponse

        Raises:
            Exception: The last error after retries are exhausted, or the
                       first non-retryable error
        """

        async def attempt() -> RawModelResponse:
            return await self.provider.call(request)

        raw = await self._with_retry(request, attempt)
        return self._complete(request, raw, context)

    async def stream(
        self,
        request: ModelRequest,
        session_factory: StreamSessionFactory,
        context: ExecutionContext | None = None,
    ) -> ModelResponse:
        """
        Perform one streamed model call with retries.

        Every attempt opens its own StreamSession (start, chunk*, end|error);
        a failed attempt closes its session with stream:error before the
        retry starts a new one. Providers without stream() are called
        through invoke() without stream events.

        Args:
            request: The call to perform (request.name is the call type)
            session_factory: Creates a fresh StreamSession for a call type
            context: Run context receiving the call's usage

        Returns:
            Normalized ModelResponse reconstructed from the streamed deltas
        """
        if not isinstance(self.provider, StreamingModelProviderProtocol):
            return await self.invoke(request, context)
        stream_fn = self.provider.stream

        async def attempt() -> RawModelResponse:
            session = session_factory(request.name)
            await session.start()
            usage: Any = None
            span_id: str | None = None
            try:
                async for item in stream_fn(request):
                    delta: StreamDelta = item
                    if delta.usage is not None:
                        usage = delta.usage
                    if delta.span_id is not None:
                        span_id = delta.span_id
                    await session.feed(delta.delta, delta.path)
            except asyncio.CancelledError:
                await session.abort("stream cancelled")
                raise
            except Exception as e:
                await session.fail(e)
                raise

            result = await session.end()
            if session.result_kind == "root":
                # Structured output streamed as plain JSON text
                payload = _parse_json(result) if request.output_schema is not None else None
                return RawModelResponse(
                    payload=payload, message=result, span_id=span_id, usage=usage
                )
            return RawModelResponse(payload=result, span_id=span_id, usage=usage)

        raw = await self._with_retry(request, attempt)
        return self._complete(request, raw, context)

    async def _with_retry(
        self, request: ModelRequest, attempt: Callable[[], Awaitable[RawModelResponse]]
    ) -> RawModelResponse:
        policy = self.retry_policy
        retry = 0
        while True:
            try:
                return await attempt()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                classification = classify_error(e)
                if not classification.retryable or retry >= policy.max_retries:
                    self.logger.error(
                        "model_call_failed",
                        call=request.name,
                        models=list(request.models),
                        attempts=retry + 1,
                        cause=classification.cause,
                        error_type=type(e).__name__,
                        error=str(e)[:200],
                    )
                    raise

                retry += 1
                delay = policy.delay_for(retry, self._rng)
                self.logger.warning(
                    "model_call_retry",
                    call=request.name,
                    attempt=retry,
                    max_retries=policy.max_retries,
                    cause=classification.cause,
                    error_type=type(e).__name__,
                    delay_seconds=round(delay, 3),
                )
                await self._sleep(delay)

    def _complete(
        self,
        request: ModelRequest,
        raw: RawModelResponse,
        context: ExecutionContext | None,
    ) -> ModelResponse:
        usage = Usage.from_raw(raw.usage)
        if context is not None:
            context.update_usage(usage)
        self.logger.debug(
            "model_call_complete",
            call=request.name,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
        )
        return ModelResponse(
            payload=raw.payload, message=raw.message, span_id=raw.span_id, usage=usage
        )


def _parse_json(text: str) -> Any:
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None
