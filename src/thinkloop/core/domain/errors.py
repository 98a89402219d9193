"""
Error Taxonomy for Agent Execution

All exceptions raised by the execution core derive from ThinkloopError.
Tool failures are deliberately absent here: they are values (ToolFailure)
fed back to the model, never exceptions crossing the executor boundary.

Categories:
- ConfigurationError: invalid wiring detected at construction/registration time
- SchemaValidationError: input/output/decision schema mismatch (never retried)
- ModelInvocationError: model call failures, split into transient and permanent
- StreamProtocolError: streaming events emitted out of order
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from thinkloop.core.domain.context import ExecutionContext


class ThinkloopError(Exception):
    """
    Base class for all execution core errors.

    Attributes:
        context: The ExecutionContext of the run that failed. Attached by the
                 orchestrator before the error propagates so callers can
                 inspect iteration count, usage and the tool-call log.
    """

    def __init__(self, message: str, *, context: ExecutionContext | None = None):
        super().__init__(message)
        self.context = context


class ConfigurationError(ThinkloopError):
    """Invalid configuration (duplicate tool names, bad retry policy, ...)."""


class SchemaValidationError(ThinkloopError):
    """
    A value did not match its declared schema.

    Attributes:
        target: What was being validated ("input", "output", "decision", ...)
        errors: Structured error list from pydantic (may be empty)
    """

    def __init__(
        self,
        message: str,
        *,
        target: str = "value",
        errors: list[dict[str, Any]] | None = None,
        context: ExecutionContext | None = None,
    ):
        super().__init__(message, context=context)
        self.target = target
        self.errors = errors or []


class ModelInvocationError(ThinkloopError):
    """
    A model call failed.

    Attributes:
        status_code: HTTP-like status code reported by the provider, if any
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        context: ExecutionContext | None = None,
    ):
        super().__init__(message, context=context)
        self.status_code = status_code


class TransientModelError(ModelInvocationError):
    """Model call failure that is worth retrying (network, rate limit, 5xx)."""


class PermanentModelError(ModelInvocationError):
    """Model call failure that will not succeed on retry (4xx, bad request)."""


class StreamProtocolError(ThinkloopError):
    """Streaming events violated the start → chunk* → end|error sequence."""
