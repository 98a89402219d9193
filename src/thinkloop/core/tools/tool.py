"""
Tool abstraction.

A Tool is an explicit record of name, description, schemas and an
executable handler. Tools are built once at startup through build_tool()
(or Agent.as_tool() / a tool provider) and registered in a ToolRegistry;
there is no runtime reflection over decorated methods.

Handlers may be sync or async and receive either (input) or
(input, ToolExecutionContext).
"""

from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from thinkloop.core.domain.errors import ConfigurationError
from thinkloop.core.domain.schemas import json_schema_of

if TYPE_CHECKING:
    from thinkloop.core.domain.context import ExecutionContext
    from thinkloop.core.domain.models import ToolCall


@dataclass
class ToolExecutionContext:
    """
    Per-invocation context handed to tool handlers.

    Attributes:
        agent_context: The ExecutionContext of the calling run
        call: The ToolCall being executed
        span_id: Correlation id for nested calls (the tool call id)
        metadata: Free-form metadata
    """

    agent_context: ExecutionContext
    call: ToolCall
    span_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


ToolHandler = Callable[..., Any]


def _accepts_context(handler: ToolHandler) -> bool:
    try:
        params = list(inspect.signature(handler).parameters.values())
    except (TypeError, ValueError):
        return True
    if any(p.kind is inspect.Parameter.VAR_POSITIONAL for p in params):
        return True
    # Optional parameters keep their defaults
    positional = [
        p
        for p in params
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
        and p.default is inspect.Parameter.empty
    ]
    return len(positional) >= 2


@dataclass
class Tool:
    """
    A named, schema-validated callable capability.

    Attributes:
        name: Unique name within a registry
        description: What the tool does (shown to the model)
        handler: Sync or async callable
        input_schema: Python type or raw JSON-schema dict (None = anything)
        output_schema: Optional schema the output is checked against
        examples: Worked examples shown to the model
        metadata: Free-form metadata (agent-as-tool keeps its agent here)
        timeout: Seconds before the execution is cancelled (None = no limit)
    """

    name: str
    description: str
    handler: ToolHandler
    input_schema: Any = None
    output_schema: Any = None
    examples: list[dict[str, Any]] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    timeout: float | None = None

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ConfigurationError("Tool name must be a non-empty string")
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError(f"Tool '{self.name}' timeout must be positive")
        self._pass_context = _accepts_context(self.handler)

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return json_schema_of(self.input_schema)

    async def execute(self, input: Any, context: ToolExecutionContext) -> Any:
        """Invoke the handler; awaits the result when the handler is async."""
        if self._pass_context:
            result = self.handler(input, context)
        else:
            result = self.handler(input)
        if inspect.isawaitable(result):
            result = await result
        return result

    def descriptor(self) -> dict[str, Any]:
        """Description of the tool as presented to the model."""
        descriptor: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters_schema,
        }
        if self.examples:
            descriptor["examples"] = list(self.examples)
        return descriptor


def build_tool(
    name: str,
    handler: ToolHandler,
    *,
    description: str | None = None,
    input_schema: Any = None,
    output_schema: Any = None,
    examples: list[dict[str, Any]] | None = None,
    metadata: dict[str, Any] | None = None,
    timeout: float | None = None,
) -> Tool:
    """
    Build a Tool from a plain callable.

    Args:
        name: Tool name
        handler: Callable taking (input) or (input, ToolExecutionContext)
        description: Defaults to the handler's docstring
        input_schema: Python type or raw JSON-schema dict
        output_schema: Optional output schema
        examples: Worked examples
        metadata: Free-form metadata
        timeout: Optional execution timeout in seconds

    Returns:
        Tool instance

    Example:
        >>> class AddInput(BaseModel):
        ...     a: float
        ...     b: float
        >>> add = build_tool("add", lambda args: args.a + args.b, input_schema=AddInput)
    """
    if description is None:
        description = inspect.getdoc(handler) or ""
    return Tool(
        name=name,
        description=description,
        handler=handler,
        input_schema=input_schema,
        output_schema=output_schema,
        examples=list(examples or []),
        metadata=dict(metadata or {}),
        timeout=timeout,
    )
