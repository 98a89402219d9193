"""
Tool Registry and Executor

The registry maps unique tool names to Tool instances. The executor runs a
single tool call with per-call isolation:

1. Validate raw arguments against the input schema
2. Invoke the handler (honoring the tool's timeout)
3. Check the output against the output schema, if declared
4. Record the ToolCall/ToolResult pair in the run's tool-call log
5. Emit tool:before, then tool:error (on failure) and tool:after

Whatever happens inside a tool, execute() returns a ToolResult; only task
cancellation propagates.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable, Iterator, Sequence
from typing import Any

import structlog

from thinkloop.core.domain.context import ExecutionContext
from thinkloop.core.domain.errors import ConfigurationError, SchemaValidationError
from thinkloop.core.domain.events import (
    HookEvent,
    ToolAfterPayload,
    ToolBeforePayload,
    ToolErrorPayload,
)
from thinkloop.core.domain.models import (
    ToolCall,
    ToolCallRecord,
    ToolFailure,
    ToolInvocation,
    ToolResult,
    ToolSuccess,
    new_call_id,
)
from thinkloop.core.domain.schemas import validate_value
from thinkloop.core.hooks import HookManager
from thinkloop.core.tools.tool import Tool, ToolExecutionContext


class ToolRegistry:
    """Name → Tool mapping with unique names."""

    def __init__(self, tools: Iterable[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        for tool in tools or ():
            self.add(tool)

    def add(self, tool: Tool) -> None:
        """
        Register a tool.

        Raises:
            ConfigurationError: If a tool with the same name is registered
        """
        if tool.name in self._tools:
            raise ConfigurationError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool

    def replace(self, tool: Tool) -> Tool | None:
        """Register a tool, returning the one it replaced (if any)."""
        previous = self._tools.get(tool.name)
        self._tools[tool.name] = tool
        return previous

    def remove(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def copy(self) -> ToolRegistry:
        clone = ToolRegistry()
        clone._tools = dict(self._tools)
        return clone

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[Tool]:
        return iter(list(self._tools.values()))


class ToolExecutor:
    """
    Executes tool calls and converts every failure into a ToolFailure.

    Example:
        >>> executor = ToolExecutor(hooks)
        >>> result = await executor.execute(add_tool, {"a": 2, "b": 3}, context)
        >>> result.output
        5.0
    """

    def __init__(self, hooks: HookManager, logger: Any = None):
        self.hooks = hooks
        self.logger = logger or structlog.get_logger().bind(component="tool_executor")

    async def execute(
        self,
        tool: Tool,
        raw_args: Any,
        context: ExecutionContext,
        *,
        call: ToolCall | None = None,
    ) -> ToolResult:
        """
        Execute one tool call.

        Args:
            tool: Tool to run
            raw_args: Arguments as produced by the model
            context: The run's ExecutionContext (receives the call record)
            call: Pre-built ToolCall carrying id/iteration/request index;
                  built from raw_args when omitted (its id is the span id
                  handed to the tool)

        Returns:
            ToolSuccess or ToolFailure, never raises (except cancellation)
        """
        _, result = await self._execute_call(tool, raw_args, context, call)
        return result

    async def _execute_call(
        self,
        tool: Tool,
        raw_args: Any,
        context: ExecutionContext,
        call: ToolCall | None,
    ) -> tuple[ToolCall, ToolResult]:
        call = call or ToolCall(
            id=new_call_id(),
            tool_name=tool.name,
            input=raw_args,
            iteration=context.iteration,
        )

        # 1. Validate input
        validation_error: SchemaValidationError | None = None
        try:
            validated = validate_value(tool.input_schema, raw_args, target="input")
            call = ToolCall(
                id=call.id,
                tool_name=call.tool_name,
                input=validated,
                iteration=call.iteration,
                request_index=call.request_index,
            )
        except SchemaValidationError as e:
            validation_error = e

        await self.hooks.emit(
            HookEvent.TOOL_BEFORE, ToolBeforePayload(context=context, tool=tool, call=call)
        )

        started_at = time.time()
        if validation_error is not None:
            result: ToolResult = ToolFailure(
                tool_name=tool.name,
                error=validation_error,
                metadata={"stage": "input_validation"},
                started_at=started_at,
                finished_at=time.time(),
            )
        else:
            result = await self._run(tool, call, context, started_at)

        return call, await self._finish(tool, call, result, context)

    async def execute_unknown(
        self, call: ToolCall, context: ExecutionContext
    ) -> ToolResult:
        """Record a call to a tool that does not exist as a failure."""
        now = time.time()
        result = ToolFailure(
            tool_name=call.tool_name,
            error=f"Tool '{call.tool_name}' not found",
            metadata={"stage": "lookup"},
            started_at=now,
            finished_at=now,
        )
        return await self._finish(None, call, result, context)

    async def execute_many(
        self,
        invocations: Sequence[ToolInvocation],
        registry: ToolRegistry,
        context: ExecutionContext,
        *,
        parallel: bool = False,
    ) -> tuple[list[ToolCall], list[ToolResult]]:
        """
        Dispatch the invocations of one iteration.

        Invocations are dispatched in the order the model emitted them, either
        one after another or concurrently (all started, all awaited).

        Args:
            invocations: Tool directives from the thought
            registry: Tools available to this run
            context: The run's ExecutionContext
            parallel: Run the invocations concurrently

        Returns:
            (calls in request order, results in completion order)
        """
        completed: list[ToolResult] = []

        async def dispatch(index: int, invocation: ToolInvocation) -> ToolCall:
            call = ToolCall(
                id=invocation.id,
                tool_name=invocation.tool_name,
                input=invocation.arguments,
                iteration=context.iteration,
                request_index=index,
            )
            tool = registry.get(invocation.tool_name)
            if tool is None:
                self.logger.warning(
                    "tool_not_found", tool=invocation.tool_name, available=registry.names()
                )
                result = await self.execute_unknown(call, context)
                completed.append(result)
                return call

            # The returned call carries the validated input
            call, result = await self._execute_call(
                tool, invocation.arguments, context, call
            )
            completed.append(result)
            return call

        if parallel and len(invocations) > 1:
            calls = await asyncio.gather(
                *(dispatch(index, invocation) for index, invocation in enumerate(invocations))
            )
            return list(calls), completed

        calls = [await dispatch(index, invocation) for index, invocation in enumerate(invocations)]
        return calls, completed

    async def _run(
        self,
        tool: Tool,
        call: ToolCall,
        context: ExecutionContext,
        started_at: float,
    ) -> ToolResult:
        tool_context = ToolExecutionContext(agent_context=context, call=call, span_id=call.id)
        try:
            if tool.timeout is not None:
                output = await asyncio.wait_for(
                    tool.execute(call.input, tool_context), timeout=tool.timeout
                )
            else:
                output = await tool.execute(call.input, tool_context)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            return ToolFailure(
                tool_name=tool.name,
                error=f"Tool '{tool.name}' timed out after {tool.timeout}s",
                metadata={"stage": "timeout"},
                started_at=started_at,
                finished_at=time.time(),
            )
        except Exception as e:
            return ToolFailure(
                tool_name=tool.name,
                error=e,
                metadata={"stage": "execution", "error_type": type(e).__name__},
                started_at=started_at,
                finished_at=time.time(),
            )

        # Output schema mismatch is a tool failure, not an engine failure
        try:
            output = validate_value(tool.output_schema, output, target="output")
        except SchemaValidationError as e:
            return ToolFailure(
                tool_name=tool.name,
                error=e,
                metadata={"stage": "output_validation"},
                started_at=started_at,
                finished_at=time.time(),
            )

        return ToolSuccess(
            tool_name=tool.name,
            output=output,
            started_at=started_at,
            finished_at=time.time(),
        )

    async def _finish(
        self,
        tool: Tool | None,
        call: ToolCall,
        result: ToolResult,
        context: ExecutionContext,
    ) -> ToolResult:
        record = context.record_tool_call(ToolCallRecord(call=call, result=result))

        if isinstance(result, ToolFailure):
            self.logger.warning(
                "tool_failed",
                tool=call.tool_name,
                call_id=call.id,
                error=result.message[:200],
                stage=result.metadata.get("stage"),
            )
            await self.hooks.emit(
                HookEvent.TOOL_ERROR,
                ToolErrorPayload(
                    context=context, tool_name=call.tool_name, call=call, error=result.error
                ),
            )
        else:
            self.logger.debug("tool_complete", tool=call.tool_name, call_id=call.id)

        await self.hooks.emit(
            HookEvent.TOOL_AFTER,
            ToolAfterPayload(context=context, tool=tool, call=call, result=result, record=record),
        )
        return result
