"""
Agent - Think/Act/Observe Loop Engine

The orchestrator that drives one run of an agent:

    Idle → Thinking → (ToolDispatch)? → Observing → Thinking … → Done | Failed

Each iteration:
1. think: one model call producing a Thought (reasoning plus either tool
   directives or completion)
2. memory: load/store memory entries requested by the thought
3. act: dispatch requested tools in request order (sequential or parallel)
4. observe: record the ExecutionCycle, advance the iteration, emit loop:end

The loop ends when a thought requests no further action (the answer is then
taken from the thought or synthesized by a final-result call and validated
against the output schema) or when the iteration budget is exhausted, which
is reported as a distinguished outcome rather than an exception.

Agents compose: Agent.as_tool() exposes an agent as a Tool of another
agent. Cyclic compositions are allowed. Each nested run has its own
iteration budget, and the nesting depth of a run is capped by the called
agent's max_depth: a call that would go deeper fails as a tool call, so the
caller's budget ends the recursion.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

import structlog

from thinkloop.core.domain.context import ExecutionContext
from thinkloop.core.domain.errors import ConfigurationError, SchemaValidationError, ThinkloopError
from thinkloop.core.domain.events import (
    AgentEndPayload,
    AgentStartPayload,
    HookEvent,
    LoopEndPayload,
    MemoryReadPayload,
    MemoryWritePayload,
    ThinkEndPayload,
    ThinkStartPayload,
)
from thinkloop.core.domain.models import (
    AgentRunResult,
    AgentState,
    ExecutionCycle,
    RunStatus,
    Thought,
    ToolFailure,
    ToolResult,
    ToolSuccess,
)
from thinkloop.core.domain.schemas import (
    AgentDecision,
    json_schema_of,
    parse_decision,
    to_plain,
    validate_value,
)
from thinkloop.core.hooks import HookHandler, HookManager, Unregister
from thinkloop.core.interfaces.llm import ModelClientProtocol, ModelRequest, ModelResponse
from thinkloop.core.interfaces.memory import MemoryProtocol
from thinkloop.core.interfaces.tools import ToolProviderProtocol
from thinkloop.core.prompts.loop_prompts import FINAL_RESULT_PROMPT, MEMORY_PROMPT, THINK_PROMPT
from thinkloop.core.streaming import StreamSession
from thinkloop.core.tools.executor import ToolExecutor, ToolRegistry
from thinkloop.core.tools.tool import Tool, ToolExecutionContext
from thinkloop.infrastructure.memory.in_memory import InMemoryStore
from thinkloop.infrastructure.tools.tool_converter import (
    DEFAULT_MAX_OUTPUT_CHARS,
    cycle_to_final_entry,
    cycle_to_history_entry,
    tools_to_descriptors,
)

_DECISION_SCHEMA = AgentDecision.model_json_schema()

DEFAULT_MAX_DEPTH = 3


class Agent:
    """
    Autonomous agent running a bounded think/act/observe loop.

    Example:
        >>> agent = Agent(
        ...     name="calculator",
        ...     model_client=ResilientModelClient(LiteLLMProvider()),
        ...     instructions="Solve arithmetic tasks with the tools.",
        ...     tools=[add_tool, divide_tool],
        ...     max_iterations=5,
        ... )
        >>> result = await agent.process("What is 2 + 3?")
        >>> result.status, result.output
        (<RunStatus.COMPLETED: 'completed'>, 5)
    """

    def __init__(
        self,
        name: str,
        model_client: ModelClientProtocol,
        *,
        description: str = "",
        instructions: str = "",
        tools: Sequence[Any] | None = None,
        max_iterations: int = 25,
        max_depth: int = DEFAULT_MAX_DEPTH,
        model: str | Sequence[str] | None = None,
        input_schema: Any = None,
        output_schema: Any = None,
        enable_streaming: bool = False,
        parallel_tool_calls: bool = False,
        memory: MemoryProtocol | None = None,
        enable_memory: bool | None = None,
        metadata: dict[str, Any] | None = None,
        verbose: bool = False,
        hooks: HookManager | None = None,
        on_stream_start: HookHandler | None = None,
        on_stream_chunk: HookHandler | None = None,
        on_stream_end: HookHandler | None = None,
        on_stream_error: HookHandler | None = None,
        history_window: int = 3,
        max_output_chars: int = DEFAULT_MAX_OUTPUT_CHARS,
    ):
        """
        Initialize an agent.

        Args:
            name: Agent name (also its tool name when composed)
            model_client: Resilient model client used for every model call
            description: What the agent does (used when exposed as a tool)
            instructions: Domain instructions passed to every think call
            tools: Tools, agents (exposed via as_tool()) and tool providers
            max_iterations: Iteration budget per run (>= 1)
            max_depth: Deepest agent-as-tool nesting level at which this agent
                       may run (0 = only as a top-level run)
            model: Model identifier or ordered fallback list
            input_schema: Schema the run input is validated against
            output_schema: Schema the final answer is validated against
            enable_streaming: Stream model calls through the hook bus
            parallel_tool_calls: Run the tool calls of one iteration concurrently
            memory: Memory store; enables memory unless enable_memory is False
            enable_memory: Enable memory (an InMemoryStore is created when no
                           store is given)
            metadata: Metadata copied into every run's context
            verbose: Log per-iteration progress at info level
            hooks: Shared hook manager (a private one is created otherwise)
            on_stream_start/on_stream_chunk/on_stream_end/on_stream_error:
                Shortcuts registering stream hook handlers
            history_window: Number of recent cycles shown to the think call
            max_output_chars: Truncation limit for tool outputs shown to the model

        Raises:
            ConfigurationError: Invalid name, budget, or duplicate tool names
        """
        if not name or not name.strip():
            raise ConfigurationError("Agent name must be a non-empty string")
        if max_iterations < 1:
            raise ConfigurationError(f"max_iterations must be >= 1, got {max_iterations}")
        if max_depth < 0:
            raise ConfigurationError(f"max_depth must be >= 0, got {max_depth}")

        self.name = name
        self.model_client = model_client
        self.description = description
        self.instructions = instructions
        self.max_iterations = max_iterations
        self.max_depth = max_depth
        self.models: tuple[str, ...] = (
            () if model is None else (model,) if isinstance(model, str) else tuple(model)
        )
        self.input_schema = input_schema
        self.output_schema = output_schema
        self.enable_streaming = enable_streaming
        self.parallel_tool_calls = parallel_tool_calls
        self.metadata = dict(metadata or {})
        self.verbose = verbose
        self.history_window = history_window
        self.max_output_chars = max_output_chars

        if enable_memory is None:
            enable_memory = memory is not None
        self.enable_memory = enable_memory
        self.memory: MemoryProtocol | None = (
            (memory or InMemoryStore()) if enable_memory else memory
        )

        self.hooks = hooks or HookManager()
        self.logger = structlog.get_logger().bind(component="agent", agent=name)
        self._executor = ToolExecutor(self.hooks)
        self._registry = ToolRegistry()
        self._providers: list[ToolProviderProtocol] = []

        for item in tools or ():
            if isinstance(item, (Tool, Agent)):
                self.add_tool(item)
            elif isinstance(item, ToolProviderProtocol):
                self.add_tool_provider(item)
            else:
                raise ConfigurationError(
                    f"Unsupported tool entry for agent '{name}': {type(item).__name__}"
                )

        for event, handler in (
            (HookEvent.STREAM_START, on_stream_start),
            (HookEvent.STREAM_CHUNK, on_stream_chunk),
            (HookEvent.STREAM_END, on_stream_end),
            (HookEvent.STREAM_ERROR, on_stream_error),
        ):
            if handler is not None:
                self.hooks.on(event, handler)

    # ------------------------------------------------------------------
    # Tool management
    # ------------------------------------------------------------------

    @property
    def tools(self) -> list[Tool]:
        return list(self._registry)

    @property
    def tool_providers(self) -> list[ToolProviderProtocol]:
        return list(self._providers)

    def add_tool(self, tool: Tool | Agent) -> Tool:
        """
        Register a tool (an Agent is wrapped with as_tool()).

        Raises:
            ConfigurationError: If the name is already registered
        """
        if isinstance(tool, Agent):
            tool = tool.as_tool()
        self._registry.add(tool)
        return tool

    def remove_tool(self, name: str) -> bool:
        return self._registry.remove(name)

    def get_tool(self, name: str) -> Tool | None:
        return self._registry.get(name)

    def add_tool_provider(self, provider: ToolProviderProtocol) -> None:
        self._providers.append(provider)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def register_hook(self, event: HookEvent | str, handler: HookHandler) -> Unregister:
        return self.hooks.on(event, handler)

    def on(self, event: HookEvent | str, handler: HookHandler) -> Unregister:
        return self.hooks.on(event, handler)

    def once(self, event: HookEvent | str, handler: HookHandler) -> Unregister:
        return self.hooks.once(event, handler)

    def off(self, event: HookEvent | str, handler: HookHandler) -> None:
        self.hooks.off(event, handler)

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------

    def as_tool(
        self,
        name: str | None = None,
        description: str | None = None,
        *,
        timeout: float | None = None,
    ) -> Tool:
        """
        Expose this agent as a Tool.

        Invoking the tool runs process() one nesting level below the calling
        run, with the tool input as goal and the tool call id as parent span.
        Nested usage is merged into the calling run under this agent's name.
        A nested budget exhaustion, a fatal error, or a call beyond max_depth
        becomes a tool failure of the caller.

        Args:
            name: Tool name (defaults to the agent name)
            description: Tool description (defaults to the agent description)
            timeout: Optional timeout for the nested run

        Returns:
            Tool wrapping this agent
        """

        async def run_nested(goal: Any, tool_context: ToolExecutionContext) -> Any:
            parent = tool_context.agent_context
            depth = parent.depth + 1
            if depth > self.max_depth:
                self.logger.warning(
                    "nesting_depth_exceeded",
                    caller=parent.agent_name,
                    depth=depth,
                    max_depth=self.max_depth,
                )
                raise ThinkloopError(
                    f"Agent '{self.name}' cannot run at nesting depth {depth} "
                    f"(max_depth={self.max_depth})"
                )
            try:
                result = await self.process(
                    goal, parent_span_id=tool_context.span_id, depth=depth
                )
            except Exception as e:
                nested = getattr(e, "context", None)
                if isinstance(nested, ExecutionContext):
                    parent.update_usage(nested.usage, source=self.name)
                raise

            parent.update_usage(result.usage, source=self.name)
            if not result.ok:
                raise ThinkloopError(
                    f"Agent '{self.name}' exhausted its iteration budget "
                    f"({self.max_iterations}) without a final answer"
                )
            return to_plain(result.output)

        return Tool(
            name=name or self.name,
            description=description or self.description or f"Delegate the task to agent '{self.name}'",
            handler=run_nested,
            input_schema=self.input_schema,
            output_schema=None,
            metadata={"agent": self, "kind": "agent"},
            timeout=timeout,
        )

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def process(
        self, input: Any, parent_span_id: str | None = None, *, depth: int = 0
    ) -> AgentRunResult:
        """
        Run the agent on one input.

        Args:
            input: The goal (validated against input_schema when declared)
            parent_span_id: Opaque correlation id of the caller
            depth: Nesting level (0 for a top-level run, set by as_tool())

        Returns:
            AgentRunResult with status completed (validated output) or
            budget_exhausted (output None), plus the run's context

        Raises:
            SchemaValidationError: Invalid input (before any model call) or
                                   invalid final answer / decision
            Exception: Non-retryable or exhausted model errors
            Any fatal error carries the run's ExecutionContext as ``context``.
        """
        context = ExecutionContext(
            self.name,
            goal=input,
            parent_span_id=parent_span_id,
            depth=depth,
            metadata=self.metadata,
        )

        # 1. Validate input before anything else happens
        try:
            context.goal = validate_value(self.input_schema, input, target="input")
        except SchemaValidationError as e:
            context.transition(AgentState.FAILED)
            e.context = context
            raise

        # 2. Activate tool providers for this run only
        registry = self._registry.copy()
        active: list[ToolProviderProtocol] = []
        try:
            for provider in self._providers:
                active.append(provider)
                for tool in await provider.setup(self):
                    if registry.replace(tool) is not None:
                        self.logger.debug("provider_tool_shadows", tool=tool.name)

            # 3. Run the loop
            await self.hooks.emit(HookEvent.AGENT_START, AgentStartPayload(context=context))
            self._log(
                "agent_started",
                session_id=context.session_id,
                max_iterations=self.max_iterations,
                tools=registry.names(),
            )
            try:
                result = await self._run_loop(context, registry)
            except Exception as e:
                context.transition(AgentState.FAILED)
                _attach_context(e, context)
                self.logger.error(
                    "agent_failed",
                    session_id=context.session_id,
                    iteration=context.iteration,
                    error_type=type(e).__name__,
                    error=str(e)[:200],
                )
                await self.hooks.emit(
                    HookEvent.AGENT_END, AgentEndPayload(context=context, error=e)
                )
                raise

            context.cleanup_breakdown(self.name)
            await self.hooks.emit(
                HookEvent.AGENT_END, AgentEndPayload(context=context, result=result)
            )
            self._log(
                "agent_finished",
                session_id=context.session_id,
                status=result.status.value,
                iterations=context.iteration,
                total_tokens=context.usage.total_tokens,
            )
            return result
        except Exception as e:
            _attach_context(e, context)
            raise
        finally:
            await self._teardown(active)

    async def _run_loop(self, context: ExecutionContext, registry: ToolRegistry) -> AgentRunResult:
        while context.iteration < self.max_iterations:
            iteration = context.iteration
            self._log("iteration_started", iteration=iteration + 1, max_iterations=self.max_iterations)

            try:
                # 1. Think
                context.transition(AgentState.THINKING)
                thought = await self._think(context, registry)

                # 2. Memory actions (before tools)
                results: list[ToolResult] = await self._handle_memory(thought, context)

                # 3. Act
                calls: list = []
                if thought.invocations:
                    context.transition(AgentState.TOOL_DISPATCH)
                    self._log(
                        "tools_dispatched",
                        tools=[inv.tool_name for inv in thought.invocations],
                        parallel=self.parallel_tool_calls,
                    )
                    calls, tool_results = await self._executor.execute_many(
                        thought.invocations,
                        registry,
                        context,
                        parallel=self.parallel_tool_calls,
                    )
                    results.extend(tool_results)

                # 4. Observe
                context.transition(AgentState.OBSERVING)
                context.add_cycle(
                    ExecutionCycle(
                        iteration=iteration,
                        thought=thought,
                        tool_calls=tuple(calls),
                        results=tuple(results),
                    )
                )
                context.advance_iteration()
            finally:
                await self.hooks.emit(
                    HookEvent.LOOP_END, LoopEndPayload(context=context, iteration=context.iteration)
                )

            wants_memory = self.enable_memory and bool(thought.memory_reads)
            if thought.is_final and not wants_memory:
                output = await self._final_answer(thought, context)
                context.transition(AgentState.DONE)
                return AgentRunResult(status=RunStatus.COMPLETED, output=output, context=context)

        context.transition(AgentState.DONE)
        self.logger.warning(
            "iteration_budget_exhausted",
            session_id=context.session_id,
            max_iterations=self.max_iterations,
            tool_calls=len(context.tool_calls),
        )
        return AgentRunResult(status=RunStatus.BUDGET_EXHAUSTED, output=None, context=context)

    # ------------------------------------------------------------------
    # Think
    # ------------------------------------------------------------------

    async def _think(self, context: ExecutionContext, registry: ToolRegistry) -> Thought:
        await self.hooks.emit(
            HookEvent.THINK_START, ThinkStartPayload(context=context, iteration=context.iteration)
        )

        request = ModelRequest(
            name="think",
            instructions=self._think_instructions(),
            input=await self._think_input(context, registry),
            output_schema=_DECISION_SCHEMA,
            models=self.models,
            parent_span_id=context.parent_span_id,
        )
        try:
            response = await self._call_model(request, context)
            thought = parse_decision(_structured(response))
        except Exception as e:
            await self.hooks.emit(HookEvent.THINK_END, ThinkEndPayload(context=context, error=e))
            raise

        await self.hooks.emit(HookEvent.THINK_END, ThinkEndPayload(context=context, thought=thought))
        self._log(
            "think_complete",
            reasoning=thought.reasoning[:200],
            tool_calls=len(thought.invocations),
            memory_reads=len(thought.memory_reads),
            memory_writes=len(thought.memory_updates),
        )
        return thought

    def _think_instructions(self) -> str:
        if self.enable_memory:
            return THINK_PROMPT + "\n\n" + MEMORY_PROMPT
        return THINK_PROMPT

    async def _think_input(self, context: ExecutionContext, registry: ToolRegistry) -> dict[str, Any]:
        memory_catalog = None
        if self.enable_memory and self.memory is not None and await self.memory.has_entries():
            memory_catalog = await self.memory.list_entries()

        return {
            "goal": to_plain(context.goal),
            "agent_description": self.description,
            "instructions": self.instructions or "No specific instructions.",
            "available_tools": tools_to_descriptors(registry),
            "execution_history": [
                cycle_to_history_entry(cycle, self.max_output_chars)
                for cycle in context.last_cycles(self.history_window)
            ],
            "current_iteration": context.iteration + 1,
            "max_iterations": self.max_iterations,
            "memory_catalog": memory_catalog,
            "loaded_memory": context.metadata.get("current_memory"),
        }

    async def _call_model(self, request: ModelRequest, context: ExecutionContext) -> ModelResponse:
        if self.enable_streaming:
            return await self.model_client.stream(
                request,
                lambda call_type: StreamSession(call_type, self.hooks, context),
                context,
            )
        return await self.model_client.invoke(request, context)

    # ------------------------------------------------------------------
    # Memory
    # ------------------------------------------------------------------

    async def _handle_memory(self, thought: Thought, context: ExecutionContext) -> list[ToolResult]:
        if not self.enable_memory or self.memory is None:
            return []

        results: list[ToolResult] = []
        keys = list(dict.fromkeys(thought.memory_reads))
        if keys:
            try:
                data = await self.memory.read(keys)
            except Exception as e:
                self.logger.warning("memory_read_failed", keys=keys, error=str(e))
                results.append(ToolFailure(tool_name="memory_read", error=e))
            else:
                context.set_metadata("current_memory", data)
                for key in keys:
                    await self.hooks.emit(
                        HookEvent.MEMORY_READ,
                        MemoryReadPayload(context=context, key=key, value=data.get(key)),
                    )
                results.append(
                    ToolSuccess(tool_name="memory_read", output={"keys": keys, "data": data})
                )
                self._log("memory_loaded", keys=keys, found=len(data))

        if thought.memory_updates:
            written: list[str] = []
            try:
                for key, update in thought.memory_updates.items():
                    await self.memory.write(
                        key, update.value, update.description or key, dict(update.metadata)
                    )
                    written.append(key)
                    await self.hooks.emit(
                        HookEvent.MEMORY_WRITE,
                        MemoryWritePayload(context=context, key=key, value=update.value),
                    )
            except Exception as e:
                self.logger.warning("memory_write_failed", written=written, error=str(e))
                results.append(ToolFailure(tool_name="memory_write", error=e))
            else:
                results.append(ToolSuccess(tool_name="memory_write", output={"keys": written}))
                self._log("memory_written", keys=written)

        return results

    # ------------------------------------------------------------------
    # Final answer
    # ------------------------------------------------------------------

    async def _final_answer(self, thought: Thought, context: ExecutionContext) -> Any:
        action = thought.action
        if getattr(action, "needs_synthesis", True):
            value = await self._generate_final_result(context)
        else:
            value = action.value
        return validate_value(self.output_schema, value, target="output")

    async def _generate_final_result(self, context: ExecutionContext) -> Any:
        self._log("final_result_requested", iterations=context.iteration)
        output_schema = json_schema_of(self.output_schema) if self.output_schema is not None else None
        request = ModelRequest(
            name="final_result",
            instructions=FINAL_RESULT_PROMPT,
            input={
                "goal": to_plain(context.goal),
                "instructions": self.instructions or "No specific instructions.",
                "execution_history": [
                    cycle_to_final_entry(cycle, self.max_output_chars)
                    for cycle in context.execution_history
                ],
                "total_iterations": context.iteration,
            },
            output_schema=output_schema,
            models=self.models,
            parent_span_id=context.parent_span_id,
        )
        response = await self._call_model(request, context)
        if output_schema is not None:
            return _structured(response)
        return response.message if response.message is not None else response.payload

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _teardown(self, providers: list[ToolProviderProtocol]) -> None:
        for provider in providers:
            try:
                await provider.teardown()
            except Exception as e:
                self.logger.warning(
                    "tool_provider_teardown_failed",
                    provider=type(provider).__name__,
                    error=str(e),
                )

    def _log(self, event: str, **kwargs: Any) -> None:
        if self.verbose:
            self.logger.info(event, **kwargs)
        else:
            self.logger.debug(event, **kwargs)

    def __repr__(self) -> str:
        return f"Agent(name={self.name!r}, tools={self._registry.names()!r})"


def _structured(response: ModelResponse) -> Any:
    """Structured payload of a response, parsing a JSON message when needed."""
    if response.payload is not None:
        return response.payload
    if isinstance(response.message, str):
        try:
            return json.loads(response.message)
        except ValueError:
            return response.message
    return None


def _attach_context(error: BaseException, context: ExecutionContext) -> None:
    if isinstance(error, ThinkloopError):
        if error.context is None:
            error.context = context
        return
    if getattr(error, "context", None) is None:
        try:
            error.context = context  # type: ignore[attr-defined]
        except AttributeError:
            # Exceptions with __slots__ cannot carry the context
            pass
