"""
Core Domain Models

This module defines the core data models used throughout the agent domain:
- Usage accounting (Cost, Usage)
- The model's per-iteration decision (Thought and its discriminated action)
- Tool dispatch records (ToolCall, ToolSuccess/ToolFailure, ToolCallRecord)
- Per-iteration history entries (ExecutionCycle)
- The outcome returned to callers (AgentRunResult)

Records are frozen once created; the ExecutionContext only ever appends them.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from thinkloop.core.domain.context import ExecutionContext


def _read_number(raw: Mapping[str, Any] | None, key: str) -> float:
    """Read a non-negative finite number from a mapping, defaulting to 0."""
    if not raw:
        return 0
    value = raw.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if value != value or value in (float("inf"), float("-inf")) or value < 0:
        return 0
    return value


@dataclass(frozen=True)
class Cost:
    """Monetary cost of one or more model calls."""

    generation: float = 0.0
    platform: float = 0.0
    total: float = 0.0

    def __add__(self, other: Cost) -> Cost:
        return Cost(
            generation=self.generation + other.generation,
            platform=self.platform + other.platform,
            total=self.total + other.total,
        )


@dataclass(frozen=True)
class Usage:
    """
    Cumulative token, request and cost counters.

    Attributes:
        requests: Number of model calls
        input_tokens: Prompt tokens
        output_tokens: Completion tokens
        total_tokens: Total tokens
        cost: Monetary cost breakdown
        breakdown: Usage per source (nested agent name); empty unless nested
                   agents contributed
    """

    requests: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost: Cost = field(default_factory=Cost)
    breakdown: Mapping[str, Usage] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> Usage:
        return cls()

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any] | None, *, requests: int = 1) -> Usage:
        """
        Build usage from a provider's raw usage mapping.

        Missing or malformed counters default to zero; a response without any
        usage information therefore contributes nothing but the request count.

        Args:
            raw: Mapping with input_tokens, output_tokens, optional total_tokens
                 and an optional "cost" mapping (generation, platform, total)
            requests: Number of requests this usage represents

        Returns:
            Usage instance
        """
        input_tokens = int(_read_number(raw, "input_tokens"))
        output_tokens = int(_read_number(raw, "output_tokens"))
        total_tokens = int(_read_number(raw, "total_tokens")) or input_tokens + output_tokens
        cost_raw = raw.get("cost") if raw else None
        cost_raw = cost_raw if isinstance(cost_raw, Mapping) else None
        return cls(
            requests=requests,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=total_tokens,
            cost=Cost(
                generation=float(_read_number(cost_raw, "generation")),
                platform=float(_read_number(cost_raw, "platform")),
                total=float(_read_number(cost_raw, "total")),
            ),
        )

    def __add__(self, other: Usage) -> Usage:
        """Add counters; breakdowns are merged per source."""
        merged: dict[str, Usage] = dict(self.breakdown)
        for source, usage in other.breakdown.items():
            merged[source] = merged[source] + usage if source in merged else usage
        return Usage(
            requests=self.requests + other.requests,
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
            cost=self.cost + other.cost,
            breakdown=merged,
        )

    def without_breakdown(self) -> Usage:
        return Usage(
            requests=self.requests,
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            total_tokens=self.total_tokens,
            cost=self.cost,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "requests": self.requests,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
            "cost": {
                "generation": self.cost.generation,
                "platform": self.cost.platform,
                "total": self.cost.total,
            },
        }
        if self.breakdown:
            data["breakdown"] = {
                source: usage.without_breakdown().to_dict()
                for source, usage in self.breakdown.items()
            }
        return data


def new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:16]}"


@dataclass(frozen=True)
class ToolInvocation:
    """A single tool directive emitted by the model."""

    tool_name: str
    arguments: Any = None
    id: str = field(default_factory=new_call_id)


@dataclass(frozen=True)
class FinalAnswer:
    """
    Action that ends the loop.

    Attributes:
        value: The answer, or None when the answer must be synthesized by a
               separate final-result call from the execution history.
    """

    value: Any = None

    @property
    def needs_synthesis(self) -> bool:
        return self.value is None


@dataclass(frozen=True)
class ToolInvocations:
    """Action that dispatches one or more tools, in model-emitted order."""

    invocations: tuple[ToolInvocation, ...]


ThoughtAction = Union[FinalAnswer, ToolInvocations]


@dataclass(frozen=True)
class MemoryUpdate:
    """A memory write requested by the model."""

    value: Any
    description: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Thought:
    """
    The structured decision produced by one think call.

    Attributes:
        reasoning: The model's reasoning for this step
        user_message: Optional short status for end users
        action: FinalAnswer or ToolInvocations
        memory_reads: Memory keys to load before the next think
        memory_updates: Memory entries to write (key → update)
    """

    reasoning: str
    action: ThoughtAction
    user_message: str = ""
    memory_reads: tuple[str, ...] = ()
    memory_updates: Mapping[str, MemoryUpdate] = field(default_factory=dict)

    @property
    def is_final(self) -> bool:
        return isinstance(self.action, FinalAnswer)

    @property
    def invocations(self) -> tuple[ToolInvocation, ...]:
        if isinstance(self.action, ToolInvocations):
            return self.action.invocations
        return ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "reasoning": self.reasoning,
            "user_message": self.user_message,
            "tool_calls": [
                {"id": inv.id, "tool_name": inv.tool_name, "arguments": inv.arguments}
                for inv in self.invocations
            ],
            "memory_reads": list(self.memory_reads),
            "memory_updates": sorted(self.memory_updates),
        }


@dataclass(frozen=True)
class ToolCall:
    """
    A dispatched tool invocation.

    Attributes:
        id: Correlation id (the model's invocation id when available)
        tool_name: Name of the tool
        input: Validated input (raw arguments when validation failed)
        iteration: Iteration index the call originated from (0-based)
        request_index: Position in the model's request list for that iteration
    """

    id: str
    tool_name: str
    input: Any
    iteration: int
    request_index: int = 0


@dataclass(frozen=True)
class ToolSuccess:
    tool_name: str
    output: Any
    metadata: Mapping[str, Any] = field(default_factory=dict)
    started_at: float | None = None
    finished_at: float | None = None

    @property
    def success(self) -> bool:
        return True


@dataclass(frozen=True)
class ToolFailure:
    tool_name: str
    error: BaseException | str
    metadata: Mapping[str, Any] = field(default_factory=dict)
    started_at: float | None = None
    finished_at: float | None = None

    @property
    def success(self) -> bool:
        return False

    @property
    def message(self) -> str:
        return str(self.error)


ToolResult = Union[ToolSuccess, ToolFailure]


@dataclass(frozen=True)
class ToolCallRecord:
    """A ToolCall paired with its ToolResult in the context's flat log."""

    call: ToolCall
    result: ToolResult

    @property
    def tool_name(self) -> str:
        return self.call.tool_name

    @property
    def success(self) -> bool:
        return self.result.success


@dataclass(frozen=True)
class ExecutionCycle:
    """
    One iteration of the loop.

    tool_calls keep the order the model requested them in; results are in
    completion order (identical for sequential dispatch). Each ToolCall's
    request_index allows replaying the original order.
    """

    iteration: int
    thought: Thought
    tool_calls: tuple[ToolCall, ...] = ()
    results: tuple[ToolResult, ...] = ()
    timestamp: float = field(default_factory=time.time)


class RunStatus(str, Enum):
    """Terminal outcome of a run returned to the caller."""

    COMPLETED = "completed"
    BUDGET_EXHAUSTED = "budget_exhausted"


class AgentState(str, Enum):
    """Loop engine states."""

    IDLE = "idle"
    THINKING = "thinking"
    TOOL_DISPATCH = "tool_dispatch"
    OBSERVING = "observing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class AgentRunResult:
    """
    Result of one orchestrator run.

    Attributes:
        status: completed or budget_exhausted
        output: Validated final answer (None when the budget was exhausted)
        context: The run's ExecutionContext (history, usage, tool-call log)
    """

    status: RunStatus
    output: Any
    context: ExecutionContext

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.COMPLETED

    @property
    def usage(self) -> Usage:
        return self.context.usage

    @property
    def iterations(self) -> int:
        return self.context.iteration
