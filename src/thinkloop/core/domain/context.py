"""
Execution Context

Mutable per-run state owned by exactly one orchestrator run. Created when
the run starts and handed back to the caller at the end (inside the
AgentRunResult, or attached to the raised error); never reused.

Invariants:
- iteration starts at 0 and never decreases
- execution_history and tool_calls are append-only; entries are frozen
- usage only grows
"""

from __future__ import annotations

import time
import uuid
from typing import Any

from thinkloop.core.domain.models import (
    AgentState,
    ExecutionCycle,
    ToolCallRecord,
    Usage,
)


class ExecutionContext:
    """
    Per-run state: iteration count, history, usage and tool-call log.

    Attributes:
        agent_name: Name of the agent driving this run
        session_id: Opaque unique id of the run
        goal: The validated input of the run
        parent_span_id: Opaque correlation id for external tracing
        depth: Agent-as-tool nesting level (0 for a top-level run)
        metadata: Free-form run metadata (copied from the agent)
        state: Current loop engine state
    """

    def __init__(
        self,
        agent_name: str,
        *,
        goal: Any = None,
        session_id: str | None = None,
        parent_span_id: str | None = None,
        depth: int = 0,
        metadata: dict[str, Any] | None = None,
    ):
        now = time.time()
        self.agent_name = agent_name
        self.session_id = session_id or uuid.uuid4().hex
        self.goal = goal
        self.parent_span_id = parent_span_id
        self.depth = depth
        self.metadata: dict[str, Any] = dict(metadata or {})
        self.state = AgentState.IDLE
        self.started_at = now
        self.updated_at = now
        self._iteration = 0
        self._history: list[ExecutionCycle] = []
        self._tool_calls: list[ToolCallRecord] = []
        self._usage = Usage.empty()

    @property
    def iteration(self) -> int:
        return self._iteration

    @property
    def execution_history(self) -> tuple[ExecutionCycle, ...]:
        return tuple(self._history)

    @property
    def tool_calls(self) -> tuple[ToolCallRecord, ...]:
        return tuple(self._tool_calls)

    @property
    def usage(self) -> Usage:
        return self._usage

    def advance_iteration(self) -> int:
        """Increment the iteration counter and return the new value."""
        self._iteration += 1
        self._touch()
        return self._iteration

    def transition(self, state: AgentState) -> None:
        self.state = state
        self._touch()

    def add_cycle(self, cycle: ExecutionCycle) -> ExecutionCycle:
        self._history.append(cycle)
        self._touch()
        return cycle

    def record_tool_call(self, record: ToolCallRecord) -> ToolCallRecord:
        self._tool_calls.append(record)
        self._touch()
        return record

    def update_usage(self, delta: Usage, source: str | None = None) -> None:
        """
        Merge usage additively.

        Args:
            delta: Usage to add
            source: Optional source name (nested agent); when given the usage
                    is also tracked in the per-source breakdown
        """
        if source is not None:
            delta = Usage(
                requests=delta.requests,
                input_tokens=delta.input_tokens,
                output_tokens=delta.output_tokens,
                total_tokens=delta.total_tokens,
                cost=delta.cost,
                breakdown={source: delta.without_breakdown()},
            )
        self._usage = self._usage + delta
        self._touch()

    def cleanup_breakdown(self, owner: str) -> None:
        """Drop the breakdown when the owning agent is its only source."""
        if set(self._usage.breakdown) <= {owner}:
            self._usage = self._usage.without_breakdown()

    def last_cycles(self, count: int = 3) -> list[ExecutionCycle]:
        if count <= 0:
            return []
        return self._history[-count:]

    def set_metadata(self, key: str, value: Any) -> None:
        self.metadata[key] = value
        self._touch()

    def snapshot(self) -> dict[str, Any]:
        """Serializable view of the run for logging and diagnostics."""
        return {
            "agent_name": self.agent_name,
            "session_id": self.session_id,
            "parent_span_id": self.parent_span_id,
            "depth": self.depth,
            "iteration": self._iteration,
            "state": self.state.value,
            "goal": self.goal,
            "usage": self._usage.to_dict(),
            "cycles": len(self._history),
            "tool_calls": [
                {
                    "id": record.call.id,
                    "tool": record.tool_name,
                    "iteration": record.call.iteration,
                    "request_index": record.call.request_index,
                    "success": record.success,
                }
                for record in self._tool_calls
            ],
            "metadata": dict(self.metadata),
            "started_at": self.started_at,
            "updated_at": self.updated_at,
        }

    def _touch(self) -> None:
        self.updated_at = time.time()
