"""
Lifecycle Hook Events

The closed set of events published on the hook bus during a run, each paired
with exactly one payload type. The enumeration and payload shapes are the
public observation contract for consumers:

- agent:start / agent:end      run boundaries (agent:end carries result or error)
- think:start / think:end      around each think model call (think:end carries
                               the thought or the error)
- loop:end                     after each iteration (also on failure)
- tool:before / tool:after     around each tool execution
- tool:error                   tool failed (validation, exception, timeout, unknown)
- memory:read / memory:write   per memory key accessed
- stream:start / stream:chunk / stream:end / stream:error
                               streaming lifecycle of one model call
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from thinkloop.core.domain.models import (
    AgentRunResult,
    Thought,
    ToolCall,
    ToolCallRecord,
    ToolResult,
)

if TYPE_CHECKING:
    from thinkloop.core.domain.context import ExecutionContext
    from thinkloop.core.streaming import StreamChunk
    from thinkloop.core.tools.tool import Tool


class HookEvent(str, Enum):
    """Lifecycle event tags."""

    AGENT_START = "agent:start"
    AGENT_END = "agent:end"
    THINK_START = "think:start"
    THINK_END = "think:end"
    LOOP_END = "loop:end"
    TOOL_BEFORE = "tool:before"
    TOOL_AFTER = "tool:after"
    TOOL_ERROR = "tool:error"
    MEMORY_READ = "memory:read"
    MEMORY_WRITE = "memory:write"
    STREAM_START = "stream:start"
    STREAM_CHUNK = "stream:chunk"
    STREAM_END = "stream:end"
    STREAM_ERROR = "stream:error"


@dataclass(frozen=True)
class AgentStartPayload:
    context: ExecutionContext


@dataclass(frozen=True)
class AgentEndPayload:
    """result is set on normal return (including budget exhaustion), error on failure."""

    context: ExecutionContext
    result: AgentRunResult | None = None
    error: BaseException | None = None


@dataclass(frozen=True)
class ThinkStartPayload:
    context: ExecutionContext
    iteration: int


@dataclass(frozen=True)
class ThinkEndPayload:
    """thought is set when the think call succeeded, error when it raised."""

    context: ExecutionContext
    thought: Thought | None = None
    error: BaseException | None = None


@dataclass(frozen=True)
class LoopEndPayload:
    context: ExecutionContext
    iteration: int


@dataclass(frozen=True)
class ToolBeforePayload:
    context: ExecutionContext
    tool: Tool
    call: ToolCall


@dataclass(frozen=True)
class ToolAfterPayload:
    """tool is None when the requested tool does not exist."""

    context: ExecutionContext
    tool: Tool | None
    call: ToolCall
    result: ToolResult
    record: ToolCallRecord


@dataclass(frozen=True)
class ToolErrorPayload:
    context: ExecutionContext
    tool_name: str
    call: ToolCall
    error: BaseException | str


@dataclass(frozen=True)
class MemoryReadPayload:
    context: ExecutionContext
    key: str
    value: Any


@dataclass(frozen=True)
class MemoryWritePayload:
    context: ExecutionContext
    key: str
    value: Any


@dataclass(frozen=True)
class StreamStartPayload:
    context: ExecutionContext
    call_type: str


@dataclass(frozen=True)
class StreamChunkPayload:
    context: ExecutionContext
    chunk: StreamChunk
    field_buffers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class StreamEndPayload:
    context: ExecutionContext
    call_type: str
    field_buffers: Mapping[str, str] = field(default_factory=dict)
    result: Any = None


@dataclass(frozen=True)
class StreamErrorPayload:
    context: ExecutionContext
    call_type: str
    error: BaseException | str


PAYLOAD_TYPES: dict[HookEvent, type] = {
    HookEvent.AGENT_START: AgentStartPayload,
    HookEvent.AGENT_END: AgentEndPayload,
    HookEvent.THINK_START: ThinkStartPayload,
    HookEvent.THINK_END: ThinkEndPayload,
    HookEvent.LOOP_END: LoopEndPayload,
    HookEvent.TOOL_BEFORE: ToolBeforePayload,
    HookEvent.TOOL_AFTER: ToolAfterPayload,
    HookEvent.TOOL_ERROR: ToolErrorPayload,
    HookEvent.MEMORY_READ: MemoryReadPayload,
    HookEvent.MEMORY_WRITE: MemoryWritePayload,
    HookEvent.STREAM_START: StreamStartPayload,
    HookEvent.STREAM_CHUNK: StreamChunkPayload,
    HookEvent.STREAM_END: StreamEndPayload,
    HookEvent.STREAM_ERROR: StreamErrorPayload,
}
