"""
thinkloop - agent execution core.

An orchestration engine for autonomous agents: a bounded think/act/observe
loop over a resilient model client, schema-validated tools (including other
agents), a typed lifecycle hook bus and structured output streaming.
"""

from thinkloop.core.domain.agent import Agent
from thinkloop.core.domain.context import ExecutionContext
from thinkloop.core.domain.errors import (
    ConfigurationError,
    ModelInvocationError,
    PermanentModelError,
    SchemaValidationError,
    StreamProtocolError,
    ThinkloopError,
    TransientModelError,
)
from thinkloop.core.domain.events import HookEvent
from thinkloop.core.domain.graph import walk_agent_graph
from thinkloop.core.domain.models import (
    AgentRunResult,
    Cost,
    RunStatus,
    ToolFailure,
    ToolSuccess,
    Usage,
)
from thinkloop.core.hooks import HookManager
from thinkloop.core.interfaces.llm import ModelRequest, ModelResponse, RawModelResponse, StreamDelta
from thinkloop.core.streaming import StreamAssembler, StreamChunk, StreamSession
from thinkloop.core.tools import Tool, ToolExecutor, ToolRegistry, build_tool
from thinkloop.infrastructure.llm import LiteLLMProvider, ResilientModelClient, RetryPolicy
from thinkloop.infrastructure.memory import InMemoryStore
from thinkloop.infrastructure.tools import RemoteToolProvider

__version__ = "0.1.0"

__all__ = [
    "Agent",
    "AgentRunResult",
    "ConfigurationError",
    "Cost",
    "ExecutionContext",
    "HookEvent",
    "HookManager",
    "InMemoryStore",
    "LiteLLMProvider",
    "ModelInvocationError",
    "ModelRequest",
    "ModelResponse",
    "PermanentModelError",
    "RawModelResponse",
    "RemoteToolProvider",
    "ResilientModelClient",
    "RetryPolicy",
    "RunStatus",
    "SchemaValidationError",
    "StreamAssembler",
    "StreamChunk",
    "StreamDelta",
    "StreamProtocolError",
    "StreamSession",
    "ThinkloopError",
    "Tool",
    "ToolExecutor",
    "ToolFailure",
    "ToolRegistry",
    "ToolSuccess",
    "TransientModelError",
    "Usage",
    "build_tool",
    "walk_agent_graph",
    "__version__",
]
