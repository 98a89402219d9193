"""
Tool provider contracts.

A tool provider contributes tools to an agent for the duration of one run:
setup() is called before the run starts, teardown() after it ends (also on
failure). Remote tool services are reached through a ToolServiceClient; the
core treats every tool uniformly regardless of where it comes from.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from thinkloop.core.tools.tool import Tool


@runtime_checkable
class ToolProviderProtocol(Protocol):
    async def setup(self, agent: Any) -> list[Tool]:
        """
        Prepare the provider and return the tools it contributes.

        Args:
            agent: The agent about to run

        Returns:
            Tools available for this run
        """
        ...

    async def teardown(self) -> None:
        ...


@dataclass(frozen=True)
class RemoteToolSpec:
    """Tool description as listed by a remote tool service."""

    name: str
    description: str = ""
    input_schema: Mapping[str, Any] = field(default_factory=dict)
    output_schema: Mapping[str, Any] | None = None


class ToolServiceClient(Protocol):
    """Client for a remote tool-discovery service."""

    name: str

    async def connect(self) -> None:
        ...

    async def list_tools(self) -> list[RemoteToolSpec]:
        ...

    async def call_tool(self, name: str, arguments: Any) -> Any:
        ...

    async def disconnect(self) -> None:
        ...
