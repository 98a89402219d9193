"""
Remote Tool Provider

Adapts remote tool services (any ToolServiceClient) into Tools for the
duration of a run. Each remote tool is exposed as "<prefix>:<tool name>",
where the prefix defaults to the service name.

A service that fails to connect or list its tools is logged and skipped;
the run proceeds with the tools of the remaining services.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

import structlog

from thinkloop.core.domain.errors import ConfigurationError
from thinkloop.core.interfaces.tools import RemoteToolSpec, ToolServiceClient
from thinkloop.core.tools.tool import Tool, ToolExecutionContext


def _to_spec(raw: RemoteToolSpec | Mapping[str, Any]) -> RemoteToolSpec:
    if isinstance(raw, RemoteToolSpec):
        return raw
    return RemoteToolSpec(
        name=raw["name"],
        description=raw.get("description") or "",
        input_schema=raw.get("input_schema") or raw.get("inputSchema") or {},
        output_schema=raw.get("output_schema") or raw.get("outputSchema"),
    )


class RemoteToolProvider:
    """
    Tool provider over one or more remote tool services.

    Example:
        >>> provider = RemoteToolProvider(weather_client, name_prefix="weather")
        >>> agent = Agent(name="planner", model_client=client, tools=[provider])
    """

    def __init__(
        self,
        clients: ToolServiceClient | Sequence[ToolServiceClient],
        *,
        name_prefix: str | None = None,
        timeout: float | None = None,
    ):
        """
        Args:
            clients: Service client(s) to expose
            name_prefix: Prefix for every tool name (defaults to each client's name)
            timeout: Per-call timeout applied to the wrapped tools

        Raises:
            ConfigurationError: If no client is given
        """
        if isinstance(clients, Sequence):
            self.clients = list(clients)
        else:
            self.clients = [clients]
        if not self.clients:
            raise ConfigurationError("RemoteToolProvider requires at least one service client")

        self.name_prefix = name_prefix
        self.timeout = timeout
        self._connected: list[ToolServiceClient] = []
        self.logger = structlog.get_logger().bind(component="remote_tool_provider")

    async def setup(self, agent: Any) -> list[Tool]:
        tools: list[Tool] = []
        for client in self.clients:
            try:
                await client.connect()
                self._connected.append(client)
                specs = [_to_spec(raw) for raw in await client.list_tools()]
            except Exception as e:
                self.logger.warning(
                    "remote_service_setup_failed",
                    service=getattr(client, "name", None),
                    agent=getattr(agent, "name", None),
                    error=str(e),
                )
                await self._disconnect(client)
                continue

            tools.extend(self._wrap(client, spec) for spec in specs)
            self.logger.debug(
                "remote_tools_registered",
                service=getattr(client, "name", None),
                tool_count=len(specs),
            )
        return tools

    async def teardown(self) -> None:
        for client in list(self._connected):
            await self._disconnect(client)

    async def _disconnect(self, client: ToolServiceClient) -> None:
        if client in self._connected:
            self._connected.remove(client)
        try:
            await client.disconnect()
        except Exception as e:
            self.logger.warning(
                "remote_service_disconnect_failed",
                service=getattr(client, "name", None),
                error=str(e),
            )

    def _wrap(self, client: ToolServiceClient, spec: RemoteToolSpec) -> Tool:
        prefix = self.name_prefix or getattr(client, "name", None) or "remote"
        remote_name = spec.name

        async def call_remote(arguments: Any, _: ToolExecutionContext) -> Any:
            return await client.call_tool(remote_name, arguments)

        return Tool(
            name=f"{prefix}:{remote_name}",
            description=spec.description,
            handler=call_remote,
            input_schema=dict(spec.input_schema) if spec.input_schema else None,
            output_schema=dict(spec.output_schema) if spec.output_schema else None,
            metadata={
                "provider": "remote",
                "service": getattr(client, "name", None),
                "remote_name": remote_name,
            },
            timeout=self.timeout,
        )
