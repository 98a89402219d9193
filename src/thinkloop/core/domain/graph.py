"""
Agent graph introspection.

Agents may hold other agents as tools, including cyclically (A → B → A).
walk_agent_graph() visits each agent once per traversal, so it terminates on
any composition.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from thinkloop.core.domain.agent import Agent


@dataclass(frozen=True)
class GraphNode:
    id: str
    name: str
    kind: str  # "agent", "tool" or "provider"


@dataclass
class AgentGraph:
    """Nodes and directed edges (caller → callee) of an agent composition."""

    root: str
    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[tuple[str, str]] = field(default_factory=list)

    def node_ids(self) -> list[str]:
        return [node.id for node in self.nodes]

    def agents(self) -> list[str]:
        return [node.name for node in self.nodes if node.kind == "agent"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "root": self.root,
            "nodes": [{"id": n.id, "name": n.name, "kind": n.kind} for n in self.nodes],
            "edges": [list(edge) for edge in self.edges],
        }


def _agent_id(agent: Agent) -> str:
    return f"agent:{agent.name}:{id(agent):x}"


def walk_agent_graph(agent: Agent) -> AgentGraph:
    """
    Collect the agents, tools and providers reachable from an agent.

    Args:
        agent: Root agent

    Returns:
        AgentGraph; an agent reachable along several paths (or a cycle)
        appears once, with one edge per reference
    """
    graph = AgentGraph(root=_agent_id(agent))
    visited: set[int] = set()

    def visit(current: Agent) -> str:
        node_id = _agent_id(current)
        if id(current) in visited:
            return node_id
        visited.add(id(current))
        graph.nodes.append(GraphNode(id=node_id, name=current.name, kind="agent"))

        for tool in current.tools:
            nested = tool.metadata.get("agent")
            if nested is not None:
                graph.edges.append((node_id, visit(nested)))
                continue
            tool_id = f"tool:{current.name}:{tool.name}"
            graph.nodes.append(GraphNode(id=tool_id, name=tool.name, kind="tool"))
            graph.edges.append((node_id, tool_id))

        for provider in current.tool_providers:
            provider_id = f"provider:{current.name}:{type(provider).__name__}:{id(provider):x}"
            graph.nodes.append(
                GraphNode(id=provider_id, name=type(provider).__name__, kind="provider")
            )
            graph.edges.append((node_id, provider_id))

        return node_id

    visit(agent)
    return graph
