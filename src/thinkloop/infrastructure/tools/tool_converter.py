"""
Tool Converter - model-facing views of tools and tool results.

This module renders internal tool definitions and execution records into
the JSON-compatible shapes the think and final-result calls consume:
- tool descriptors (name, description, JSON-schema parameters, examples)
- observations (one entry per tool result, large outputs truncated)
- execution history entries (one per cycle)
"""

import json
from collections.abc import Iterable
from typing import Any

from thinkloop.core.domain.models import ExecutionCycle, ToolResult, ToolSuccess
from thinkloop.core.domain.schemas import to_plain
from thinkloop.core.tools.tool import Tool

DEFAULT_MAX_OUTPUT_CHARS = 20000


def tools_to_descriptors(tools: Iterable[Tool]) -> list[dict[str, Any]]:
    """
    Convert tools to the descriptor list shown to the model.

    Args:
        tools: Tools available for the run

    Returns:
        List of descriptors:
        [
            {
                "name": "add",
                "description": "Add two numbers",
                "parameters": { JSON Schema },
                "examples": [...]          # only when declared
            },
            ...
        ]
    """
    return [tool.descriptor() for tool in tools]


def serialize_output(value: Any) -> str:
    """JSON for structured values, str() for primitives."""
    value = to_plain(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def _truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    overflow = len(text) - max_chars
    return text[:max_chars] + f"\n\n[... TRUNCATED - {overflow} more chars ...]"


def tool_result_to_observation(
    result: ToolResult,
    max_output_chars: int = DEFAULT_MAX_OUTPUT_CHARS,
) -> dict[str, Any]:
    """
    Convert a tool result to the observation fed back to the model.

    Large outputs are truncated to prevent token overflow.

    Args:
        result: ToolSuccess or ToolFailure
        max_output_chars: Max characters of the serialized output

    Returns:
        {"tool": ..., "success": True, "result": "..."} or
        {"tool": ..., "success": False, "error": "..."}

    Example:
        >>> tool_result_to_observation(ToolSuccess(tool_name="add", output=5))
        {'tool': 'add', 'success': True, 'result': '5'}
    """
    if isinstance(result, ToolSuccess):
        return {
            "tool": result.tool_name,
            "success": True,
            "result": _truncate(serialize_output(result.output), max_output_chars),
        }
    return {
        "tool": result.tool_name,
        "success": False,
        "error": _truncate(result.message, max_output_chars),
    }


def cycle_to_history_entry(
    cycle: ExecutionCycle,
    max_output_chars: int = DEFAULT_MAX_OUTPUT_CHARS,
) -> dict[str, Any]:
    """History entry for the think call: reasoning plus observations."""
    return {
        "iteration": cycle.iteration + 1,
        "thought": cycle.thought.reasoning,
        "results": [
            tool_result_to_observation(result, max_output_chars) for result in cycle.results
        ],
    }


def cycle_to_final_entry(
    cycle: ExecutionCycle,
    max_output_chars: int = DEFAULT_MAX_OUTPUT_CHARS,
) -> dict[str, Any]:
    """History entry for the final-result call: actions taken and successful results."""
    return {
        "iteration": cycle.iteration + 1,
        "actions_taken": [result.tool_name for result in cycle.results],
        "results": [
            {
                "tool": result.tool_name,
                "result": _truncate(serialize_output(result.output), max_output_chars),
            }
            for result in cycle.results
            if isinstance(result, ToolSuccess)
        ],
    }
