"""Unit Tests for the tool converter."""

from pydantic import BaseModel

from thinkloop.core.domain.models import (
    ExecutionCycle,
    FinalAnswer,
    Thought,
    ToolFailure,
    ToolSuccess,
)
from thinkloop.infrastructure.tools.tool_converter import (
    cycle_to_final_entry,
    cycle_to_history_entry,
    serialize_output,
    tool_result_to_observation,
    tools_to_descriptors,
)


class Point(BaseModel):
    x: int
    y: int


class TestToolResultToObservation:
    def test_success(self):
        observation = tool_result_to_observation(ToolSuccess(tool_name="add", output=5))
        assert observation == {"tool": "add", "success": True, "result": "5"}

    def test_failure(self):
        observation = tool_result_to_observation(
            ToolFailure(tool_name="divide", error=ZeroDivisionError("division by zero"))
        )
        assert observation == {"tool": "divide", "success": False, "error": "division by zero"}

    def test_large_output_is_truncated(self):
        observation = tool_result_to_observation(
            ToolSuccess(tool_name="read", output="x" * 150), max_output_chars=100
        )

        assert observation["result"].startswith("x" * 100)
        assert "[... TRUNCATED - 50 more chars ...]" in observation["result"]


class TestSerializeOutput:
    def test_structured_values_are_json(self):
        assert serialize_output({"a": [1, 2]}) == '{"a": [1, 2]}'
        assert serialize_output(Point(x=1, y=2)) == '{"x": 1, "y": 2}'

    def test_primitives_use_str(self):
        assert serialize_output(5.0) == "5.0"
        assert serialize_output("text") == "text"


class TestCycleEntries:
    def _cycle(self):
        return ExecutionCycle(
            iteration=0,
            thought=Thought(reasoning="try both", action=FinalAnswer()),
            results=(
                ToolSuccess(tool_name="add", output=3),
                ToolFailure(tool_name="divide", error="division by zero"),
            ),
        )

    def test_history_entry_includes_failures(self):
        entry = cycle_to_history_entry(self._cycle())

        assert entry["iteration"] == 1
        assert entry["thought"] == "try both"
        assert [r["success"] for r in entry["results"]] == [True, False]

    def test_final_entry_keeps_successes_only(self):
        entry = cycle_to_final_entry(self._cycle())

        assert entry["actions_taken"] == ["add", "divide"]
        assert entry["results"] == [{"tool": "add", "result": "3"}]


def test_tools_to_descriptors(add_tool, divide_tool):
    descriptors = tools_to_descriptors([add_tool, divide_tool])
    assert [d["name"] for d in descriptors] == ["add", "divide"]
