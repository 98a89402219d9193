"""
Schema utilities and the structured decision contract of the think step.

Schemas are declared either as Python types understood by pydantic's
TypeAdapter (BaseModel subclasses, TypedDicts, builtins, Annotated types)
or as raw JSON-schema dicts. Python types validate and coerce through
pydantic; raw dicts are checked as-is with jsonschema (no coercion).
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from jsonschema import Draft202012Validator, SchemaError
from jsonschema.validators import validator_for
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from thinkloop.core.domain.errors import SchemaValidationError
from thinkloop.core.domain.models import (
    FinalAnswer,
    MemoryUpdate,
    Thought,
    ToolInvocation,
    ToolInvocations,
    new_call_id,
)


@lru_cache(maxsize=256)
def _adapter(schema: Any) -> TypeAdapter:
    return TypeAdapter(schema)


def _adapter_for(schema: Any) -> TypeAdapter:
    try:
        return _adapter(schema)
    except TypeError:
        # Unhashable annotations (rare) are adapted without caching
        return TypeAdapter(schema)


def is_raw_schema(schema: Any) -> bool:
    return isinstance(schema, dict)


def json_schema_of(schema: Any) -> dict[str, Any]:
    """
    JSON schema for a declared schema.

    Args:
        schema: Python type, raw JSON-schema dict, or None

    Returns:
        JSON schema dict ({} when no schema is declared)
    """
    if schema is None:
        return {}
    if is_raw_schema(schema):
        return dict(schema)
    return _adapter_for(schema).json_schema()


def _validate_raw(schema: dict[str, Any], value: Any, target: str) -> Any:
    validator_cls = validator_for(schema, default=Draft202012Validator)
    try:
        validator_cls.check_schema(schema)
    except SchemaError as e:
        raise SchemaValidationError(
            f"Invalid {target} schema: {e.message}", target=target
        ) from e

    errors = sorted(
        validator_cls(schema).iter_errors(value),
        key=lambda error: [str(part) for part in error.path],
    )
    if not errors:
        return value
    details = [
        {"loc": tuple(error.path), "msg": error.message, "type": error.validator}
        for error in errors
    ]
    summary = "; ".join(
        f"{'.'.join(str(part) for part in error.path) or '<root>'}: {error.message}"
        for error in errors
    )
    raise SchemaValidationError(
        f"Invalid {target}: {len(errors)} validation error(s): {summary}",
        target=target,
        errors=details,
    )


def validate_value(schema: Any, value: Any, *, target: str = "value") -> Any:
    """
    Validate (and coerce) a value against a declared schema.

    Args:
        schema: Python type, raw JSON-schema dict, or None
        value: Value to validate
        target: Label used in the error ("input", "output", "decision", ...)

    Returns:
        The validated value (unchanged for None and raw schemas)

    Raises:
        SchemaValidationError: If the value does not match
    """
    if schema is None:
        return value
    if is_raw_schema(schema):
        return _validate_raw(schema, value, target)
    try:
        return _adapter_for(schema).validate_python(value)
    except ValidationError as e:
        raise SchemaValidationError(
            f"Invalid {target}: {e.error_count()} validation error(s): {e}",
            target=target,
            errors=e.errors(include_url=False),
        ) from e


def to_plain(value: Any) -> Any:
    """Dump pydantic models (recursively) to plain JSON-compatible data."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    return value


class ToolCallDecision(BaseModel):
    """A tool the model wants to call."""

    id: str = Field(default_factory=new_call_id, description="Unique id for this call")
    tool_name: str = Field(description="Name of an available tool")
    arguments: Any = Field(default=None, description="Arguments matching the tool's parameters")


class MemoryUpdateDecision(BaseModel):
    value: Any
    description: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class AgentDecision(BaseModel):
    """
    Structured output of the think step.

    An empty tool_calls list signals that the goal is complete. final_answer
    may carry the answer directly; when it is absent the answer is
    synthesized from the execution history by a separate call.
    """

    reasoning: str = Field(description="Reasoning for this step")
    user_message: str = Field(default="", description="Short status for the end user")
    tool_calls: list[ToolCallDecision] = Field(default_factory=list)
    memory_reads: list[str] = Field(default_factory=list)
    memory_updates: dict[str, MemoryUpdateDecision] = Field(default_factory=dict)
    final_answer: Any = Field(default=None, description="The answer, once the goal is complete")

    def to_thought(self) -> Thought:
        if self.tool_calls:
            action: FinalAnswer | ToolInvocations = ToolInvocations(
                invocations=tuple(
                    ToolInvocation(tool_name=call.tool_name, arguments=call.arguments, id=call.id)
                    for call in self.tool_calls
                )
            )
        else:
            action = FinalAnswer(value=self.final_answer)

        return Thought(
            reasoning=self.reasoning,
            user_message=self.user_message,
            action=action,
            memory_reads=tuple(key for key in self.memory_reads if key),
            memory_updates={
                key: MemoryUpdate(
                    value=update.value,
                    description=update.description,
                    metadata=dict(update.metadata),
                )
                for key, update in self.memory_updates.items()
                if key
            },
        )


def parse_decision(payload: Any) -> Thought:
    """
    Validate a raw think payload into a Thought.

    Raises:
        SchemaValidationError: If the payload is not a valid decision
    """
    try:
        return AgentDecision.model_validate(payload).to_thought()
    except ValidationError as e:
        raise SchemaValidationError(
            f"Invalid decision from model: {e}",
            target="decision",
            errors=e.errors(include_url=False),
        ) from e
