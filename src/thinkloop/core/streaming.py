"""
Streaming Coordinator

Incremental delivery of a single model response as structured field-path
chunks.

- StreamAssembler accumulates deltas per field path ("answer", "steps[0].title")
  and reconstructs the final structured value when the stream ends.
- StreamSession is the explicit per-call state machine
  (pending → open → ended | errored) that publishes stream:start,
  stream:chunk* and exactly one of stream:end / stream:error on the hook bus.

Deltas without a path belong to the root of the response (plain text output).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from thinkloop.core.domain.errors import StreamProtocolError
from thinkloop.core.domain.events import (
    HookEvent,
    StreamChunkPayload,
    StreamEndPayload,
    StreamErrorPayload,
    StreamStartPayload,
)

if TYPE_CHECKING:
    from thinkloop.core.domain.context import ExecutionContext
    from thinkloop.core.hooks import HookManager

STREAM_ROOT_PATH = "_root"

_NUMERIC_TOKEN = re.compile(r"^\d+$")
_BRACKET_TOKEN = re.compile(r"\[(\d+)\]")
_INT_LITERAL = re.compile(r"^-?\d+$")
_FLOAT_LITERAL = re.compile(r"^-?\d+\.\d+$")


@dataclass(frozen=True)
class StreamChunk:
    """
    One incremental fragment of a model response.

    Attributes:
        call_type: Kind of model call ("think", "final_result", ...)
        path: Field path of the fragment within the structured output
        delta: The new fragment
        accumulated: Everything received so far for this path
    """

    call_type: str
    path: str
    delta: Any
    accumulated: str


def _to_display(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def coerce_primitive(text: str) -> Any:
    """Turn an accumulated text buffer into a bool, None, int or float when it spells one."""
    trimmed = text.strip()
    if not trimmed:
        return text

    lowered = trimmed.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered == "null":
        return None
    if _INT_LITERAL.match(trimmed):
        return int(trimmed)
    if _FLOAT_LITERAL.match(trimmed):
        return float(trimmed)
    return text


def parse_path(path: str) -> list[str]:
    """Split a dot/bracket path into segments: "a.b[2].c" → ["a", "b", "2", "c"]."""
    dotted = _BRACKET_TOKEN.sub(lambda match: f".{match.group(1)}", path)
    return [segment.strip() for segment in dotted.split(".") if segment.strip()]


def _set_nested(target: dict[str, Any], path: str, value: Any) -> None:
    segments = parse_path(path)
    if not segments:
        return

    current = target
    for segment in segments[:-1]:
        existing = current.get(segment)
        if not isinstance(existing, dict):
            existing = {}
            current[segment] = existing
        current = existing
    current[segments[-1]] = value


def normalize_indexed(value: Any) -> Any:
    """Recursively convert objects whose keys are all numeric into lists (holes become None)."""
    if isinstance(value, list):
        return [normalize_indexed(item) for item in value]
    if not isinstance(value, dict):
        return value

    normalized = {key: normalize_indexed(item) for key, item in value.items()}
    if normalized and all(_NUMERIC_TOKEN.match(key) for key in normalized):
        items: list[Any] = [None] * (max(int(key) for key in normalized) + 1)
        for key, item in normalized.items():
            items[int(key)] = item
        return items
    return normalized


class StreamAssembler:
    """
    Accumulates streamed deltas per field path.

    Two buffers are kept per path: the display buffer (concatenated text,
    what consumers render) and the raw value list (used to recover typed
    primitives like numbers and booleans on finalize).
    """

    def __init__(self) -> None:
        self._display: dict[str, str] = {}
        self._values: dict[str, list[Any]] = {}

    def feed(self, delta: Any, path: str | None = None) -> tuple[str, str] | None:
        """
        Append a delta.

        Args:
            delta: Fragment received from the model (None is ignored)
            path: Field path; None addresses the root

        Returns:
            (path, accumulated display text) or None when the delta was empty
        """
        if delta is None:
            return None

        key = STREAM_ROOT_PATH if path is None else path
        accumulated = self._display.get(key, "") + _to_display(delta)
        self._display[key] = accumulated
        self._values.setdefault(key, []).append(delta)
        return key, accumulated

    def snapshot(self) -> dict[str, str]:
        return dict(self._display)

    def has_structured_fields(self) -> bool:
        return any(key != STREAM_ROOT_PATH for key in self._display)

    def finalize(self) -> tuple[str, Any]:
        """
        Reconstruct the streamed value.

        Returns:
            ("empty", None) when nothing was received,
            ("root", text) when only root deltas arrived,
            ("structured", value) otherwise
        """
        if not self._display:
            return "empty", None
        if not self.has_structured_fields():
            return "root", self._display.get(STREAM_ROOT_PATH, "")

        structured: dict[str, Any] = {}
        for path in self._values:
            if path == STREAM_ROOT_PATH:
                continue
            _set_nested(structured, path, self._resolve(path))
        return "structured", normalize_indexed(structured)

    def reset(self) -> None:
        self._display.clear()
        self._values.clear()

    def _resolve(self, path: str) -> Any:
        values = self._values.get(path, [])
        if not values:
            return self._display.get(path, "")

        last = values[-1]
        if last is None:
            return None
        if isinstance(last, (bool, int, float)):
            return last
        return coerce_primitive(self._display.get(path, ""))


class StreamState(str, Enum):
    PENDING = "pending"
    OPEN = "open"
    ENDED = "ended"
    ERRORED = "errored"


class StreamSession:
    """
    State machine for the stream of one model call.

    Enforces the event sequence start, chunk*, then exactly one of end or
    error. Any call out of that order raises StreamProtocolError.

    Example:
        >>> session = StreamSession("think", hooks, context)
        >>> await session.start()
        >>> await session.feed("Hel", path="reasoning")
        >>> await session.feed("lo", path="reasoning")
        >>> value = await session.end()   # {"reasoning": "Hello"}
    """

    def __init__(self, call_type: str, hooks: HookManager, context: ExecutionContext):
        self.call_type = call_type
        self.hooks = hooks
        self.context = context
        self.state = StreamState.PENDING
        # "empty", "root" or "structured" once the stream has ended
        self.result_kind: str | None = None
        self._assembler = StreamAssembler()

    @property
    def is_open(self) -> bool:
        return self.state is StreamState.OPEN

    @property
    def is_closed(self) -> bool:
        return self.state in (StreamState.ENDED, StreamState.ERRORED)

    def field_buffers(self) -> dict[str, str]:
        return self._assembler.snapshot()

    async def start(self) -> None:
        if self.state is not StreamState.PENDING:
            raise StreamProtocolError(
                f"Stream '{self.call_type}' cannot start from state {self.state.value}"
            )
        self.state = StreamState.OPEN
        await self.hooks.emit(
            HookEvent.STREAM_START,
            StreamStartPayload(context=self.context, call_type=self.call_type),
        )

    async def feed(self, delta: Any, path: str | None = None) -> StreamChunk | None:
        """Accumulate a delta and publish it as a chunk; empty deltas are dropped."""
        self._require_open("chunk")
        fed = self._assembler.feed(delta, path)
        if fed is None:
            return None

        key, accumulated = fed
        chunk = StreamChunk(
            call_type=self.call_type, path=key, delta=delta, accumulated=accumulated
        )
        await self.hooks.emit(
            HookEvent.STREAM_CHUNK,
            StreamChunkPayload(
                context=self.context,
                chunk=chunk,
                field_buffers=self._assembler.snapshot(),
            ),
        )
        return chunk

    async def end(self, result: Any = None) -> Any:
        """
        Close the stream successfully.

        Args:
            result: Final value when known by the caller; defaults to the
                    value reconstructed from the buffered deltas

        Returns:
            The final value published with stream:end
        """
        self._require_open("end")
        self.state = StreamState.ENDED
        self.result_kind, finalized = self._assembler.finalize()
        if result is None:
            result = finalized
        await self.hooks.emit(
            HookEvent.STREAM_END,
            StreamEndPayload(
                context=self.context,
                call_type=self.call_type,
                field_buffers=self._assembler.snapshot(),
                result=result,
            ),
        )
        return result

    async def fail(self, error: BaseException | str) -> None:
        """Close the stream with an error and discard buffered accumulation."""
        self._require_open("error")
        self.state = StreamState.ERRORED
        self._assembler.reset()
        await self.hooks.emit(
            HookEvent.STREAM_ERROR,
            StreamErrorPayload(context=self.context, call_type=self.call_type, error=error),
        )

    async def abort(self, reason: BaseException | str = "stream aborted") -> None:
        """
        Cancel the stream.

        Synthesizes stream:error when the stream is open. A pending stream
        is closed silently; a closed stream is left untouched.
        """
        if self.state is StreamState.OPEN:
            await self.fail(reason)
        elif self.state is StreamState.PENDING:
            self.state = StreamState.ERRORED
            self._assembler.reset()

    def _require_open(self, action: str) -> None:
        if self.state is not StreamState.OPEN:
            raise StreamProtocolError(
                f"Stream '{self.call_type}' cannot {action} in state {self.state.value}"
            )
