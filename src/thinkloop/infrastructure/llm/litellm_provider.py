"""
LiteLLM Provider

ModelProviderProtocol implementation over litellm.acompletion. The first
model of a request is the primary model; the remaining ones are handed to
LiteLLM as ordered fallbacks.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

import litellm
import structlog

from thinkloop.core.domain.errors import PermanentModelError
from thinkloop.core.interfaces.llm import ModelRequest, RawModelResponse, StreamDelta


def _read(obj: Any, key: str, default: Any = None) -> Any:
    # LiteLLM returns dicts or attribute objects depending on provider
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _usage_from_response(response: Any) -> dict[str, Any] | None:
    usage = _read(response, "usage")
    if usage is None:
        return None

    prompt_tokens = _read(usage, "prompt_tokens", 0) or 0
    completion_tokens = _read(usage, "completion_tokens", 0) or 0
    return {
        "input_tokens": prompt_tokens,
        "output_tokens": completion_tokens,
        "total_tokens": _read(usage, "total_tokens", 0) or prompt_tokens + completion_tokens,
    }


class LiteLLMProvider:
    """
    Model transport backed by LiteLLM.

    Example:
        >>> provider = LiteLLMProvider(default_model="gpt-4.1-mini", timeout=60)
        >>> client = ResilientModelClient(provider)
    """

    def __init__(
        self,
        default_model: str = "gpt-4.1-mini",
        *,
        timeout: float | None = None,
        track_cost: bool = True,
        **completion_params: Any,
    ):
        """
        Args:
            default_model: Model used when a request names none
            timeout: Per-call timeout passed to LiteLLM
            track_cost: Compute cost via litellm.completion_cost
            **completion_params: Extra parameters for every call (temperature, ...)
        """
        self.default_model = default_model
        self.timeout = timeout
        self.track_cost = track_cost
        self.completion_params = completion_params
        self.logger = structlog.get_logger().bind(component="litellm_provider")

    def build_messages(self, request: ModelRequest) -> list[dict[str, Any]]:
        system = request.instructions
        if request.output_schema is not None:
            system += (
                "\n\nRespond with a single JSON object matching this JSON schema:\n"
                + json.dumps(request.output_schema, default=str)
            )
        user_content = (
            request.input if isinstance(request.input, str) else json.dumps(request.input, default=str)
        )
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": user_content},
        ]

    def build_params(self, request: ModelRequest) -> dict[str, Any]:
        models = list(request.models) or [self.default_model]
        params: dict[str, Any] = {
            **self.completion_params,
            "model": models[0],
            "messages": self.build_messages(request),
        }
        if len(models) > 1:
            params["fallbacks"] = models[1:]
        if request.output_schema is not None:
            params["response_format"] = {"type": "json_object"}
        if self.timeout is not None:
            params["timeout"] = self.timeout
        if request.parent_span_id:
            params["metadata"] = {"parent_span_id": request.parent_span_id, "call": request.name}
        return params

    async def call(self, request: ModelRequest) -> RawModelResponse:
        """
        Perform one completion.

        Raises:
            PermanentModelError: If a structured response is not valid JSON
            Exception: LiteLLM transport errors (classified by the client)
        """
        params = self.build_params(request)
        response = await litellm.acompletion(**params)

        content = response.choices[0].message.content or ""
        usage = _usage_from_response(response)
        if usage is not None and self.track_cost:
            usage["cost"] = self._cost(response)

        payload = None
        if request.output_schema is not None:
            try:
                payload = json.loads(content)
            except json.JSONDecodeError as e:
                raise PermanentModelError(
                    f"Model returned invalid JSON for '{request.name}': {e}"
                ) from e

        self.logger.debug(
            "litellm_completion",
            call=request.name,
            model=params["model"],
            fallbacks=params.get("fallbacks", []),
        )
        return RawModelResponse(
            payload=payload,
            message=content,
            span_id=_read(response, "id"),
            usage=usage,
        )

    async def stream(self, request: ModelRequest) -> AsyncIterator[StreamDelta]:
        """Stream token deltas; all text is addressed to the root path."""
        params = self.build_params(request)
        params["stream"] = True
        params["stream_options"] = {"include_usage": True}

        response = await litellm.acompletion(**params)
        async for chunk in response:
            choices = _read(chunk, "choices") or []
            content = None
            if choices:
                content = _read(_read(choices[0], "delta"), "content")
            yield StreamDelta(
                delta=content or None,
                usage=_usage_from_response(chunk),
                span_id=_read(chunk, "id"),
            )

    def _cost(self, response: Any) -> dict[str, float]:
        try:
            total = float(litellm.completion_cost(completion_response=response) or 0.0)
        except Exception as e:
            # Unknown model pricing; usage stays valid without cost
            self.logger.debug("litellm_cost_unavailable", error=str(e)[:200])
            total = 0.0
        return {"generation": total, "platform": 0.0, "total": total}
