"""
Unit Tests for LiteLLMProvider

Tests request building (fallbacks, JSON mode), usage mapping and cost
tracking with litellm mocked out.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from thinkloop.core.domain.errors import PermanentModelError
from thinkloop.core.interfaces.llm import ModelRequest
from thinkloop.infrastructure.llm.litellm_provider import LiteLLMProvider


def completion(content: str, prompt_tokens: int = 10, completion_tokens: int = 5):
    response = MagicMock()
    response.id = "resp-1"
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    response.usage = MagicMock(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=prompt_tokens + completion_tokens,
    )
    return response


@pytest.fixture
def provider():
    return LiteLLMProvider(default_model="gpt-4.1-mini", timeout=30, temperature=0.2)


class TestBuildParams:
    """Tests for request → litellm parameter mapping."""

    def test_defaults_to_default_model(self, provider):
        params = provider.build_params(ModelRequest(name="think", instructions="sys", input="hi"))

        assert params["model"] == "gpt-4.1-mini"
        assert "fallbacks" not in params
        assert params["timeout"] == 30
        assert params["temperature"] == 0.2
        assert params["messages"] == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "hi"},
        ]

    def test_additional_models_become_fallbacks(self, provider):
        params = provider.build_params(
            ModelRequest(name="think", instructions="sys", models=("gpt-4.1", "gpt-4.1-mini", "claude"))
        )

        assert params["model"] == "gpt-4.1"
        assert params["fallbacks"] == ["gpt-4.1-mini", "claude"]

    def test_structured_output_uses_json_mode(self, provider):
        schema = {"type": "object", "properties": {"answer": {"type": "string"}}}
        params = provider.build_params(
            ModelRequest(
                name="think",
                instructions="sys",
                input={"goal": "x"},
                output_schema=schema,
                parent_span_id="span-1",
            )
        )

        assert params["response_format"] == {"type": "json_object"}
        assert json.dumps(schema) in params["messages"][0]["content"]
        assert json.loads(params["messages"][1]["content"]) == {"goal": "x"}
        assert params["metadata"] == {"parent_span_id": "span-1", "call": "think"}


class TestCall:
    """Tests for completions."""

    @pytest.mark.asyncio
    async def test_structured_response(self, provider):
        with patch("litellm.acompletion", new_callable=AsyncMock) as mock_completion, patch(
            "litellm.completion_cost", return_value=0.002
        ):
            mock_completion.return_value = completion('{"reasoning": "ok"}')

            raw = await provider.call(
                ModelRequest(name="think", instructions="sys", output_schema={"type": "object"})
            )

        assert raw.payload == {"reasoning": "ok"}
        assert raw.message == '{"reasoning": "ok"}'
        assert raw.span_id == "resp-1"
        assert raw.usage["input_tokens"] == 10
        assert raw.usage["output_tokens"] == 5
        assert raw.usage["total_tokens"] == 15
        assert raw.usage["cost"]["total"] == 0.002

    @pytest.mark.asyncio
    async def test_invalid_json_is_permanent(self, provider):
        with patch("litellm.acompletion", new_callable=AsyncMock) as mock_completion, patch(
            "litellm.completion_cost", return_value=0.0
        ):
            mock_completion.return_value = completion("not json")

            with pytest.raises(PermanentModelError):
                await provider.call(
                    ModelRequest(name="think", instructions="sys", output_schema={"type": "object"})
                )

    @pytest.mark.asyncio
    async def test_unknown_pricing_keeps_usage(self, provider):
        with patch("litellm.acompletion", new_callable=AsyncMock) as mock_completion, patch(
            "litellm.completion_cost", side_effect=ValueError("model not mapped")
        ):
            mock_completion.return_value = completion("plain text")

            raw = await provider.call(ModelRequest(name="final_result", instructions="sys"))

        assert raw.payload is None
        assert raw.message == "plain text"
        assert raw.usage["cost"]["total"] == 0.0
        assert raw.usage["input_tokens"] == 10


class TestStream:
    @pytest.mark.asyncio
    async def test_stream_yields_root_deltas_and_usage(self, provider):
        async def chunks():
            yield {"id": "s1", "choices": [{"delta": {"content": "Hel"}}]}
            yield {"id": "s1", "choices": [{"delta": {"content": "lo"}}]}
            yield {
                "id": "s1",
                "choices": [],
                "usage": {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5},
            }

        with patch("litellm.acompletion", new_callable=AsyncMock) as mock_completion:
            mock_completion.return_value = chunks()

            deltas = [
                delta
                async for delta in provider.stream(ModelRequest(name="final_result", instructions="sys"))
            ]

        kwargs = mock_completion.call_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["stream_options"] == {"include_usage": True}
        assert [d.delta for d in deltas] == ["Hel", "lo", None]
        assert all(d.path is None for d in deltas)
        assert deltas[-1].usage == {"input_tokens": 3, "output_tokens": 2, "total_tokens": 5}
