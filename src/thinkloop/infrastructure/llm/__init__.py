"""
LLM module.

Contains:
- ResilientModelClient: retries, usage accounting and streaming
- LiteLLMProvider: model transport over LiteLLM
"""

from thinkloop.infrastructure.llm.litellm_provider import LiteLLMProvider
from thinkloop.infrastructure.llm.model_client import (
    ErrorClass,
    ResilientModelClient,
    RetryPolicy,
    classify_error,
)

__all__ = ["ErrorClass", "LiteLLMProvider", "ResilientModelClient", "RetryPolicy", "classify_error"]
