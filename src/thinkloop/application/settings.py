"""
Process-wide default settings.

Defaults come from the environment (THINKLOOP_* variables, optional .env
file). They are only consulted by the application layer (AgentFactory);
agents and clients always receive explicit configuration objects.

Override points:
- get_settings(): lazily builds and caches the settings
- configure(settings): installs explicit settings
- reset_settings(): drops the cached instance (re-read on next access)
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ThinkloopSettings(BaseSettings):
    """Default configuration with environment variable support."""

    # Models
    default_model: str = Field(default="gpt-4.1-mini", description="Primary model identifier")
    fallback_models: list[str] = Field(
        default_factory=list, description="Models tried in order when the primary fails"
    )

    # Loop
    max_iterations: int = Field(default=25, ge=1, description="Iteration budget per run")
    max_agent_depth: int = Field(
        default=3, ge=0, description="Deepest agent-as-tool nesting level"
    )
    enable_streaming: bool = Field(default=False, description="Stream model calls")
    parallel_tool_calls: bool = Field(default=False, description="Run tool calls of a step concurrently")

    # Retry policy
    retry_max_retries: int = Field(default=3, ge=0)
    retry_initial_delay: float = Field(default=1.0, ge=0, description="Seconds")
    retry_backoff_multiplier: float = Field(default=2.0, ge=0)
    retry_max_delay: float = Field(default=10.0, ge=0, description="Seconds")
    retry_jitter: float = Field(default=0.0, ge=0, le=1)

    # Model transport
    request_timeout: Optional[float] = Field(default=None, description="Per-call timeout in seconds")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=False, description="Render logs as JSON")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="THINKLOOP_",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return value.upper()

    @property
    def models(self) -> tuple[str, ...]:
        return (self.default_model, *self.fallback_models)


_settings: Optional[ThinkloopSettings] = None


def get_settings() -> ThinkloopSettings:
    global _settings
    if _settings is None:
        _settings = ThinkloopSettings()
    return _settings


def configure(settings: ThinkloopSettings) -> ThinkloopSettings:
    global _settings
    _settings = settings
    return settings


def reset_settings() -> None:
    global _settings
    _settings = None
