"""
Application Layer - Agent Factory

This module wires core domain Agents with infrastructure adapters from
process settings or YAML agent profiles.

Key Responsibilities:
- Translate settings into explicit configuration objects (RetryPolicy)
- Instantiate the model transport (LiteLLMProvider) and ResilientModelClient
- Load and validate YAML agent profiles
- Create Agents with injected dependencies
"""

from pathlib import Path
from typing import Any, Optional, Union

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError

from thinkloop.application.settings import ThinkloopSettings, get_settings
from thinkloop.core.domain.agent import Agent
from thinkloop.core.domain.errors import ConfigurationError
from thinkloop.core.interfaces.llm import ModelProviderProtocol
from thinkloop.infrastructure.llm.litellm_provider import LiteLLMProvider
from thinkloop.infrastructure.llm.model_client import ResilientModelClient, RetryPolicy


class AgentProfile(BaseModel):
    """Agent definition as stored in a YAML profile."""

    name: str
    description: str = ""
    instructions: str = ""
    model: Optional[Union[str, list[str]]] = None
    max_iterations: Optional[int] = Field(default=None, ge=1)
    max_depth: Optional[int] = Field(default=None, ge=0)
    enable_streaming: Optional[bool] = None
    parallel_tool_calls: Optional[bool] = None
    enable_memory: bool = False
    verbose: bool = False
    retry: dict[str, float] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)


def retry_policy_from_settings(
    settings: ThinkloopSettings, overrides: Optional[dict[str, Any]] = None
) -> RetryPolicy:
    """
    Build a RetryPolicy from settings.

    Args:
        settings: Source settings
        overrides: Optional field overrides (max_retries, initial_delay, ...)

    Raises:
        ConfigurationError: Unknown override keys or invalid values
    """
    values: dict[str, Any] = {
        "max_retries": settings.retry_max_retries,
        "initial_delay": settings.retry_initial_delay,
        "backoff_multiplier": settings.retry_backoff_multiplier,
        "max_delay": settings.retry_max_delay,
        "jitter": settings.retry_jitter,
    }
    for key, value in (overrides or {}).items():
        if key not in values:
            raise ConfigurationError(f"Unknown retry setting: {key}")
        values[key] = value
    values["max_retries"] = int(values["max_retries"])
    return RetryPolicy(**values)


class AgentFactory:
    """
    Factory for creating agents with dependency injection.

    Example:
        >>> factory = AgentFactory()
        >>> agent = factory.create_agent("researcher", instructions="...", tools=[search])
        >>> agent = factory.create_agent_from_profile("researcher", tools=[search])
    """

    def __init__(
        self,
        settings: Optional[ThinkloopSettings] = None,
        provider: Optional[ModelProviderProtocol] = None,
        config_dir: Union[str, Path] = "configs",
    ):
        """
        Args:
            settings: Explicit settings (defaults to get_settings())
            provider: Model transport (defaults to a LiteLLMProvider)
            config_dir: Directory holding "<profile>.yaml" agent profiles
        """
        self.settings = settings or get_settings()
        self.provider = provider
        self.config_dir = Path(config_dir)
        self.logger = structlog.get_logger().bind(component="agent_factory")

    def create_provider(self) -> ModelProviderProtocol:
        if self.provider is None:
            self.provider = LiteLLMProvider(
                default_model=self.settings.default_model,
                timeout=self.settings.request_timeout,
            )
        return self.provider

    def create_model_client(
        self, retry_overrides: Optional[dict[str, Any]] = None
    ) -> ResilientModelClient:
        return ResilientModelClient(
            self.create_provider(),
            retry_policy_from_settings(self.settings, retry_overrides),
        )

    def create_agent(
        self,
        name: str,
        *,
        instructions: str = "",
        description: str = "",
        tools: Optional[list[Any]] = None,
        model: Optional[Union[str, list[str]]] = None,
        max_iterations: Optional[int] = None,
        max_depth: Optional[int] = None,
        enable_streaming: Optional[bool] = None,
        parallel_tool_calls: Optional[bool] = None,
        retry_overrides: Optional[dict[str, Any]] = None,
        **agent_options: Any,
    ) -> Agent:
        """
        Create an agent; unspecified options fall back to the settings.

        Args:
            name: Agent name
            instructions: Domain instructions
            description: Agent description
            tools: Tools, agents and tool providers
            model: Model or ordered fallback list (defaults to settings.models)
            max_iterations: Iteration budget
            max_depth: Agent-as-tool nesting limit
            enable_streaming: Stream model calls
            parallel_tool_calls: Run tool calls of a step concurrently
            retry_overrides: RetryPolicy field overrides for this agent
            **agent_options: Passed through to Agent (schemas, memory, hooks, ...)

        Returns:
            Agent instance with injected dependencies
        """
        settings = self.settings
        agent = Agent(
            name=name,
            model_client=self.create_model_client(retry_overrides),
            description=description,
            instructions=instructions,
            tools=tools,
            model=model if model is not None else list(settings.models),
            max_iterations=max_iterations or settings.max_iterations,
            max_depth=settings.max_agent_depth if max_depth is None else max_depth,
            enable_streaming=(
                settings.enable_streaming if enable_streaming is None else enable_streaming
            ),
            parallel_tool_calls=(
                settings.parallel_tool_calls
                if parallel_tool_calls is None
                else parallel_tool_calls
            ),
            **agent_options,
        )
        self.logger.info(
            "agent_created",
            agent=name,
            models=list(agent.models),
            max_iterations=agent.max_iterations,
            tools=[tool.name for tool in agent.tools],
        )
        return agent

    def load_profile(self, profile: Union[str, Path]) -> AgentProfile:
        """
        Load an agent profile.

        Args:
            profile: Profile name (resolved as <config_dir>/<name>.yaml) or path

        Raises:
            ConfigurationError: Missing file or invalid profile content
        """
        path = Path(profile)
        if path.suffix not in (".yaml", ".yml"):
            path = self.config_dir / f"{profile}.yaml"

        if not path.exists():
            self.logger.error("profile_not_found", profile=str(profile), path=str(path))
            raise ConfigurationError(f"Profile not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        try:
            loaded = AgentProfile.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid profile {path}: {e}") from e

        self.logger.debug("profile_loaded", profile=loaded.name, path=str(path))
        return loaded

    def create_agent_from_profile(
        self,
        profile: Union[str, Path],
        tools: Optional[list[Any]] = None,
        **overrides: Any,
    ) -> Agent:
        """
        Create an agent from a YAML profile.

        Args:
            profile: Profile name or path
            tools: Tools, agents and tool providers (profiles carry no tools)
            **overrides: create_agent() options taking precedence over the profile;
                         None values are ignored

        Returns:
            Agent instance
        """
        loaded = self.load_profile(profile)
        options: dict[str, Any] = {
            "instructions": loaded.instructions,
            "description": loaded.description,
            "model": loaded.model,
            "max_iterations": loaded.max_iterations,
            "max_depth": loaded.max_depth,
            "enable_streaming": loaded.enable_streaming,
            "parallel_tool_calls": loaded.parallel_tool_calls,
            "retry_overrides": loaded.retry or None,
            "enable_memory": loaded.enable_memory,
            "verbose": loaded.verbose,
            "metadata": loaded.metadata,
        }
        options.update({key: value for key, value in overrides.items() if value is not None})
        return self.create_agent(loaded.name, tools=tools, **options)

    def list_profiles(self) -> list[str]:
        """Names of the profiles found in config_dir."""
        if not self.config_dir.is_dir():
            return []
        return sorted(path.stem for path in self.config_dir.glob("*.yaml"))
