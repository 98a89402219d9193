"""
Application layer.

Contains:
- AgentFactory: wires agents from settings and YAML profiles
- ThinkloopSettings: process-wide defaults
- configure_logging: structlog setup
"""

from thinkloop.application.factory import AgentFactory, AgentProfile, retry_policy_from_settings
from thinkloop.application.logging import configure_logging
from thinkloop.application.settings import (
    ThinkloopSettings,
    configure,
    get_settings,
    reset_settings,
)

__all__ = [
    "AgentFactory",
    "AgentProfile",
    "ThinkloopSettings",
    "configure",
    "configure_logging",
    "get_settings",
    "reset_settings",
    "retry_policy_from_settings",
]
