"""Tool adapters: remote tool services and model-facing conversions."""

from thinkloop.infrastructure.tools.remote_provider import RemoteToolProvider

__all__ = ["RemoteToolProvider"]
