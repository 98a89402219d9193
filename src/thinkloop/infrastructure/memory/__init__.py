"""Memory store implementations."""

from thinkloop.infrastructure.memory.in_memory import InMemoryStore

__all__ = ["InMemoryStore"]
