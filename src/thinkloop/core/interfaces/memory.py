"""
Memory store contract.

Memory persists across runs of the same agent. The loop engine exposes it to
the model as a catalog (keys and descriptions) and loads values on request.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass
class MemoryEntry:
    key: str
    value: Any
    description: str
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: float = 0.0
    updated_at: float = 0.0
    access_count: int = 0

    def catalog_entry(self) -> dict[str, Any]:
        """The entry as listed to the model: everything but the value."""
        return {
            "key": self.key,
            "description": self.description,
            "metadata": dict(self.metadata),
        }


@runtime_checkable
class MemoryProtocol(Protocol):
    async def has_entries(self) -> bool:
        ...

    async def list_entries(self) -> list[dict[str, Any]]:
        """Catalog of entries (key, description, metadata), without values."""
        ...

    async def read(self, keys: Iterable[str] | None = None) -> dict[str, Any]:
        """
        Load values.

        Args:
            keys: Keys to load; None loads everything

        Returns:
            Mapping of found keys to values (absent keys are omitted)
        """
        ...

    async def write(
        self,
        key: str,
        value: Any,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> MemoryEntry:
        ...

    async def delete(self, key: str) -> bool:
        ...

    async def clear(self) -> None:
        ...
