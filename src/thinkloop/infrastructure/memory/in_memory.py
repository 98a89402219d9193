"""
In-memory implementation of MemoryProtocol.

Entries live for the lifetime of the store (typically the agent), so they
persist across process() calls of the same agent but not across processes.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from typing import Any

import structlog

from thinkloop.core.interfaces.memory import MemoryEntry


class InMemoryStore:
    """
    Dict-backed memory store with access counts and timestamps.

    Example:
        >>> store = InMemoryStore()
        >>> await store.write("budget_total", 1200, "Total trip budget in EUR")
        >>> await store.read(["budget_total"])
        {'budget_total': 1200}
    """

    def __init__(self) -> None:
        self._entries: dict[str, MemoryEntry] = {}
        self.logger = structlog.get_logger().bind(component="in_memory_store")

    async def has_entries(self) -> bool:
        return bool(self._entries)

    async def list_entries(self) -> list[dict[str, Any]]:
        return [entry.catalog_entry() for entry in self._entries.values()]

    async def read(self, keys: Iterable[str] | None = None) -> dict[str, Any]:
        selected = list(self._entries) if keys is None else list(keys)
        found: dict[str, Any] = {}
        for key in selected:
            entry = self._entries.get(key)
            if entry is None:
                continue
            entry.access_count += 1
            found[key] = entry.value
        return found

    async def write(
        self,
        key: str,
        value: Any,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> MemoryEntry:
        """
        Create or update an entry.

        Updating keeps the creation time and access count; description and
        metadata are replaced only when given.
        """
        now = time.time()
        existing = self._entries.get(key)
        if existing is None:
            entry = MemoryEntry(
                key=key,
                value=value,
                description=description or key,
                metadata=dict(metadata or {}),
                created_at=now,
                updated_at=now,
            )
            self._entries[key] = entry
        else:
            entry = existing
            entry.value = value
            if description is not None:
                entry.description = description
            if metadata is not None:
                entry.metadata = dict(metadata)
            entry.updated_at = now

        self.logger.debug("memory_write", key=key, created=existing is None)
        return entry

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def clear(self) -> None:
        self._entries.clear()

    def get_entry(self, key: str) -> MemoryEntry | None:
        return self._entries.get(key)
