"""Unit Tests for InMemoryStore."""

import pytest

from thinkloop.core.interfaces.memory import MemoryProtocol
from thinkloop.infrastructure.memory.in_memory import InMemoryStore


class TestInMemoryStore:
    def test_satisfies_protocol(self):
        assert isinstance(InMemoryStore(), MemoryProtocol)

    @pytest.mark.asyncio
    async def test_write_and_read(self):
        store = InMemoryStore()
        assert await store.has_entries() is False

        await store.write("budget", 1200, "Trip budget", {"unit": "EUR"})

        assert await store.has_entries() is True
        assert await store.read(["budget", "missing"]) == {"budget": 1200}
        assert await store.read() == {"budget": 1200}
        assert store.get_entry("budget").access_count == 2

    @pytest.mark.asyncio
    async def test_catalog_hides_values(self):
        store = InMemoryStore()
        await store.write("budget", 1200, "Trip budget")

        assert await store.list_entries() == [
            {"key": "budget", "description": "Trip budget", "metadata": {}}
        ]

    @pytest.mark.asyncio
    async def test_update_keeps_creation_time_and_description(self):
        store = InMemoryStore()
        first = await store.write("city", "Paris")
        created_at = first.created_at

        updated = await store.write("city", "Rome")

        assert updated.value == "Rome"
        assert updated.created_at == created_at
        assert updated.description == "city"

    @pytest.mark.asyncio
    async def test_delete_and_clear(self):
        store = InMemoryStore()
        await store.write("a", 1)
        await store.write("b", 2)

        assert await store.delete("a") is True
        assert await store.delete("a") is False
        await store.clear()
        assert await store.has_entries() is False
