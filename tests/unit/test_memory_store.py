"""
Unit tests for the in-memory key-value store.

Tests cover:
- Connection lifecycle
- Record replacement and isolation
- Keyspace operations
- Scan tokens
- Testing helpers
"""

import pytest

from kvgraph.errors import StoreConnectionError
from kvgraph.store.base import START_TOKEN, KeyValueStore, create_key
from kvgraph.store.memory import InMemoryKeyValueStore


class TestInMemoryKeyValueStore:
    """Tests for InMemoryKeyValueStore."""

    @pytest.fixture
    def store(self):
        return InMemoryKeyValueStore()

    def test_satisfies_protocol(self, store):
        assert isinstance(store, KeyValueStore)

    def test_create_key(self):
        assert create_key("persons", "1") == "persons:1"

    @pytest.mark.asyncio
    async def test_connect_disconnect(self, store):
        """Test connection lifecycle."""
        assert not store.is_connected

        await store.connect()
        assert store.is_connected

        await store.close()
        assert not store.is_connected

    @pytest.mark.asyncio
    async def test_requires_connection(self, store):
        """Operations fail if not connected."""
        with pytest.raises(StoreConnectionError) as exc_info:
            await store.get("persons", "1")

        assert exc_info.value.transient

    @pytest.mark.asyncio
    async def test_put_replaces_record(self, store):
        """A put replaces every path of the previous record."""
        await store.connect()

        await store.put("persons", "1", {"a": b"1", "b": b"2"})
        await store.put("persons", "1", {"a": b"3"})

        assert await store.get("persons", "1") == {"a": b"3"}

    @pytest.mark.asyncio
    async def test_records_are_copied(self, store):
        """Callers never share dicts with the store."""
        await store.connect()
        record = {"a": b"1"}

        await store.put("persons", "1", record)
        record["a"] = b"changed"
        fetched = await store.get("persons", "1")
        fetched["b"] = b"added"

        assert await store.get("persons", "1") == {"a": b"1"}

    @pytest.mark.asyncio
    async def test_keyspaces_are_separate(self, store):
        await store.connect()

        await store.put("persons", "1", {"a": b"p"})
        await store.put("countries", "1", {"a": b"c"})

        assert await store.get("persons", "1") == {"a": b"p"}
        assert await store.count("persons") == 1
        assert await store.count("countries") == 1

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.connect()
        await store.put("persons", "1", {"a": b"1"})

        assert await store.delete("persons", "1")
        assert not await store.delete("persons", "1")
        assert await store.get("persons", "1") is None
        assert not await store.exists("persons", "1")

    @pytest.mark.asyncio
    async def test_delete_keyspace(self, store):
        await store.connect()
        for i in range(3):
            await store.put("persons", str(i), {"a": b"1"})
        await store.put("countries", "x", {"a": b"1"})

        assert await store.delete_keyspace("persons") == 3
        assert await store.count("persons") == 0
        assert await store.count("countries") == 1
        assert await store.delete_keyspace("persons") == 0

    @pytest.mark.asyncio
    async def test_scan_tokens(self, store):
        """Scans resume after the last examined id and end with the start token."""
        await store.connect()
        for id in ["c", "a", "b"]:
            await store.put("persons", id, {"a": b"1"})

        first = await store.scan_batch("persons", START_TOKEN, 2)
        second = await store.scan_batch("persons", first.next_token, 2)

        assert first.ids == ("a", "b")
        assert not first.exhausted
        assert second.ids == ("c",)
        assert second.exhausted
        assert second.next_token == START_TOKEN

    @pytest.mark.asyncio
    async def test_scan_invalid_token(self, store):
        await store.connect()

        with pytest.raises(ValueError, match="Invalid scan token"):
            await store.scan_batch("persons", "bogus", 2)

    @pytest.mark.asyncio
    async def test_operation_helpers(self, store):
        """Testing helpers count operations per record."""
        await store.connect()

        await store.put("persons", "1", {"a": b"1"})
        await store.put("persons", "1", {"a": b"2"})
        await store.get("persons", "1")

        assert store.put_count("persons", "1") == 2
        assert store.get_count("persons", "1") == 1

        store.clear_operations()
        assert store.put_count("persons", "1") == 0

    @pytest.mark.asyncio
    async def test_operation_recording_disabled(self):
        """Without recording the operations log stays empty."""
        store = InMemoryKeyValueStore(record_operations=False)
        await store.connect()

        await store.put("persons", "1", {"a": b"1"})
        await store.get("persons", "1")
        await store.delete("persons", "1")

        assert store.operations == []
        assert store.put_count("persons", "1") == 0
