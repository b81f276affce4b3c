"""
In-memory key-value store implementation.

This module provides a simple in-memory store for:
- Unit tests
- Integration tests
- Local development without a database file (pass
  record_operations=False so the operations log does not grow)

Invariants:
    - All data is lost on process exit
    - Records are copied on the way in and out; callers never share a dict
      with the store
    - Scans walk ids in sorted order and resume strictly after the last id
      examined, so ids present for a whole sweep are returned exactly once

How to change safely:
    - Keep interface compatible with the KeyValueStore protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import fnmatch
from collections import defaultdict
from typing import Dict, List, Optional, Tuple
import logging

from ..errors import StoreConnectionError
from .base import START_TOKEN, FlatRecord, ScanBatch

logger = logging.getLogger(__name__)

# Prefix of mid-sweep tokens; the rest of the token is the last id examined
_RESUME_PREFIX = ">"


class InMemoryKeyValueStore:
    """In-memory implementation of KeyValueStore.

    Thread safety:
        Uses an asyncio lock for mutations. Safe to use from multiple
        coroutines of one event loop.

    Example:
        >>> store = InMemoryKeyValueStore()
        >>> await store.connect()
        >>> await store.put("persons", "1", {"name": b"rand"})
    """

    def __init__(self, record_operations: bool = True) -> None:
        """Initialize the store.

        Args:
            record_operations: Keep the operations log used by the testing
                helpers; disable for long-running local use
        """
        self._keyspaces: Dict[str, Dict[str, FlatRecord]] = defaultdict(dict)
        self._connected = False
        self._lock = asyncio.Lock()
        self.record_operations = record_operations
        self.operations: List[Tuple[str, str, str]] = []

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryKeyValueStore connected")

    async def close(self) -> None:
        """Close and clear all data."""
        self._connected = False
        self._keyspaces.clear()
        self.operations.clear()
        logger.debug("InMemoryKeyValueStore closed")

    def _record(self, op: str, keyspace: str, id: str) -> None:
        if self.record_operations:
            self.operations.append((op, keyspace, id))

    def _check_connected(self) -> None:
        if not self._connected:
            raise StoreConnectionError("Not connected")

    async def get(self, keyspace: str, id: str) -> Optional[FlatRecord]:
        """Get a copy of the stored record."""
        self._check_connected()
        self._record("get", keyspace, id)
        record = self._keyspaces.get(keyspace, {}).get(id)
        return dict(record) if record is not None else None

    async def put(self, keyspace: str, id: str, record: FlatRecord) -> None:
        """Replace the stored record."""
        self._check_connected()
        async with self._lock:
            self._keyspaces[keyspace][id] = dict(record)
            self._record("put", keyspace, id)

        logger.debug(
            "Record stored in memory",
            extra={"keyspace": keyspace, "id": id, "paths": len(record)},
        )

    async def delete(self, keyspace: str, id: str) -> bool:
        """Delete one record."""
        self._check_connected()
        async with self._lock:
            self._record("delete", keyspace, id)
            records = self._keyspaces.get(keyspace)
            if records is None or id not in records:
                return False
            del records[id]
            return True

    async def exists(self, keyspace: str, id: str) -> bool:
        """Whether a record exists."""
        self._check_connected()
        return id in self._keyspaces.get(keyspace, {})

    async def count(self, keyspace: str) -> int:
        """Number of records in a keyspace."""
        self._check_connected()
        return len(self._keyspaces.get(keyspace, {}))

    async def delete_keyspace(self, keyspace: str) -> int:
        """Delete every record of a keyspace."""
        self._check_connected()
        async with self._lock:
            removed = self._keyspaces.pop(keyspace, {})
            return len(removed)

    async def scan_batch(
        self,
        keyspace: str,
        token: str,
        batch_size: int,
        match: Optional[str] = None,
    ) -> ScanBatch:
        """Return the next batch of ids in sorted order.

        Args:
            keyspace: Keyspace to enumerate
            token: START_TOKEN or a token from the previous batch
            batch_size: Number of candidate ids examined
            match: Optional glob filtering the examined candidates

        Returns:
            ScanBatch with the matching ids of this step
        """
        self._check_connected()
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")

        ids = sorted(self._keyspaces.get(keyspace, {}))
        if token != START_TOKEN:
            if not token.startswith(_RESUME_PREFIX):
                raise ValueError(f"Invalid scan token {token!r}")
            after = token[len(_RESUME_PREFIX):]
            ids = [i for i in ids if i > after]

        candidates = ids[:batch_size]
        exhausted = len(ids) <= batch_size
        if match is not None:
            batch = tuple(i for i in candidates if fnmatch.fnmatchcase(i, match))
        else:
            batch = tuple(candidates)

        next_token = START_TOKEN if exhausted else _RESUME_PREFIX + candidates[-1]
        return ScanBatch(ids=batch, next_token=next_token, exhausted=exhausted)

    # Testing helpers

    def put_count(self, keyspace: str, id: str) -> int:
        """Number of put() calls for one record (testing helper)."""
        return sum(1 for op in self.operations if op == ("put", keyspace, id))

    def get_count(self, keyspace: str, id: str) -> int:
        """Number of get() calls for one record (testing helper)."""
        return sum(1 for op in self.operations if op == ("get", keyspace, id))

    def clear_operations(self) -> None:
        """Forget recorded operations (testing helper)."""
        self.operations.clear()
