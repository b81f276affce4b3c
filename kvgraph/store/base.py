"""
Base protocol and types for key-value store backends.

This module defines the KeyValueStore protocol that all backends must
implement: hash-per-key storage of flat records addressed by (keyspace, id),
plus a batched, resumable scan over the ids of a keyspace.

Invariants:
    - put() replaces the whole record stored under (keyspace, id)
    - Every record belongs to exactly one keyspace
    - scan_batch() starts from START_TOKEN and signals completion either by
      returning START_TOKEN again or by setting exhausted
    - Ids present for a whole sweep are returned at least once; ids added or
      removed during a sweep may or may not be returned

How to change safely:
    - Protocol changes require updating all implementations
    - Errors must be raised as StoreError subclasses with a transient flag
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import (
    Dict,
    Optional,
    Protocol,
    Tuple,
    runtime_checkable,
    TYPE_CHECKING,
)
import logging

if TYPE_CHECKING:
    from ..config import StorageConfig

logger = logging.getLogger(__name__)

FlatRecord = Dict[str, bytes]

# Position token of a fresh sweep, and the token a finished sweep returns
START_TOKEN = "0"

KEY_SEPARATOR = ":"


def create_key(keyspace: str, id: str) -> str:
    """Storage key of a record: '<keyspace>:<id>'."""
    return f"{keyspace}{KEY_SEPARATOR}{id}"


@dataclass(frozen=True)
class ScanBatch:
    """One step of a keyspace scan.

    Attributes:
        ids: Ids returned by this step (may be empty without being final)
        next_token: Position to resume from
        exhausted: Whether the sweep is complete
    """

    ids: Tuple[str, ...]
    next_token: str
    exhausted: bool = False


@runtime_checkable
class KeyValueStore(Protocol):
    """Protocol for key-value store backends.

    Example:
        >>> store = InMemoryKeyValueStore()
        >>> await store.connect()
        >>> await store.put("persons", "1", {"name": b"rand"})
        >>> await store.get("persons", "1")
        {'name': b'rand'}
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open the store.

        Raises:
            StoreConnectionError: If the store cannot be opened
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the store and release resources."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the store is open."""
        ...

    @abstractmethod
    async def get(self, keyspace: str, id: str) -> Optional[FlatRecord]:
        """Get the record stored under (keyspace, id), or None."""
        ...

    @abstractmethod
    async def put(self, keyspace: str, id: str, record: FlatRecord) -> None:
        """Replace the record stored under (keyspace, id)."""
        ...

    @abstractmethod
    async def delete(self, keyspace: str, id: str) -> bool:
        """Delete one record.

        Returns:
            True if a record was removed
        """
        ...

    @abstractmethod
    async def exists(self, keyspace: str, id: str) -> bool:
        """Whether a record is stored under (keyspace, id)."""
        ...

    @abstractmethod
    async def count(self, keyspace: str) -> int:
        """Number of records in a keyspace."""
        ...

    @abstractmethod
    async def delete_keyspace(self, keyspace: str) -> int:
        """Delete every record of a keyspace.

        Returns:
            Number of records removed
        """
        ...

    @abstractmethod
    async def scan_batch(
        self,
        keyspace: str,
        token: str,
        batch_size: int,
        match: Optional[str] = None,
    ) -> ScanBatch:
        """Return the next batch of ids of a keyspace.

        Args:
            keyspace: Keyspace to enumerate
            token: START_TOKEN or a token returned by the previous batch
            batch_size: Maximum number of candidate ids examined
            match: Optional glob applied to the candidates of this batch

        Returns:
            ScanBatch; with a match pattern it may be smaller than
            batch_size, even empty, while not exhausted
        """
        ...


def create_store(config: StorageConfig) -> KeyValueStore:
    """Factory function to create a store from configuration.

    Args:
        config: Storage configuration

    Returns:
        Appropriate KeyValueStore implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StoreBackend
    from .memory import InMemoryKeyValueStore
    from .sqlite import SqliteKeyValueStore

    if config.backend == StoreBackend.MEMORY:
        return InMemoryKeyValueStore(record_operations=False)
    elif config.backend == StoreBackend.SQLITE:
        return SqliteKeyValueStore(
            config.data_dir,
            db_name=config.db_name,
            wal_mode=config.wal_mode,
            busy_timeout_ms=config.busy_timeout_ms,
        )
    else:
        raise ValueError(f"Unsupported store backend: {config.backend}")
