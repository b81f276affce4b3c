"""
Key-value store backends for kvgraph.

Two implementations of the KeyValueStore protocol are provided:
- InMemoryKeyValueStore: dict-backed, for tests and development
- SqliteKeyValueStore: one row per property path in a SQLite file
"""

from .base import (
    KEY_SEPARATOR,
    START_TOKEN,
    FlatRecord,
    KeyValueStore,
    ScanBatch,
    create_key,
    create_store,
)
from .memory import InMemoryKeyValueStore
from .sqlite import SqliteKeyValueStore

__all__ = [
    "KEY_SEPARATOR",
    "START_TOKEN",
    "FlatRecord",
    "KeyValueStore",
    "ScanBatch",
    "create_key",
    "create_store",
    "InMemoryKeyValueStore",
    "SqliteKeyValueStore",
]
