"""
kvgraph - Object graph mapping onto flat key-value stores.

This package stores typed object graphs in a key-value store organized by
keyspace (one per entity type) and id:
- Each object is flattened into a record of property path -> bytes
- Properties typed as another entity are stored as `keyspace:id` references
  and written as records of their own
- Reads rebuild the graph, reusing in-progress instances to break cycles
- Keyspaces are enumerated with resumable, batched scan cursors

Architecture:
    ┌─────────────┐     ┌──────────────────┐     ┌────────────────┐
    │   Caller    │────▶│ KeyspaceAdapter  │────▶│ GraphConverter │
    └─────────────┘     └────────┬─────────┘     └───────┬────────┘
                                 │                       │
                                 │              ┌────────┴────────┐
                                 │              ▼                 ▼
                                 │       ┌─────────────┐  ┌──────────────┐
                                 │       │PathFlattener│  │  Reference   │
                                 │       │ + Codec     │  │  Resolver    │
                                 │       └─────────────┘  └──────┬───────┘
                                 ▼                               │
                        ┌─────────────────┐                      │
                        │   ScanCursor    │                      │
                        └────────┬────────┘                      │
                                 ▼                               ▼
                        ┌─────────────────────────────────────────┐
                        │   KeyValueStore (memory / SQLite)       │
                        └─────────────────────────────────────────┘

Invariants:
    - Types are described once by TypeDef/FieldDef in a MappingRegistry
    - Whether a property is stored by reference is decided by its declared
      type, never by the runtime value
    - A resolution context lives for exactly one top-level read
    - Writes spanning several records are not atomic

How to change safely:
    - The path grammar (`.`, `[i]`, `[key]`) and the `_class` hint are the
      stored format; changing them breaks existing records
    - Add fields with defaults; absent paths read as defaults
"""

from ._version import __version__
from .adapter import KeyspaceAdapter
from .config import MapperConfig, ScanConfig, Settings, StorageConfig
from .convert import EntityReference, GraphConverter, PathFlattener
from .errors import (
    CodecError,
    ConversionError,
    DanglingReferenceError,
    KvGraphError,
    MappingError,
    NotFoundError,
    StaleCursorError,
    StoreError,
)
from .scan import CursorState, ScanCursor, ScanStep
from .schema import MappingRegistry, embedded, entity, field, get_registry
from .store import InMemoryKeyValueStore, KeyValueStore, SqliteKeyValueStore, create_store

__all__ = [
    "__version__",
    "KeyspaceAdapter",
    "MapperConfig",
    "ScanConfig",
    "Settings",
    "StorageConfig",
    "EntityReference",
    "GraphConverter",
    "PathFlattener",
    "KvGraphError",
    "MappingError",
    "CodecError",
    "ConversionError",
    "NotFoundError",
    "DanglingReferenceError",
    "StaleCursorError",
    "StoreError",
    "CursorState",
    "ScanCursor",
    "ScanStep",
    "MappingRegistry",
    "entity",
    "embedded",
    "field",
    "get_registry",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "SqliteKeyValueStore",
    "create_store",
]
