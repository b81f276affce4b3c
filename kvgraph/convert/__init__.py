"""
Conversion between object graphs and flat key-value records.

- codec: scalar <-> bytes
- paths: the property path grammar
- flattener: object <-> flat record
- references: entity references and cycle-safe resolution
- converter: the combined read/write contract
"""

from .codec import DefaultScalarCodec, ScalarCodec
from .converter import GraphConverter
from .flattener import FlatRecord, PathFlattener
from .references import (
    EntityReference,
    PendingReference,
    ReferenceResolver,
    ResolutionContext,
    WriteContext,
    normalize_id,
)

__all__ = [
    "ScalarCodec",
    "DefaultScalarCodec",
    "FlatRecord",
    "PathFlattener",
    "EntityReference",
    "PendingReference",
    "ReferenceResolver",
    "ResolutionContext",
    "WriteContext",
    "normalize_id",
    "GraphConverter",
]
