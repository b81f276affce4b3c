"""
Schema module for kvgraph.

This module provides the mapping metadata for object graphs:
- Type definitions (TypeDef, FieldDef, Container)
- Mapping registry answering is_entity_type / keyspace_of / id_of

Invariants:
    - Descriptors are declared explicitly and built once per mapped type
    - All types must be registered before the registry is frozen
    - Reference-vs-inline is a static property of the declared value type

How to change safely:
    - Adding a field to a type is backward compatible (absent paths read
      as defaults)
    - Renaming a field or a type changes stored paths or type hints; old
      records will read the property as absent
"""

from .registry import (
    DuplicateRegistrationError,
    MappingRegistry,
    RegistryFrozenError,
    freeze_registry,
    get_registry,
    reset_registry,
)
from .types import (
    Container,
    FieldDef,
    TypeDef,
    embedded,
    entity,
    field,
)

__all__ = [
    # Types
    "Container",
    "FieldDef",
    "TypeDef",
    "field",
    "entity",
    "embedded",
    # Registry
    "MappingRegistry",
    "RegistryFrozenError",
    "DuplicateRegistrationError",
    "get_registry",
    "freeze_registry",
    "reset_registry",
]
