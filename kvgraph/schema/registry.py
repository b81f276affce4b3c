"""
Mapping Registry for kvgraph.

The MappingRegistry is the central authority for type metadata. It provides:
- Registration of entity and embedded types
- Lookup by class, by type name (the stored type hint) or by keyspace
- The metadata capability used by the mapper: is_entity_type(),
  keyspace_of(), id_of()
- Freeze mechanism to prevent runtime modifications

Invariants:
    - Registry is mutable during startup, frozen before serving
    - Once frozen, no new types can be registered and lookups are lock-free
    - Type names are unique (they are written to records as type hints)
    - A keyspace belongs to one type, or to a type and its registered subclasses

Example:
    >>> registry = MappingRegistry()
    >>> registry.register(entity(Person, "persons", fields=(field("id", str),)))
    >>> registry.freeze()
    >>> registry.keyspace_of(Person)
    'persons'
"""

from __future__ import annotations

import json
import threading
from typing import Any, Dict, Iterator, Optional, Union
import logging

from ..errors import MappingError
from .types import Container, TypeDef

logger = logging.getLogger(__name__)

# Global registry instance
_global_registry: Optional[MappingRegistry] = None
_registry_lock = threading.Lock()


class RegistryFrozenError(Exception):
    """Raised when attempting to modify a frozen registry."""
    pass


class DuplicateRegistrationError(Exception):
    """Raised when attempting to register a duplicate class, name or keyspace."""
    pass


class MappingRegistry:
    """Central registry for all mapped type definitions.

    Thread-safety:
        - Registration is thread-safe (uses internal lock)
        - Lookups after freeze are lock-free
        - Freeze is atomic and irreversible
    """

    def __init__(self) -> None:
        """Initialize an empty, mutable registry."""
        self._by_class: Dict[type, TypeDef] = {}
        self._by_name: Dict[str, TypeDef] = {}
        self._by_keyspace: Dict[str, TypeDef] = {}
        self._frozen = False
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        """Whether the registry is frozen."""
        return self._frozen

    def register(self, type_def: TypeDef) -> None:
        """Register a type definition.

        Args:
            type_def: The entity or embedded type to register

        Raises:
            RegistryFrozenError: If registry is frozen
            DuplicateRegistrationError: If the class, name or keyspace is taken
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(
                    f"Cannot register type '{type_def.name}': registry is frozen"
                )

            if type_def.cls in self._by_class:
                raise DuplicateRegistrationError(
                    f"Class {type_def.cls.__qualname__} already registered"
                )

            if type_def.name in self._by_name:
                existing = self._by_name[type_def.name]
                raise DuplicateRegistrationError(
                    f"Type name '{type_def.name}' already registered for "
                    f"{existing.cls.__qualname__}"
                )

            if type_def.keyspace is not None and type_def.keyspace in self._by_keyspace:
                owner = self._by_keyspace[type_def.keyspace]
                if not issubclass(type_def.cls, owner.cls):
                    raise DuplicateRegistrationError(
                        f"Keyspace '{type_def.keyspace}' already registered for '{owner.name}'"
                    )

            self._by_class[type_def.cls] = type_def
            self._by_name[type_def.name] = type_def
            if type_def.keyspace is not None:
                self._by_keyspace.setdefault(type_def.keyspace, type_def)
            logger.debug(
                f"Registered type: {type_def.name} (keyspace={type_def.keyspace})"
            )

    def get_type_def(self, cls_or_name: Union[type, str]) -> Optional[TypeDef]:
        """Get a type definition by class or type name.

        Args:
            cls_or_name: The mapped class, or its registered name

        Returns:
            TypeDef if found, None otherwise
        """
        if isinstance(cls_or_name, str):
            return self._by_name.get(cls_or_name)
        return self._by_class.get(cls_or_name)

    def require_type_def(self, cls: type) -> TypeDef:
        """Get a type definition, raising MappingError if the class is unmapped."""
        type_def = self._by_class.get(cls)
        if type_def is None:
            raise MappingError(f"Type {cls.__qualname__} is not registered", cls.__qualname__)
        return type_def

    def type_def_of(self, obj: Any) -> TypeDef:
        """Get the type definition for an instance's runtime class."""
        return self.require_type_def(type(obj))

    def type_def_for_keyspace(self, keyspace: str) -> Optional[TypeDef]:
        """Get the type that owns a keyspace."""
        return self._by_keyspace.get(keyspace)

    def is_entity_type(self, cls: type) -> bool:
        """Whether cls is persisted under its own keyspace."""
        type_def = self._by_class.get(cls)
        return type_def is not None and type_def.is_entity

    def is_embedded_type(self, cls: type) -> bool:
        """Whether cls is a registered type flattened inline."""
        type_def = self._by_class.get(cls)
        return type_def is not None and not type_def.is_entity

    def keyspace_of(self, cls: type) -> str:
        """Get the keyspace of an entity type.

        Raises:
            MappingError: If cls is not a registered entity type
        """
        type_def = self.require_type_def(cls)
        if type_def.keyspace is None:
            raise MappingError(f"Type '{type_def.name}' is not an entity type", type_def.name)
        return type_def.keyspace

    def id_of(self, obj: Any) -> Any:
        """Get the id value of an entity instance (may be None)."""
        return self.type_def_of(obj).get_id(obj)

    def resolve_hint(self, hint: Optional[str], declared: TypeDef) -> TypeDef:
        """Pick the concrete type named by a stored type hint.

        The hint is honoured only when it names a registered subclass of the
        declared type; otherwise the declared type wins.
        """
        if not hint or hint == declared.name:
            return declared
        candidate = self._by_name.get(hint)
        if candidate is None or not issubclass(candidate.cls, declared.cls):
            logger.debug(
                "Ignoring type hint",
                extra={"hint": hint, "declared": declared.name},
            )
            return declared
        return candidate

    def type_defs(self) -> Iterator[TypeDef]:
        """Iterate over all registered types."""
        yield from self._by_class.values()

    def freeze(self) -> None:
        """Freeze the registry.

        After freezing, no new types can be registered.

        Raises:
            RegistryFrozenError: If already frozen
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError("Registry is already frozen")

            self._frozen = True
            logger.info(
                f"Mapping registry frozen with {len(self._by_class)} types, "
                f"{len(self._by_keyspace)} keyspaces"
            )

    def to_dict(self) -> dict:
        """Convert registry to dictionary representation, sorted by type name."""
        return {
            "types": [
                self._by_name[name].to_dict() for name in sorted(self._by_name)
            ],
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        """Convert registry to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)

    def validate_all(self) -> list[str]:
        """Validate all registered types for consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        for type_def in self._by_class.values():
            if type_def.id_field is not None:
                id_def = type_def.get_field(type_def.id_field)
                if id_def is not None and id_def.value_type in self._by_class:
                    errors.append(
                        f"id field '{id_def.name}' of '{type_def.name}' must be a scalar, "
                        f"not mapped type '{id_def.value_type.__name__}'"
                    )
            for f in type_def.fields:
                if f.container is Container.MAP and f.key_type in self._by_class:
                    errors.append(
                        f"Map field '{f.name}' of '{type_def.name}' has a mapped key type"
                    )

        return errors


def get_registry() -> MappingRegistry:
    """Get the global mapping registry, creating it if none exists."""
    global _global_registry
    with _registry_lock:
        if _global_registry is None:
            _global_registry = MappingRegistry()
        return _global_registry


def freeze_registry() -> None:
    """Freeze the global registry.

    This should be called after all types are registered and before the
    first adapter call.

    Raises:
        RegistryFrozenError: If already frozen
    """
    get_registry().freeze()


def reset_registry() -> None:
    """Reset the global registry (for testing only).

    Warning: This is intended for test cleanup only.
    Never use in production code.
    """
    global _global_registry
    with _registry_lock:
        _global_registry = None
