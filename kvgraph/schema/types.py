"""
Core type definitions for kvgraph's mapping metadata.

Every mapped Python class is described once, at registration time, by a
TypeDef holding an explicit tuple of FieldDef property descriptors. The
flattener and the reference resolver walk these descriptors instead of
inspecting objects at runtime.

- FieldDef: One property (name, declared value type, container shape)
- TypeDef: A mapped class; an *entity* when it owns a keyspace, otherwise an
  *embedded* type flattened inline into its owner's record

Invariants:
    - Field names are unique within a type and never contain '.', '[' or ']'
    - An entity TypeDef has a keyspace (no ':') and an id_field among its fields
    - Whether a property is stored by reference is decided from the declared
      value type alone (is it a registered entity type?), never from the
      runtime value

Example:
    >>> Person = entity(
    ...     PersonModel,
    ...     keyspace="persons",
    ...     fields=(
    ...         field("id", str),
    ...         field("name", str),
    ...         field("address", AddressModel),
    ...         field("nicknames", str, container="list"),
    ...         field("spouse", PersonModel),
    ...     ),
    ... )
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from enum import Enum
from typing import Any

RESERVED_PATH_CHARS = frozenset(".[]")


class Container(Enum):
    """Shape of a property value."""

    NONE = "none"
    LIST = "list"  # Ordered collection, positional [i] segments
    MAP = "map"  # Keyed collection, [key] segments with raw key text

    @classmethod
    def from_str(cls, value: str) -> Container:
        """Convert string representation to Container.

        Raises:
            ValueError: If value is not a valid container name
        """
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid container '{value}'. Valid containers: {valid}")


@dataclass(frozen=True)
class FieldDef:
    """Definition of a single mapped property.

    Attributes:
        name: Attribute name on the Python object, also the path segment
        value_type: Declared type of the value (or of each element for
            list/map containers). A registered entity type makes the property
            a reference; a registered embedded type makes it inline; anything
            else is a scalar handled by the codec.
        container: NONE, LIST or MAP
        key_type: Declared type of map keys (MAP only)
        default: Value left on the object when no path is stored
        description: Human-readable description
    """

    name: str
    value_type: type
    container: Container = Container.NONE
    key_type: type = str
    default: Any = None
    description: str = ""

    def __post_init__(self) -> None:
        """Validate field definition."""
        if not self.name:
            raise ValueError("Field name cannot be empty")
        if RESERVED_PATH_CHARS & set(self.name):
            raise ValueError(f"Field name '{self.name}' cannot contain '.', '[' or ']'")
        if not isinstance(self.value_type, type):
            raise ValueError(f"value_type of field '{self.name}' must be a class")

    def default_value(self) -> Any:
        """Return a fresh default for this property."""
        if self.default is not None:
            return copy.copy(self.default)
        if self.container is Container.LIST:
            return []
        if self.container is Container.MAP:
            return {}
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        result: dict[str, Any] = {
            "name": self.name,
            "value_type": self.value_type.__name__,
        }
        if self.container is not Container.NONE:
            result["container"] = self.container.value
        if self.container is Container.MAP:
            result["key_type"] = self.key_type.__name__
        if self.description:
            result["description"] = self.description
        return result


def field(
    name: str,
    value_type: type,
    *,
    container: str | Container = Container.NONE,
    key_type: type = str,
    default: Any = None,
    description: str = "",
) -> FieldDef:
    """Convenience function to create a FieldDef.

    Example:
        >>> tags = field("tags", str, container="list")
        >>> scores = field("scores", int, container="map")
    """
    if isinstance(container, str):
        container = Container.from_str(container)
    return FieldDef(
        name=name,
        value_type=value_type,
        container=container,
        key_type=key_type,
        default=default,
        description=description,
    )


@dataclass(frozen=True)
class TypeDef:
    """Mapping metadata for one Python class.

    Attributes:
        cls: The mapped class
        fields: Property descriptors, in write order
        keyspace: Storage partition for entity types, None for embedded types
        id_field: Name of the id property (entity types only)
        name: Type name written as the type hint; defaults to cls.__name__
        description: Human-readable description
    """

    cls: type
    fields: tuple[FieldDef, ...] = dataclass_field(default_factory=tuple)
    keyspace: str | None = None
    id_field: str | None = None
    name: str = ""
    description: str = ""

    def __post_init__(self) -> None:
        """Validate type definition."""
        if not self.name:
            object.__setattr__(self, "name", self.cls.__name__)

        names = [f.name for f in self.fields]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate field name in type '{self.name}'")

        if self.keyspace is not None:
            if not self.keyspace or ":" in self.keyspace:
                raise ValueError(f"Invalid keyspace '{self.keyspace}' for type '{self.name}'")
            if self.id_field is None:
                object.__setattr__(self, "id_field", "id")
            if self.id_field not in names:
                raise ValueError(
                    f"id field '{self.id_field}' is not declared on entity type '{self.name}'"
                )
        elif self.id_field is not None:
            raise ValueError(f"Embedded type '{self.name}' cannot declare an id field")

    @property
    def is_entity(self) -> bool:
        """Whether instances are stored under their own keyspace and id."""
        return self.keyspace is not None

    def get_field(self, name: str) -> FieldDef | None:
        """Get a field by name."""
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def new_instance(self) -> Any:
        """Allocate an instance without calling __init__.

        Every declared property is set to its default, so the instance is
        usable (identity-stable and zero-valued) before any stored value has
        been applied.
        """
        instance = self.cls.__new__(self.cls)
        for f in self.fields:
            object.__setattr__(instance, f.name, f.default_value())
        return instance

    def get_id(self, obj: Any) -> Any:
        """Read the id property of an entity instance."""
        if self.id_field is None:
            return None
        return getattr(obj, self.id_field, None)

    def set_id(self, obj: Any, value: Any) -> None:
        """Write the id property of an entity instance."""
        if self.id_field is not None:
            object.__setattr__(obj, self.id_field, value)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        result: dict[str, Any] = {
            "name": self.name,
            "fields": [f.to_dict() for f in self.fields],
        }
        if self.keyspace is not None:
            result["keyspace"] = self.keyspace
            result["id_field"] = self.id_field
        if self.description:
            result["description"] = self.description
        return result


def entity(
    cls: type,
    keyspace: str,
    fields: tuple[FieldDef, ...],
    *,
    id_field: str = "id",
    name: str = "",
    description: str = "",
) -> TypeDef:
    """Describe a class persisted under its own keyspace."""
    return TypeDef(
        cls=cls,
        fields=fields,
        keyspace=keyspace,
        id_field=id_field,
        name=name,
        description=description,
    )


def embedded(
    cls: type,
    fields: tuple[FieldDef, ...],
    *,
    name: str = "",
    description: str = "",
) -> TypeDef:
    """Describe a class flattened inline into its owner's record."""
    return TypeDef(cls=cls, fields=fields, name=name, description=description)
