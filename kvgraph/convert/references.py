"""
Entity references and cycle-safe reference resolution.

A property whose declared type is a registered entity type is not inlined
into its owner's record. The owner stores only the reference encoding
`keyspace:id`, and the referenced entity is written as its own record.

Reading reverses this through ReferenceResolver.resolve():

    1. A reference already present in the ResolutionContext returns the
       instance registered there, even if it is still being populated.
    2. Otherwise the record is fetched; a missing record fails with
       DanglingReferenceError (NotFoundError for the root).
    3. A default-valued instance is allocated and registered in the context
       BEFORE any stored value is applied to it.
    4. The record is unflattened into that instance; nested references are
       resolved through the same context, breadth-first from a work queue
       so reference depth does not grow the call stack.
    5. The populated instance is returned.

Because of step 3 a back-reference met deeper in the graph receives the
outer instance while its own reference properties are still unset. After
the top-level call returns every instance is complete and cycles are
identity-preserving.

Invariants:
    - A ResolutionContext lives for exactly one top-level read and is cleared
      on exit, on success or failure
    - A WriteContext lives for exactly one top-level write; each reference is
      queued at most once, which also ends write-side cycles
    - Dangling references fail unless lenient mode was explicitly enabled
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Deque, Dict, List, Optional, Tuple, Union

from ..errors import CodecError, DanglingReferenceError, MappingError, NotFoundError
from ..schema.registry import MappingRegistry
from ..schema.types import FieldDef

if TYPE_CHECKING:
    from ..store.base import KeyValueStore
    from .flattener import PathFlattener

logger = logging.getLogger(__name__)

REFERENCE_SEPARATOR = ":"


def normalize_id(value: Union[str, bytes, Any]) -> str:
    """Render an entity id as the text used in keys and references."""
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


@dataclass(frozen=True)
class EntityReference:
    """Pointer to a persisted entity, independent of in-memory identity.

    Attributes:
        keyspace: Keyspace of the referenced entity
        id: Id of the referenced entity, normalized to text
    """

    keyspace: str
    id: str

    def encode(self) -> bytes:
        """Encode as stored in the referring record."""
        return f"{self.keyspace}{REFERENCE_SEPARATOR}{self.id}".encode("utf-8")

    @classmethod
    def decode(cls, data: bytes) -> EntityReference:
        """Decode a stored reference; the id may itself contain ':'.

        Raises:
            CodecError: If data is not a 'keyspace:id' reference
        """
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CodecError(f"Reference is not valid UTF-8: {data!r}") from e
        keyspace, sep, id_ = text.partition(REFERENCE_SEPARATOR)
        if not sep or not keyspace or not id_:
            raise CodecError(f"Malformed reference {text!r}, expected 'keyspace:id'")
        return cls(keyspace=keyspace, id=id_)

    def __str__(self) -> str:
        return f"{self.keyspace}{REFERENCE_SEPARATOR}{self.id}"


def reference_of(registry: MappingRegistry, value: Any) -> EntityReference:
    """Build the reference for an entity instance.

    Raises:
        MappingError: If value is not an entity or has no id
    """
    type_def = registry.type_def_of(value)
    if type_def.keyspace is None:
        raise MappingError(f"Type '{type_def.name}' is not an entity type", type_def.name)
    id_value = type_def.get_id(value)
    if id_value is None or id_value == "" or id_value == b"":
        raise MappingError(
            f"Referenced '{type_def.name}' has no value for '{type_def.id_field}'",
            type_def.name,
        )
    return EntityReference(type_def.keyspace, normalize_id(id_value))


@dataclass
class PendingReference:
    """A reference met while unflattening, to be resolved and assigned.

    Attributes:
        path: Property path holding the reference
        ref: Decoded reference
        target_type: Declared entity type of the property
        owner: Object the resolved value is assigned to
        field_name: Attribute on owner
        key: None for a single property, the list position or map key for
            elements of a reference collection
    """

    path: str
    ref: EntityReference
    target_type: type
    owner: Any
    field_name: str
    key: Any = None
    in_collection: bool = False

    def assign(self, value: Any) -> None:
        """Store the resolved value on the owner.

        Unresolved (None) collection elements are dropped rather than kept as
        holes.
        """
        if not self.in_collection:
            object.__setattr__(self.owner, self.field_name, value)
            return
        if value is None:
            return
        target = getattr(self.owner, self.field_name)
        if isinstance(target, dict):
            target[self.key] = value
        else:
            target.append(value)


class ResolutionContext:
    """Per-read map of reference -> instance under construction.

    Created by the top-level resolve and cleared when it returns. Never
    shared between concurrent reads.
    """

    def __init__(self) -> None:
        self._instances: Dict[EntityReference, Any] = {}

    def __contains__(self, ref: EntityReference) -> bool:
        return ref in self._instances

    def __len__(self) -> int:
        return len(self._instances)

    def get(self, ref: EntityReference) -> Any:
        """Get the registered instance for ref (None if absent)."""
        return self._instances.get(ref)

    def register(self, ref: EntityReference, instance: Any) -> None:
        """Register an instance before it is populated."""
        self._instances[ref] = instance

    def clear(self) -> None:
        """Drop all registered instances."""
        self._instances.clear()


class WriteContext:
    """Per-write queue of entities to persist, deduplicated by reference."""

    def __init__(self) -> None:
        self._seen: set[EntityReference] = set()
        self._queue: Deque[Tuple[EntityReference, Any]] = deque()

    def __contains__(self, ref: EntityReference) -> bool:
        return ref in self._seen

    def enqueue(self, ref: EntityReference, entity: Any) -> bool:
        """Queue an entity unless its reference was already queued.

        Returns:
            True if the entity was queued
        """
        if ref in self._seen:
            return False
        self._seen.add(ref)
        self._queue.append((ref, entity))
        return True

    def pop(self) -> Optional[Tuple[EntityReference, Any]]:
        """Take the next queued entity, or None when drained."""
        if not self._queue:
            return None
        return self._queue.popleft()


class ReferenceResolver:
    """Detects, encodes and resolves references between entities.

    Attributes:
        lenient: Whether dangling nested references resolve to None

    Example:
        >>> resolver = ReferenceResolver(registry, store, flattener)
        >>> person = await resolver.resolve_root(
        ...     EntityReference("persons", "1"), Person
        ... )
    """

    def __init__(
        self,
        registry: MappingRegistry,
        store: KeyValueStore,
        flattener: PathFlattener,
        lenient: bool = False,
    ) -> None:
        self._registry = registry
        self._store = store
        self._flattener = flattener
        self.lenient = lenient

    def should_inline(self, field_def: FieldDef) -> bool:
        """Whether a property is flattened into its owner's record.

        Decided statically: a declared entity type is stored by reference.
        """
        return not self._registry.is_entity_type(field_def.value_type)

    def to_reference(self, value: Any) -> EntityReference:
        """Build the reference for an entity instance.

        Raises:
            MappingError: If value is not an entity or has no id
        """
        return reference_of(self._registry, value)

    def reference_for_write(self, value: Any, ctx: WriteContext) -> EntityReference:
        """Encode a referenced entity and queue it for its own write."""
        ref = self.to_reference(value)
        if ctx.enqueue(ref, value):
            logger.debug("Cascading write", extra={"ref": str(ref)})
        return ref

    async def resolve_root(self, ref: EntityReference, target_type: type) -> Any:
        """Resolve a top-level read with a fresh ResolutionContext.

        Raises:
            NotFoundError: If the root record does not exist
            DanglingReferenceError: If a nested reference is missing (strict)
        """
        ctx = ResolutionContext()
        try:
            return await self._resolve(ref, target_type, ctx, path=None)
        finally:
            ctx.clear()

    async def resolve(
        self,
        ref: EntityReference,
        target_type: type,
        ctx: ResolutionContext,
        path: str = "",
    ) -> Any:
        """Resolve ref within an existing context.

        Raises:
            DanglingReferenceError: If the record does not exist
        """
        return await self._resolve(ref, target_type, ctx, path=path)

    async def _resolve(
        self,
        ref: EntityReference,
        target_type: type,
        ctx: ResolutionContext,
        path: Optional[str],
    ) -> Any:
        if ref in ctx:
            return ctx.get(ref)

        instance, pending = await self._load(ref, target_type, ctx, path)

        queue: Deque[PendingReference] = deque(pending)
        while queue:
            item = queue.popleft()
            if item.ref in ctx:
                item.assign(ctx.get(item.ref))
                continue
            try:
                nested, nested_pending = await self._load(
                    item.ref, item.target_type, ctx, item.path
                )
            except DanglingReferenceError:
                if not self.lenient:
                    raise
                logger.warning(
                    "Dropping dangling reference",
                    extra={"path": item.path, "ref": str(item.ref)},
                )
                item.assign(None)
                continue
            item.assign(nested)
            queue.extend(nested_pending)
        return instance

    async def _load(
        self,
        ref: EntityReference,
        target_type: type,
        ctx: ResolutionContext,
        path: Optional[str],
    ) -> Tuple[Any, List[PendingReference]]:
        """Fetch one record, register its instance, then populate it.

        Returns:
            The registered instance and the references its record holds
        """
        record = await self._store.get(ref.keyspace, ref.id)
        if record is None:
            if path is None:
                raise NotFoundError(ref)
            raise DanglingReferenceError(ref, path)

        instance, type_def = self._flattener.instantiate(record, target_type)
        ctx.register(ref, instance)
        return instance, self._flattener.unflatten_into(record, instance, type_def)
