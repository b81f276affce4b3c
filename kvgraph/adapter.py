"""
Keyspace adapter: the facade callers use to store and load object graphs.

    adapter = KeyspaceAdapter(store, registry)
    await adapter.put("persons", "1", person)
    person = await adapter.get("persons", "1", Person)
    async for p in adapter.iter_entities("persons", Person):
        ...

put() writes the root record and one record per referenced entity, each
with its own store call. Nothing spans records: a concurrent reader may see
a partially written graph, and a failure mid-way leaves the records already
written in place.

Invariants:
    - get() returns None for an absent root; a missing referenced entity
      raises DanglingReferenceError unless lenient references are enabled
    - delete() never cascades to referenced entities
    - Store errors are passed through unmodified and never retried

How to change safely:
    - Keep the adapter free of per-call state; every read and write owns
      its own resolution or write context
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any, List, Optional, Tuple

from .config import MapperConfig, ScanConfig
from .convert.codec import DefaultScalarCodec, ScalarCodec
from .convert.converter import GraphConverter
from .convert.references import EntityReference, normalize_id
from .errors import CodecError, MappingError
from .scan import CursorState, ScanCursor
from .schema.registry import MappingRegistry, get_registry
from .schema.types import TypeDef
from .store.base import KeyValueStore

logger = logging.getLogger(__name__)


class KeyspaceAdapter:
    """Stores and loads registered objects in a KeyValueStore.

    Attributes:
        store: The underlying key-value store
        registry: Mapping metadata for all stored types
    """

    def __init__(
        self,
        store: KeyValueStore,
        registry: Optional[MappingRegistry] = None,
        codec: Optional[ScalarCodec] = None,
        config: Optional[MapperConfig] = None,
        scan_config: Optional[ScanConfig] = None,
    ) -> None:
        self.store = store
        self.registry = registry if registry is not None else get_registry()
        self._codec = codec or DefaultScalarCodec()
        self._converter = GraphConverter(self.registry, store, self._codec, config)
        self._scan_config = scan_config or ScanConfig()

    @property
    def converter(self) -> GraphConverter:
        """The graph converter used for reads and writes."""
        return self._converter

    async def put(self, keyspace: str, id: Any, obj: Any) -> Any:
        """Store an object and every entity it references.

        An empty id property on obj is set to id before writing.

        Args:
            keyspace: Keyspace of obj's type
            id: Id to store obj under
            obj: Instance of a registered entity type

        Returns:
            obj

        Raises:
            MappingError: If obj's type is not an entity of keyspace, or its
                id property disagrees with id
            ConversionError: If a scalar cannot be encoded
            StoreError: Passed through from the store
        """
        type_def = self.registry.type_def_of(obj)
        if type_def.keyspace != keyspace:
            raise MappingError(
                f"Type '{type_def.name}' is stored in keyspace "
                f"'{type_def.keyspace}', not '{keyspace}'",
                type_def.name,
            )

        key = normalize_id(id)
        current = type_def.get_id(obj)
        if current is None or current == "" or current == b"":
            type_def.set_id(obj, self._id_value(type_def, key))
        elif normalize_id(current) != key:
            raise MappingError(
                f"Object id '{normalize_id(current)}' does not match '{key}'",
                type_def.name,
            )

        records = self._converter.write(obj)
        for ref, record in records:
            await self.store.put(ref.keyspace, ref.id, record)

        logger.debug(
            "Stored object graph",
            extra={"keyspace": keyspace, "id": key, "records": len(records)},
        )
        return obj

    def _id_value(self, type_def: TypeDef, key: str) -> Any:
        id_field = type_def.get_field(type_def.id_field)
        try:
            return self._codec.decode(key.encode("utf-8"), id_field.value_type)
        except CodecError as e:
            raise MappingError(
                f"Id '{key}' cannot be assigned to '{type_def.name}.{id_field.name}': {e}",
                type_def.name,
            ) from e

    async def get(self, keyspace: str, id: Any, target_type: type) -> Any:
        """Load an object and the entities it references.

        Returns:
            The object, or None if no record is stored under (keyspace, id)

        Raises:
            MappingError: If target_type is not an entity of keyspace
            DanglingReferenceError: If a referenced record is missing (strict)
            ConversionError: If a scalar cannot be decoded
            StoreError: Passed through from the store
        """
        expected = self.registry.keyspace_of(target_type)
        if expected != keyspace:
            raise MappingError(
                f"Type '{target_type.__name__}' is stored in keyspace "
                f"'{expected}', not '{keyspace}'",
                target_type.__name__,
            )
        ref = EntityReference(keyspace, normalize_id(id))
        return await self._converter.read(ref, target_type)

    async def delete(self, keyspace: str, id: Any) -> bool:
        """Delete one record; referenced entities are left in place.

        Returns:
            True if a record was removed
        """
        removed = await self.store.delete(keyspace, normalize_id(id))
        logger.debug(
            "Deleted record",
            extra={"keyspace": keyspace, "id": normalize_id(id), "removed": removed},
        )
        return removed

    async def exists(self, keyspace: str, id: Any) -> bool:
        """Whether a record is stored under (keyspace, id)."""
        return await self.store.exists(keyspace, normalize_id(id))

    async def count(self, keyspace: str) -> int:
        """Number of records in a keyspace."""
        return await self.store.count(keyspace)

    async def delete_all(self, keyspace: str) -> int:
        """Delete every record of a keyspace.

        Returns:
            Number of records removed
        """
        removed = await self.store.delete_keyspace(keyspace)
        logger.info("Deleted keyspace", extra={"keyspace": keyspace, "records": removed})
        return removed

    def scan(
        self,
        keyspace: str,
        batch_size: Optional[int] = None,
        match: Optional[str] = None,
    ) -> Tuple[ScanCursor, CursorState]:
        """Open a sweep over the ids of a keyspace.

        Returns:
            The cursor and its initial state; see kvgraph.scan
        """
        cursor = ScanCursor(self.store, default_batch_size=self._scan_config.batch_size)
        return cursor, cursor.open(keyspace, batch_size=batch_size, match=match)

    async def iter_entities(
        self,
        keyspace: str,
        target_type: type,
        batch_size: Optional[int] = None,
        match: Optional[str] = None,
    ) -> AsyncIterator[Any]:
        """Yield the objects of a keyspace, one get() per scanned id.

        Records deleted between the scan step and the get are skipped.
        """
        cursor, state = self.scan(keyspace, batch_size=batch_size, match=match)
        while not state.exhausted:
            step = await cursor.next(state)
            for id in step.ids:
                obj = await self.get(keyspace, id, target_type)
                if obj is None:
                    logger.debug(
                        "Scanned record disappeared",
                        extra={"keyspace": keyspace, "id": id},
                    )
                    continue
                yield obj
            state = step.state

    async def get_all(self, keyspace: str, target_type: type) -> List[Any]:
        """Load every object of a keyspace."""
        return [obj async for obj in self.iter_entities(keyspace, target_type)]
