"""
Graph converter: the read/write contract used by the keyspace adapter.

write() turns one aggregate into the records to store: the root's record
followed by one record per entity reachable through reference properties,
each exactly once. read() delegates to the resolver's top-level resolve.

The converter keeps no state of its own between calls.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Tuple

from ..config import MapperConfig
from ..errors import NotFoundError
from ..schema.registry import MappingRegistry
from ..store.base import KeyValueStore
from .codec import DefaultScalarCodec, ScalarCodec
from .flattener import FlatRecord, PathFlattener
from .references import EntityReference, ReferenceResolver, WriteContext

logger = logging.getLogger(__name__)


class GraphConverter:
    """Orchestrates the path flattener and the reference resolver.

    Example:
        >>> converter = GraphConverter(registry, store)
        >>> for ref, record in converter.write(person):
        ...     await store.put(ref.keyspace, ref.id, record)
        >>> again = await converter.read(EntityReference("persons", "1"), Person)
    """

    def __init__(
        self,
        registry: MappingRegistry,
        store: KeyValueStore,
        codec: Optional[ScalarCodec] = None,
        config: Optional[MapperConfig] = None,
    ) -> None:
        self.config = config or MapperConfig()
        self.flattener = PathFlattener(
            registry,
            codec or DefaultScalarCodec(),
            type_hint_key=self.config.type_hint_key,
        )
        self.resolver = ReferenceResolver(
            registry,
            store,
            self.flattener,
            lenient=self.config.lenient_references,
        )

    def write(self, obj: Any) -> List[Tuple[EntityReference, FlatRecord]]:
        """Flatten an entity and every entity it references.

        Returns:
            (reference, record) pairs, root first, one per distinct reference

        Raises:
            MappingError: If a type is unregistered or an entity has no id
            ConversionError: If a scalar cannot be encoded
        """
        ctx = WriteContext()
        ctx.enqueue(self.resolver.to_reference(obj), obj)

        def on_reference(value: Any, path: str) -> EntityReference:
            return self.resolver.reference_for_write(value, ctx)

        records: List[Tuple[EntityReference, FlatRecord]] = []
        item = ctx.pop()
        while item is not None:
            ref, entity = item
            records.append((ref, self.flattener.flatten(entity, on_reference)))
            item = ctx.pop()

        logger.debug(
            "Flattened aggregate",
            extra={"root": str(records[0][0]), "records": len(records)},
        )
        return records

    async def read(self, ref: EntityReference, target_type: type) -> Any:
        """Rebuild the entity stored under ref.

        Returns:
            The populated instance, or None if the root record is absent

        Raises:
            DanglingReferenceError: If a nested reference is missing (strict)
        """
        try:
            return await self.resolver.resolve_root(ref, target_type)
        except NotFoundError:
            return None
