"""
Path flattener: object graph <-> flat record.

flatten() walks the registered FieldDefs of an object and emits one entry
per scalar, keyed by its property path (see paths.py for the grammar).
Embedded types recurse inline, lists use positional segments, maps use raw
key segments. Entity-typed properties are not entered: they are replaced by
their `keyspace:id` reference, produced by an optional callback so the
graph converter can queue the referenced entity for its own write.

unflatten() rebuilds an object from a record. unflatten_into() populates an
existing instance and returns the references it met as PendingReference
items for the resolver; plain unflatten() leaves reference properties at
their defaults.

Example:
    For a Person with an embedded address and a list of coworkers:

        _class=Person
        id=1
        firstname=rand
        address.city=emond's field
        coworkers[0].firstname=mat
        coworkers[0].nicknames[0]=prince of the ravens
        coworkers[1].firstname=perrin
        nationality=countries:andor

Invariants:
    - None values and empty collections are never written
    - Absent paths leave the property at its declared default
    - Unknown paths are ignored
    - List order is rebuilt from numeric positions; gaps are compacted
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ..errors import CodecError, ConversionError
from ..schema.registry import MappingRegistry
from ..schema.types import Container, FieldDef, TypeDef
from ..store.base import FlatRecord
from . import paths
from .codec import ScalarCodec
from .references import EntityReference, PendingReference, reference_of

logger = logging.getLogger(__name__)


# Called with (referenced entity, path); returns the reference to store
ReferenceCallback = Callable[[Any, str], EntityReference]

DEFAULT_TYPE_HINT_KEY = "_class"

_ABSENT = object()


class _ReadState:
    """Bookkeeping for one unflatten pass."""

    def __init__(self, record: FlatRecord) -> None:
        self.record = record
        self.pending: List[PendingReference] = []
        self.consumed: Set[str] = set()

    def take(self, path: str) -> Optional[bytes]:
        raw = self.record.get(path)
        if raw is not None:
            self.consumed.add(path)
        return raw


class PathFlattener:
    """Converts between objects and flat property-path records.

    Attributes:
        type_hint_key: Path segment under which type names are stored
    """

    def __init__(
        self,
        registry: MappingRegistry,
        codec: ScalarCodec,
        type_hint_key: str = DEFAULT_TYPE_HINT_KEY,
    ) -> None:
        self._registry = registry
        self._codec = codec
        self.type_hint_key = type_hint_key

    # Write path

    def flatten(self, obj: Any, on_reference: Optional[ReferenceCallback] = None) -> FlatRecord:
        """Flatten a registered object into a flat record.

        Args:
            obj: Instance of a registered entity or embedded type
            on_reference: Called for each referenced entity; defaults to
                encoding the reference without any further action

        Returns:
            Mapping of property path to encoded bytes

        Raises:
            MappingError: If a type is not registered or a referenced entity
                has no id
            ConversionError: If a scalar cannot be encoded
        """
        type_def = self._registry.type_def_of(obj)
        record: FlatRecord = {self.type_hint_key: type_def.name.encode("utf-8")}
        self._write_object("", obj, type_def, record, on_reference)
        return record

    def _write_object(
        self,
        path: str,
        obj: Any,
        type_def: TypeDef,
        record: FlatRecord,
        on_reference: Optional[ReferenceCallback],
    ) -> None:
        for f in type_def.fields:
            value = getattr(obj, f.name, None)
            if value is None:
                continue
            field_path = paths.child(path, f.name)

            if f.container is Container.LIST:
                for i, item in enumerate(value):
                    if item is not None:
                        self._write_value(
                            paths.element(field_path, i), item, f.value_type, record, on_reference
                        )
            elif f.container is Container.MAP:
                for key, item in value.items():
                    if key is None or item is None:
                        continue
                    segment = self._key_segment(field_path, key, f.key_type)
                    self._write_value(
                        paths.element(field_path, segment), item, f.value_type, record, on_reference
                    )
            else:
                self._write_value(field_path, value, f.value_type, record, on_reference)

    def _write_value(
        self,
        path: str,
        value: Any,
        declared_type: type,
        record: FlatRecord,
        on_reference: Optional[ReferenceCallback],
    ) -> None:
        if self._registry.is_entity_type(declared_type):
            if on_reference is not None:
                ref = on_reference(value, path)
            else:
                ref = reference_of(self._registry, value)
            record[path] = ref.encode()
            return

        type_def = self._registry.get_type_def(type(value))
        if type_def is not None and not type_def.is_entity:
            if type_def.cls is not declared_type:
                record[paths.child(path, self.type_hint_key)] = type_def.name.encode("utf-8")
            self._write_object(path, value, type_def, record, on_reference)
            return

        record[path] = self._encode(path, value, declared_type)

    def _encode(self, path: str, value: Any, declared_type: type) -> bytes:
        try:
            return self._codec.encode(value, declared_type)
        except CodecError as e:
            raise ConversionError(path, type(value).__name__, e) from e

    def _key_segment(self, path: str, key: Any, key_type: type) -> str:
        text = self._encode(path, key, key_type).decode("utf-8")
        if "]" in text or "[" in text:
            raise ConversionError(
                path, type(key).__name__, ValueError(f"map key {text!r} contains a bracket")
            )
        return text

    # Read path

    def instantiate(self, record: FlatRecord, target_type: type) -> Tuple[Any, TypeDef]:
        """Allocate a default-valued instance for a record.

        The record's root type hint selects a registered subclass of
        target_type when present.

        Raises:
            MappingError: If target_type is not registered
        """
        declared = self._registry.require_type_def(target_type)
        hint = record.get(self.type_hint_key)
        type_def = self._registry.resolve_hint(
            hint.decode("utf-8") if hint is not None else None, declared
        )
        return type_def.new_instance(), type_def

    def unflatten(self, record: FlatRecord, target_type: type) -> Any:
        """Rebuild an object from a flat record.

        Reference-typed properties are left at their defaults; use the
        graph converter to resolve them.

        Raises:
            MappingError: If target_type is not registered
            ConversionError: If a scalar cannot be decoded
        """
        instance, type_def = self.instantiate(record, target_type)
        self.unflatten_into(record, instance, type_def)
        return instance

    def unflatten_into(
        self, record: FlatRecord, instance: Any, type_def: TypeDef
    ) -> List[PendingReference]:
        """Populate an existing instance from a flat record.

        Returns:
            The references met, in path order, for the caller to resolve
        """
        state = _ReadState(record)
        self._read_object(state, "", instance, type_def)

        unknown = [
            p for p in record
            if p not in state.consumed and not p.endswith(self.type_hint_key)
        ]
        if unknown:
            logger.debug(
                "Ignoring unknown paths",
                extra={"type": type_def.name, "paths": sorted(unknown)},
            )
        return state.pending

    def _read_object(self, state: _ReadState, path: str, instance: Any, type_def: TypeDef) -> None:
        for f in type_def.fields:
            field_path = paths.child(path, f.name)
            if f.container is Container.LIST:
                self._read_list(state, field_path, instance, f)
            elif f.container is Container.MAP:
                self._read_map(state, field_path, instance, f)
            else:
                value = self._read_value(state, field_path, f.value_type, instance, f, None, False)
                if value is not _ABSENT:
                    object.__setattr__(instance, f.name, value)

    def _read_list(self, state: _ReadState, path: str, instance: Any, f: FieldDef) -> None:
        element_paths = paths.positional(paths.element_segments(state.record, path))
        if not element_paths:
            return
        items: List[Any] = []
        object.__setattr__(instance, f.name, items)
        for i, element_path in enumerate(element_paths):
            value = self._read_value(state, element_path, f.value_type, instance, f, i, True)
            if value is not _ABSENT:
                items.append(value)

    def _read_map(self, state: _ReadState, path: str, instance: Any, f: FieldDef) -> None:
        segments = paths.element_segments(state.record, path)
        if not segments:
            return
        entries: Dict[Any, Any] = {}
        object.__setattr__(instance, f.name, entries)
        for segment, element_path in sorted(segments.items()):
            key = self._decode(element_path, segment.encode("utf-8"), f.key_type)
            value = self._read_value(state, element_path, f.value_type, instance, f, key, True)
            if value is not _ABSENT:
                entries[key] = value

    def _read_value(
        self,
        state: _ReadState,
        path: str,
        declared_type: type,
        owner: Any,
        f: FieldDef,
        key: Any,
        in_collection: bool,
    ) -> Any:
        if self._registry.is_entity_type(declared_type):
            raw = state.take(path)
            if not raw:
                return _ABSENT
            state.pending.append(
                PendingReference(
                    path=path,
                    ref=self._decode_reference(path, raw),
                    target_type=declared_type,
                    owner=owner,
                    field_name=f.name,
                    key=key,
                    in_collection=in_collection,
                )
            )
            return _ABSENT

        declared = self._registry.get_type_def(declared_type)
        if declared is not None:
            if not paths.has_prefix(state.record, path):
                return _ABSENT
            hint = state.take(paths.child(path, self.type_hint_key))
            type_def = self._registry.resolve_hint(
                hint.decode("utf-8") if hint is not None else None, declared
            )
            nested = type_def.new_instance()
            self._read_object(state, path, nested, type_def)
            return nested

        raw = state.take(path)
        if raw is None:
            return _ABSENT
        return self._decode(path, raw, declared_type)

    def _decode(self, path: str, raw: bytes, declared_type: type) -> Any:
        try:
            return self._codec.decode(raw, declared_type)
        except CodecError as e:
            raise ConversionError(path, declared_type.__name__, e) from e

    def _decode_reference(self, path: str, raw: bytes) -> EntityReference:
        try:
            return EntityReference.decode(raw)
        except CodecError as e:
            raise ConversionError(path, "EntityReference", e) from e
