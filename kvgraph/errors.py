"""
Error types for kvgraph.

This module defines all exception types raised by the mapper:
- KvGraphError: Base exception
- MappingError: Type metadata problems (unregistered type, missing id)
- CodecError / ConversionError: Scalar conversion failures
- NotFoundError: Root record absent
- DanglingReferenceError: Referenced record absent
- StaleCursorError: Cursor state reused after advancing
- StoreError: Failures at the key-value store boundary

Invariants:
    - All errors inherit from KvGraphError
    - Errors include context for debugging in `details`
    - Store errors are passed through unmodified, never retried here
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from .convert.references import EntityReference


class KvGraphError(Exception):
    """Base exception for all kvgraph errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "KVGRAPH_ERROR"
        self.details = details or {}


class MappingError(KvGraphError):
    """Type metadata is missing or inconsistent.

    Raised when:
    - A type is not registered with the mapping registry
    - An entity has no id value
    - put() is called with a keyspace or id that disagrees with the object
    """

    def __init__(self, message: str, type_name: Optional[str] = None) -> None:
        super().__init__(message, code="MAPPING_ERROR", details={"type_name": type_name})
        self.type_name = type_name


class CodecError(KvGraphError):
    """A scalar value could not be converted to or from bytes."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code or "CODEC_ERROR", details=details)


class ConversionError(CodecError):
    """Scalar conversion failed at a specific property path.

    Attributes:
        path: Property path being converted
        source_type: Name of the type being converted
        cause: The underlying exception
    """

    def __init__(self, path: str, source_type: str, cause: BaseException) -> None:
        super().__init__(
            f"Cannot convert '{path}' ({source_type}): {cause}",
            code="CONVERSION_ERROR",
            details={"path": path, "source_type": source_type},
        )
        self.path = path
        self.source_type = source_type
        self.cause = cause


class NotFoundError(KvGraphError):
    """Requested root record does not exist.

    The adapter turns this into a None result; it only escapes from the
    resolver's root entry point.
    """

    def __init__(self, ref: EntityReference) -> None:
        super().__init__(
            f"No record for {ref}",
            code="NOT_FOUND",
            details={"keyspace": ref.keyspace, "id": ref.id},
        )
        self.ref = ref


class DanglingReferenceError(KvGraphError):
    """A reference-typed property points at a record that no longer exists.

    Attributes:
        ref: The missing reference
        path: Property path holding the reference
    """

    def __init__(self, ref: EntityReference, path: str) -> None:
        super().__init__(
            f"Property '{path}' references missing record {ref}",
            code="DANGLING_REFERENCE",
            details={"keyspace": ref.keyspace, "id": ref.id, "path": path},
        )
        self.ref = ref
        self.path = path


class StaleCursorError(KvGraphError):
    """A cursor state was advanced after a newer state had been issued."""

    def __init__(self, message: str, keyspace: Optional[str] = None) -> None:
        super().__init__(message, code="STALE_CURSOR", details={"keyspace": keyspace})
        self.keyspace = keyspace


class StoreError(KvGraphError):
    """Failure reported by a key-value store.

    Attributes:
        transient: Whether the store considers the failure retryable
    """

    def __init__(self, message: str, transient: bool = False) -> None:
        super().__init__(message, code="STORE_ERROR", details={"transient": transient})
        self.transient = transient


class StoreConnectionError(StoreError):
    """Connection to the store failed or is not open."""

    def __init__(self, message: str) -> None:
        super().__init__(message, transient=True)
        self.code = "STORE_CONNECTION_ERROR"


class StoreTimeoutError(StoreError):
    """Store operation timed out."""

    def __init__(self, message: str) -> None:
        super().__init__(message, transient=True)
        self.code = "STORE_TIMEOUT"
