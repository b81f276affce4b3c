"""
Scalar codecs for kvgraph.

A ScalarCodec turns a single scalar value into the bytes stored at one
property path, and back. The DefaultScalarCodec stores everything as UTF-8
text so records stay readable with any key-value client:

    str        -> the string itself
    bytes      -> stored unchanged
    bool       -> "1" / "0" (reads also accept "true")
    int, float -> decimal text
    Decimal    -> decimal text
    datetime, date, time -> ISO-8601 text
    UUID       -> canonical hex text
    Enum       -> member name

Invariants:
    - decode(encode(v, T), T) == v for every supported T
    - Lookups walk the declared type's MRO, so subclasses of a supported
      type (e.g. IntEnum, custom str subclasses) find a converter
    - Every failure surfaces as CodecError

How to change safely:
    - Never change the encoding of an existing type; stored records depend on it
    - Add new types through register_converter()
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable

from ..errors import CodecError

logger = logging.getLogger(__name__)

CHARSET = "utf-8"

# Enum mixin bases; an enum member is stored by name, never by its mixin value
_ENUM_MIXINS = (int, str, float)


@runtime_checkable
class ScalarCodec(Protocol):
    """Protocol for scalar converters used by the path flattener."""

    def can_convert(self, declared_type: type) -> bool:
        """Whether values of declared_type are scalars for this codec."""
        ...

    def encode(self, value: Any, declared_type: type) -> bytes:
        """Encode a value.

        Raises:
            CodecError: If the value cannot be encoded
        """
        ...

    def decode(self, data: bytes, declared_type: type) -> Any:
        """Decode bytes into a value of declared_type.

        Raises:
            CodecError: If the bytes cannot be decoded
        """
        ...


@dataclass(frozen=True)
class Converter:
    """A pair of functions converting one type to and from bytes."""

    encode: Callable[[Any], bytes]
    decode: Callable[[bytes, type], Any]


def _text(data: bytes) -> str:
    return data.decode(CHARSET)


def _decode_bool(data: bytes, _: type) -> bool:
    value = _text(data).strip()
    return value == "1" or value.lower() == "true"


def _decode_enum(data: bytes, enum_type: type) -> Enum:
    return enum_type[_text(data).strip()]


class DefaultScalarCodec:
    """Text-based codec for common Python scalar types.

    Example:
        >>> codec = DefaultScalarCodec()
        >>> codec.encode(True, bool)
        b'1'
        >>> codec.decode(b"42", int)
        42
    """

    def __init__(self) -> None:
        self._converters: Dict[type, Converter] = {
            str: Converter(lambda v: v.encode(CHARSET), lambda d, t: t(_text(d))),
            bytes: Converter(bytes, lambda d, t: bytes(d)),
            bool: Converter(lambda v: b"1" if v else b"0", _decode_bool),
            int: Converter(lambda v: str(int(v)).encode(CHARSET), lambda d, t: t(_text(d))),
            float: Converter(lambda v: repr(float(v)).encode(CHARSET), lambda d, t: t(_text(d))),
            Decimal: Converter(lambda v: str(v).encode(CHARSET), lambda d, t: t(_text(d))),
            datetime: Converter(
                lambda v: v.isoformat().encode(CHARSET),
                lambda d, t: datetime.fromisoformat(_text(d)),
            ),
            date: Converter(
                lambda v: v.isoformat().encode(CHARSET),
                lambda d, t: date.fromisoformat(_text(d)),
            ),
            time: Converter(
                lambda v: v.isoformat().encode(CHARSET),
                lambda d, t: time.fromisoformat(_text(d)),
            ),
            uuid.UUID: Converter(
                lambda v: str(v).encode(CHARSET),
                lambda d, t: uuid.UUID(_text(d)),
            ),
            Enum: Converter(lambda v: v.name.encode(CHARSET), _decode_enum),
        }

    def register_converter(
        self,
        target_type: type,
        encode: Callable[[Any], bytes],
        decode: Callable[[bytes, type], Any],
    ) -> None:
        """Register (or replace) the converter for a type.

        Args:
            target_type: Type handled by the converter (and its subclasses)
            encode: value -> bytes
            decode: (bytes, declared_type) -> value
        """
        self._converters[target_type] = Converter(encode, decode)
        logger.debug(f"Registered scalar converter for {target_type.__qualname__}")

    def _find(self, declared_type: type) -> Optional[Converter]:
        mro = getattr(declared_type, "__mro__", (declared_type,))
        if Enum in mro:
            mro = tuple(k for k in mro if k not in _ENUM_MIXINS)
        for klass in mro:
            converter = self._converters.get(klass)
            if converter is not None:
                return converter
        return None

    def can_convert(self, declared_type: type) -> bool:
        """Whether a converter exists for declared_type."""
        return self._find(declared_type) is not None

    def encode(self, value: Any, declared_type: type) -> bytes:
        """Encode a scalar value.

        When declared_type has no converter (e.g. `object`), the runtime type
        of the value is used instead.

        Raises:
            CodecError: If no converter exists or conversion fails
        """
        converter = self._find(declared_type) or self._find(type(value))
        if converter is None:
            raise CodecError(
                f"No converter for {type(value).__qualname__}",
                details={"type": type(value).__qualname__},
            )
        try:
            return converter.encode(value)
        except (TypeError, ValueError, AttributeError, UnicodeError) as e:
            raise CodecError(
                f"Cannot encode {type(value).__qualname__}: {e}",
                details={"type": type(value).__qualname__},
            ) from e

    def decode(self, data: bytes, declared_type: type) -> Any:
        """Decode bytes into declared_type.

        Undeclared (`object`) targets decode to str.

        Raises:
            CodecError: If no converter exists or conversion fails
        """
        converter = self._find(declared_type)
        if converter is None:
            if declared_type is object:
                return self.decode(data, str)
            raise CodecError(
                f"No converter for {declared_type.__qualname__}",
                details={"type": declared_type.__qualname__},
            )
        try:
            return converter.decode(data, declared_type)
        except (TypeError, ValueError, KeyError, InvalidOperation, UnicodeError) as e:
            raise CodecError(
                f"Cannot decode {data!r} as {declared_type.__qualname__}: {e}",
                details={"type": declared_type.__qualname__},
            ) from e
