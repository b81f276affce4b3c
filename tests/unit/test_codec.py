"""
Unit tests for the default scalar codec.

Tests cover:
- Text encodings of built-in scalar types
- Enum and temporal conversions
- Error reporting
- Custom converters
"""

import uuid
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum, IntEnum

import pytest

from kvgraph.convert.codec import DefaultScalarCodec, ScalarCodec
from kvgraph.errors import CodecError


class Color(Enum):
    RED = "r"
    GREEN = "g"


class Priority(IntEnum):
    LOW = 1
    HIGH = 2


class Point:
    def __init__(self, x, y):
        self.x = x
        self.y = y


class TestDefaultScalarCodec:
    """Tests for DefaultScalarCodec."""

    @pytest.fixture
    def codec(self):
        return DefaultScalarCodec()

    def test_satisfies_protocol(self, codec):
        """The default codec is a ScalarCodec."""
        assert isinstance(codec, ScalarCodec)

    @pytest.mark.parametrize(
        "value,declared,encoded",
        [
            ("rand", str, b"rand"),
            ("", str, b""),
            (42, int, b"42"),
            (-7, int, b"-7"),
            (1.5, float, b"1.5"),
            (True, bool, b"1"),
            (False, bool, b"0"),
            (Decimal("10.25"), Decimal, b"10.25"),
            (b"\x00\x01", bytes, b"\x00\x01"),
            (date(2020, 1, 31), date, b"2020-01-31"),
            (time(13, 5, 7), time, b"13:05:07"),
        ],
    )
    def test_encode_decode(self, codec, value, declared, encoded):
        """Scalars are stored as text and read back unchanged."""
        assert codec.encode(value, declared) == encoded
        assert codec.decode(encoded, declared) == value

    def test_datetime_iso(self, codec):
        """Datetimes keep their timezone."""
        value = datetime(2021, 6, 1, 12, 30, tzinfo=timezone.utc)

        encoded = codec.encode(value, datetime)

        assert encoded == b"2021-06-01T12:30:00+00:00"
        assert codec.decode(encoded, datetime) == value

    def test_uuid(self, codec):
        """UUIDs use their canonical text form."""
        value = uuid.UUID("12345678-1234-5678-1234-567812345678")

        encoded = codec.encode(value, uuid.UUID)

        assert encoded == b"12345678-1234-5678-1234-567812345678"
        assert codec.decode(encoded, uuid.UUID) == value

    def test_enum_by_name(self, codec):
        """Enums are stored by member name, not value."""
        assert codec.encode(Color.GREEN, Color) == b"GREEN"
        assert codec.decode(b"GREEN", Color) is Color.GREEN

    def test_int_enum_by_name(self, codec):
        """Int-valued enums are also stored by name."""
        assert codec.encode(Priority.HIGH, Priority) == b"HIGH"
        assert codec.decode(b"HIGH", Priority) is Priority.HIGH

    def test_bool_accepts_true(self, codec):
        """Boolean reads accept 'true' as well as '1'."""
        assert codec.decode(b"true", bool) is True
        assert codec.decode(b"TRUE", bool) is True
        assert codec.decode(b"no", bool) is False

    def test_object_declared_uses_runtime_type(self, codec):
        """Undeclared values are encoded by their runtime type."""
        assert codec.encode(12, object) == b"12"
        assert codec.decode(b"12", object) == "12"

    def test_bad_int_raises(self, codec):
        """Unparseable numbers raise CodecError."""
        with pytest.raises(CodecError, match="Cannot decode"):
            codec.decode(b"twelve", int)

    def test_unknown_enum_member_raises(self, codec):
        """Unknown enum names raise CodecError."""
        with pytest.raises(CodecError):
            codec.decode(b"BLUE", Color)

    def test_bad_decimal_raises(self, codec):
        """Invalid decimals raise CodecError."""
        with pytest.raises(CodecError):
            codec.decode(b"1,5", Decimal)

    def test_no_converter_raises(self, codec):
        """Types without a converter cannot be encoded."""
        assert not codec.can_convert(Point)
        with pytest.raises(CodecError, match="No converter"):
            codec.encode(Point(1, 2), Point)
        with pytest.raises(CodecError, match="No converter"):
            codec.decode(b"1,2", Point)

    def test_register_converter(self, codec):
        """Custom converters extend the codec."""
        codec.register_converter(
            Point,
            lambda p: f"{p.x},{p.y}".encode("utf-8"),
            lambda d, t: t(*(int(v) for v in d.decode("utf-8").split(","))),
        )

        assert codec.can_convert(Point)
        assert codec.encode(Point(1, 2), Point) == b"1,2"
        decoded = codec.decode(b"3,4", Point)
        assert (decoded.x, decoded.y) == (3, 4)
