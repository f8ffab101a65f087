"""Supported key component types.

Each KeyType knows how wide its fixed-width encoding is (if any) and
which Python values it accepts. The byte layout itself lives in the
key encoder; this module only describes the shapes.
"""

from __future__ import annotations

from enum import Enum


class KeyType(Enum):
    """Types that may appear in a primary key or an index value."""

    UINT8 = "uint8"
    UINT16 = "uint16"
    UINT32 = "uint32"
    UINT64 = "uint64"
    UINT128 = "uint128"
    INT8 = "int8"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    BOOL = "bool"
    FLOAT64 = "float64"
    STRING = "string"
    BYTES = "bytes"

    @property
    def is_integer(self) -> bool:
        """True for signed and unsigned integer types."""
        return self in _WIDTHS and self not in (KeyType.BOOL, KeyType.FLOAT64)

    @property
    def is_signed(self) -> bool:
        """True for signed integer types."""
        return self in _SIGNED

    @property
    def width(self) -> int | None:
        """Encoded width in bytes, or None for variable-length types."""
        return _WIDTHS.get(self)

    @property
    def bounds(self) -> tuple[int, int]:
        """Inclusive (min, max) for integer types."""
        width = _WIDTHS[self]
        bits = width * 8
        if self.is_signed:
            return -(1 << (bits - 1)), (1 << (bits - 1)) - 1
        return 0, (1 << bits) - 1

    def accepts(self, value: object) -> bool:
        """Check that a Python value has the right type and range."""
        if self is KeyType.BOOL:
            return isinstance(value, bool)
        if self is KeyType.FLOAT64:
            return isinstance(value, (int, float)) and not isinstance(value, bool)
        if self is KeyType.STRING:
            return isinstance(value, str)
        if self is KeyType.BYTES:
            return isinstance(value, (bytes, bytearray, memoryview))
        if not isinstance(value, int) or isinstance(value, bool):
            return False
        low, high = self.bounds
        return low <= value <= high


_WIDTHS: dict[KeyType, int] = {
    KeyType.UINT8: 1,
    KeyType.UINT16: 2,
    KeyType.UINT32: 4,
    KeyType.UINT64: 8,
    KeyType.UINT128: 16,
    KeyType.INT8: 1,
    KeyType.INT16: 2,
    KeyType.INT32: 4,
    KeyType.INT64: 8,
    KeyType.BOOL: 1,
    KeyType.FLOAT64: 8,
}

_SIGNED = frozenset({KeyType.INT8, KeyType.INT16, KeyType.INT32, KeyType.INT64})


KeyShape = tuple[KeyType, ...]
"""Ordered component types of a composite key."""
