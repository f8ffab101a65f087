"""Order-preserving binary encoding for key components.

Encoded keys compare with plain byte-wise (memcmp) ordering, and the
result matches the logical ordering of the input values. Composite
keys are the concatenation of their component encodings, so tuples sort
component by component with the first component dominating.

Encoding rules:
    UINT8..UINT128  -> fixed-width big-endian
    INT8..INT64     -> fixed-width big-endian two's complement, sign bit flipped
    BOOL            -> 0x00 (False) / 0x01 (True)
    FLOAT64         -> IEEE 754 sortable transform (8 bytes).
                       NaN is rejected, -0.0 normalises to 0.0.
    STRING / BYTES  -> raw bytes (UTF-8 for strings) with every 0x00
                       escaped as 0x00 0xFF, then the terminator 0x00 0x00.
                       No encoded string is a prefix of another.

Decoding is strict: truncated input, a malformed escape sequence or
invalid UTF-8 raises CorruptEncodingError. Encoding a value that does not
fit the declared KeyType raises SchemaViolationError.
"""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass
from typing import Any, Sequence

from kv_schema.domain.errors import CorruptEncodingError, SchemaViolationError
from kv_schema.domain.value_objects import KeyShape, KeyType


ESCAPE = 0x00
ESCAPED_NUL = 0xFF
TERMINATOR = b"\x00\x00"


# =============================================================================
# Encode
# =============================================================================


def encode(value: Any, key_type: KeyType) -> bytes:
    """Encode a single key component.

    Args:
        value: The Python value to encode
        key_type: Declared type of the component

    Returns:
        Order-preserving byte encoding

    Raises:
        SchemaViolationError: If the value does not fit `key_type`
    """
    if not key_type.accepts(value):
        raise SchemaViolationError(
            f"Value {value!r} does not fit key type {key_type.value}"
        )

    if key_type is KeyType.BOOL:
        return b"\x01" if value else b"\x00"

    if key_type is KeyType.FLOAT64:
        return _encode_float(float(value))

    if key_type is KeyType.STRING:
        return _encode_bytes(value.encode("utf-8"))

    if key_type is KeyType.BYTES:
        return _encode_bytes(bytes(value))

    width = key_type.width
    assert width is not None
    if key_type.is_signed:
        # Shift into the unsigned range: same as flipping the sign bit
        value += 1 << (width * 8 - 1)
    return value.to_bytes(width, byteorder="big")


def _encode_float(val: float) -> bytes:
    """IEEE 754 sortable transform.

    Positive values get their sign bit flipped so they sort above
    negatives; negative values get every bit flipped so that more
    negative means smaller.
    """
    if math.isnan(val):
        raise SchemaViolationError("NaN cannot be used as a key")
    if val == 0.0:
        val = 0.0
    raw = bytearray(struct.pack(">d", val))
    if raw[0] & 0x80:
        for i in range(8):
            raw[i] ^= 0xFF
    else:
        raw[0] ^= 0x80
    return bytes(raw)


def _encode_bytes(raw: bytes) -> bytes:
    """Escape embedded NULs and append the terminator."""
    return raw.replace(b"\x00", bytes([ESCAPE, ESCAPED_NUL])) + TERMINATOR


def encode_tuple(values: Sequence[Any], shape: KeyShape) -> bytes:
    """Encode a composite key in declared component order.

    Raises:
        SchemaViolationError: If the number of values differs from the shape
    """
    if len(values) != len(shape):
        raise SchemaViolationError(
            f"Key has {len(values)} components, shape expects {len(shape)}"
        )
    return b"".join(encode(value, key_type) for value, key_type in zip(values, shape))


# =============================================================================
# Decode
# =============================================================================


def decode(data: bytes, key_type: KeyType, offset: int = 0) -> tuple[Any, int]:
    """Decode one component starting at `offset`.

    Returns:
        (value, next_offset)

    Raises:
        CorruptEncodingError: On truncated or malformed input
    """
    if key_type is KeyType.STRING:
        raw, end = _decode_bytes(data, offset)
        try:
            return raw.decode("utf-8"), end
        except UnicodeDecodeError as exc:
            raise CorruptEncodingError("Invalid UTF-8 in string key", offset) from exc

    if key_type is KeyType.BYTES:
        return _decode_bytes(data, offset)

    width = key_type.width
    assert width is not None
    end = offset + width
    if end > len(data):
        raise CorruptEncodingError(
            f"Truncated {key_type.value}: need {width} bytes, have {len(data) - offset}",
            offset,
        )
    chunk = data[offset:end]

    if key_type is KeyType.BOOL:
        if chunk[0] > 1:
            raise CorruptEncodingError(f"Invalid boolean byte 0x{chunk[0]:02X}", offset)
        return chunk[0] == 1, end

    if key_type is KeyType.FLOAT64:
        return _decode_float(chunk), end

    value = int.from_bytes(chunk, byteorder="big")
    if key_type.is_signed:
        value -= 1 << (width * 8 - 1)
    return value, end


def _decode_float(chunk: bytes) -> float:
    """Reverse the IEEE sortable transform."""
    raw = bytearray(chunk)
    if raw[0] & 0x80:
        raw[0] ^= 0x80
    else:
        for i in range(8):
            raw[i] ^= 0xFF
    return struct.unpack(">d", bytes(raw))[0]


def _decode_bytes(data: bytes, offset: int) -> tuple[bytes, int]:
    """Decode an escaped, terminated byte string.

    0x00 0xFF -> literal 0x00
    0x00 0x00 -> end of string
    """
    result = bytearray()
    i = offset
    while True:
        nul = data.find(b"\x00", i)
        if nul < 0 or nul + 1 >= len(data):
            raise CorruptEncodingError("Unterminated string key", offset)
        result += data[i:nul]
        marker = data[nul + 1]
        if marker == 0x00:
            return bytes(result), nul + 2
        if marker != ESCAPED_NUL:
            raise CorruptEncodingError(
                f"Invalid escape sequence 0x00 0x{marker:02X}", nul
            )
        result.append(0x00)
        i = nul + 2


def decode_tuple(
    data: bytes,
    shape: KeyShape,
    offset: int = 0,
) -> tuple[tuple[Any, ...], int]:
    """Decode a composite key. Returns (values, next_offset)."""
    values = []
    for key_type in shape:
        value, offset = decode(data, key_type, offset)
        values.append(value)
    return tuple(values), offset


# =============================================================================
# Range helpers
# =============================================================================


def prefix_successor(prefix: bytes) -> bytes | None:
    """Smallest byte string greater than every string starting with `prefix`.

    Returns None when no such string exists (empty or all-0xFF prefix),
    meaning the range is unbounded above.

    Example:
        >>> prefix_successor(b"ab")
        b'ac'
        >>> prefix_successor(b"a\\xff")
        b'b'
    """
    stripped = prefix.rstrip(b"\xff")
    if not stripped:
        return None
    return stripped[:-1] + bytes([stripped[-1] + 1])


@dataclass(frozen=True)
class KeyCodec:
    """Encoder/decoder bound to one composite key shape.

    Attributes:
        shape: Ordered component types
    """

    shape: KeyShape

    def __post_init__(self) -> None:
        """Reject empty shapes."""
        if not self.shape:
            raise SchemaViolationError("A key shape needs at least one component")

    def encode(self, values: Sequence[Any]) -> bytes:
        """Encode a tuple of component values."""
        return encode_tuple(values, self.shape)

    def decode(self, data: bytes, offset: int = 0) -> tuple[tuple[Any, ...], int]:
        """Decode a tuple starting at `offset`. Returns (values, next_offset)."""
        return decode_tuple(data, self.shape, offset)

    def decode_exact(self, data: bytes, offset: int = 0) -> tuple[Any, ...]:
        """Decode a tuple that must extend exactly to the end of `data`."""
        values, end = self.decode(data, offset)
        if end != len(data):
            raise CorruptEncodingError(
                f"{len(data) - end} trailing bytes after key", end
            )
        return values
