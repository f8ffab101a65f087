"""Table identifiers, subtable tags and table-tagged keys.

Every stored byte string starts with a table prefix followed by a
subtable tag, so tables and their indexes never collide in the flat
key space of the backend:

    table_prefix || 0x00 || primary key          -> record
    table_prefix || 0x01 || b"seq"               -> auto-increment counter
    table_prefix || 0x02+i || index value || pk  -> entry of index i
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NewType

from kv_schema.domain.errors import CorruptEncodingError, KeyTableMismatchError


TableId = NewType("TableId", int)
"""Unique identifier of a record type. Becomes the namespace prefix."""

MAX_TABLE_ID = TableId((1 << 32) - 1)

# Subtable tags
RECORD_SUBTABLE = 0x00
RESERVED_SUBTABLE = 0x01
FIRST_INDEX_SUBTABLE = 0x02
MAX_INDEXES = 0xFF - FIRST_INDEX_SUBTABLE + 1

COUNTER_SENTINEL = b"seq"

# Table ids below this fit in a single prefix byte
_SINGLE_BYTE_LIMIT = 0x80


def encode_table_prefix(table_id: int) -> bytes:
    """Encode a table id as an order-preserving, prefix-free tag.

    Ids below 128 take one byte. Larger ids are written as a length byte
    with the high bit set followed by the minimal big-endian bytes, so a
    longer id always sorts after a shorter one and no tag is a prefix of
    another.

    Example:
        >>> encode_table_prefix(5)
        b'\\x05'
        >>> encode_table_prefix(300)
        b'\\x82\\x01,'
    """
    if not 0 <= table_id <= MAX_TABLE_ID:
        raise ValueError(f"table_id must be in [0, {MAX_TABLE_ID}], got {table_id}")
    if table_id < _SINGLE_BYTE_LIMIT:
        return bytes([table_id])
    raw = table_id.to_bytes((table_id.bit_length() + 7) // 8, byteorder="big")
    return bytes([_SINGLE_BYTE_LIMIT | len(raw)]) + raw


def decode_table_prefix(data: bytes, offset: int = 0) -> tuple[TableId, int]:
    """Decode a table prefix. Returns (table_id, next_offset)."""
    if offset >= len(data):
        raise CorruptEncodingError("Truncated table prefix", offset)
    head = data[offset]
    if head < _SINGLE_BYTE_LIMIT:
        return TableId(head), offset + 1
    length = head & ~_SINGLE_BYTE_LIMIT
    end = offset + 1 + length
    if length == 0 or length > 4 or end > len(data):
        raise CorruptEncodingError("Malformed table prefix", offset)
    return TableId(int.from_bytes(data[offset + 1 : end], byteorder="big")), end


@dataclass(frozen=True, order=True)
class TableKey:
    """A primary key value tagged with the table that issued it.

    The tag is checked whenever the key is handed to a repository, so a
    key from one table can never address a record of another table.

    Attributes:
        table_id: Table the key belongs to
        values: Ordered key components

    Example:
        >>> key = TableKey(TableId(1), (42,))
        >>> key.ensure_table(TableId(1))
        >>> key.scalar
        42
    """

    table_id: TableId
    values: tuple[Any, ...]

    def __post_init__(self) -> None:
        """Normalise the component container to a tuple."""
        if not isinstance(self.values, tuple):
            object.__setattr__(self, "values", tuple(self.values))

    def ensure_table(self, expected: TableId) -> None:
        """Raise KeyTableMismatchError unless the key belongs to `expected`."""
        if self.table_id != expected:
            raise KeyTableMismatchError(expected=expected, actual=self.table_id)

    @property
    def scalar(self) -> Any:
        """The single component of a one-component key."""
        if len(self.values) != 1:
            raise ValueError(f"Key has {len(self.values)} components, not 1")
        return self.values[0]

    def __repr__(self) -> str:
        inner = ", ".join(repr(v) for v in self.values)
        return f"TableKey({self.table_id}:{inner})"
