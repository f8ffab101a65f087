"""Unit tests for domain value objects - identifiers."""

from __future__ import annotations

import pytest

from kv_schema.domain.errors import CorruptEncodingError, KeyTableMismatchError
from kv_schema.domain.value_objects import (
    MAX_TABLE_ID,
    TableId,
    TableKey,
    decode_table_prefix,
    encode_table_prefix,
)


@pytest.mark.unit
class TestTablePrefix:
    """Tests for the table-id namespace tag."""

    def test_small_ids_take_one_byte(self) -> None:
        """Ids below 128 are a single byte."""
        assert encode_table_prefix(0) == b"\x00"
        assert encode_table_prefix(127) == b"\x7f"

    def test_large_ids_carry_length(self) -> None:
        """Larger ids are a length byte plus minimal big-endian bytes."""
        assert encode_table_prefix(128) == b"\x81\x80"
        assert encode_table_prefix(300) == b"\x82\x01\x2c"
        assert encode_table_prefix(MAX_TABLE_ID) == b"\x84\xff\xff\xff\xff"

    def test_order_and_prefix_freedom(self) -> None:
        """Prefixes sort like ids and none is a prefix of another."""
        ids = [0, 1, 127, 128, 255, 256, 65535, 65536, MAX_TABLE_ID]
        prefixes = [encode_table_prefix(i) for i in ids]
        assert prefixes == sorted(prefixes)
        for a in prefixes:
            for b in prefixes:
                if a != b:
                    assert not b.startswith(a)

    def test_out_of_range(self) -> None:
        """Ids outside 0..2^32-1 are rejected."""
        with pytest.raises(ValueError):
            encode_table_prefix(-1)
        with pytest.raises(ValueError):
            encode_table_prefix(MAX_TABLE_ID + 1)

    def test_decode(self) -> None:
        """Prefixes decode back with the next offset."""
        data = encode_table_prefix(300) + b"\x00rest"
        table_id, offset = decode_table_prefix(data)
        assert table_id == TableId(300)
        assert data[offset:] == b"\x00rest"

    def test_decode_truncated(self) -> None:
        """A length byte promising more bytes than present is corrupt."""
        with pytest.raises(CorruptEncodingError):
            decode_table_prefix(b"\x83\x01")
        with pytest.raises(CorruptEncodingError):
            decode_table_prefix(b"")


@pytest.mark.unit
class TestTableKey:
    """Tests for table-tagged keys."""

    def test_values_normalised_to_tuple(self) -> None:
        """Lists become tuples so keys stay hashable."""
        key = TableKey(TableId(1), [1, "a"])  # type: ignore[arg-type]
        assert key.values == (1, "a")
        assert hash(key) == hash(TableKey(TableId(1), (1, "a")))

    def test_ensure_table(self) -> None:
        """A key used against another table is rejected."""
        key = TableKey(TableId(1), (5,))
        key.ensure_table(TableId(1))
        with pytest.raises(KeyTableMismatchError) as exc_info:
            key.ensure_table(TableId(2))
        assert exc_info.value.expected == 2
        assert exc_info.value.actual == 1

    def test_scalar(self) -> None:
        """Single-component keys expose their value."""
        assert TableKey(TableId(1), (42,)).scalar == 42
        with pytest.raises(ValueError):
            _ = TableKey(TableId(1), (1, 2)).scalar

    def test_ordering(self) -> None:
        """Keys of one table order by their components."""
        keys = [TableKey(TableId(1), (v,)) for v in (3, 1, 2)]
        assert [k.scalar for k in sorted(keys)] == [1, 2, 3]
