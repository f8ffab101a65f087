"""Unit tests for the Schema table registry."""

from __future__ import annotations

import pytest

from kv_schema.domain.entities import (
    ForeignKeyDefinition,
    KeyComponent,
    PrimaryKeyDescriptor,
    Schema,
    TableDescriptor,
)
from kv_schema.domain.errors import SchemaViolationError
from kv_schema.domain.value_objects import KeyType, TableId


@pytest.mark.unit
class TestSchema:
    """Tests for cross-table validation and lookup."""

    def test_lookup(self, schema: Schema, users_table: TableDescriptor) -> None:
        """Tables are found by name and id."""
        assert schema.table("users") is users_table
        assert schema.table_by_id(TableId(1)) is users_table
        assert "orders" in schema
        assert len(schema) == 2
        assert {t.name for t in schema} == {"users", "orders"}

    def test_unknown_table(self, schema: Schema) -> None:
        """Unknown names and ids are schema violations."""
        with pytest.raises(SchemaViolationError):
            schema.table("missing")
        with pytest.raises(SchemaViolationError):
            schema.table_by_id(TableId(99))

    def test_duplicate_table_id(self, users_table: TableDescriptor) -> None:
        """Two tables cannot share a namespace prefix."""
        clash = TableDescriptor("other", TableId(1), PrimaryKeyDescriptor.auto_increment())
        with pytest.raises(SchemaViolationError, match="share table id"):
            Schema([users_table, clash])

    def test_duplicate_table_name(self, users_table: TableDescriptor) -> None:
        """Table names are unique."""
        clash = TableDescriptor("users", TableId(9), PrimaryKeyDescriptor.auto_increment())
        with pytest.raises(SchemaViolationError, match="Duplicate table name"):
            Schema([users_table, clash])

    def test_foreign_key_target_missing(self, orders_table: TableDescriptor) -> None:
        """Foreign keys must reference a registered table."""
        with pytest.raises(SchemaViolationError, match="unknown table"):
            Schema([orders_table])

    def test_foreign_key_shape_mismatch(self, users_table: TableDescriptor) -> None:
        """The referencing field must have the target's key shape."""
        bad = TableDescriptor(
            "posts",
            TableId(3),
            PrimaryKeyDescriptor.fields(KeyComponent("id", KeyType.UINT32)),
            foreign_keys=(ForeignKeyDefinition("author", TableId(1), (KeyType.UINT32,)),),
        )
        with pytest.raises(SchemaViolationError, match="shape"):
            Schema([users_table, bad])
