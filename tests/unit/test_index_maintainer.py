"""Unit tests for the IndexMaintainer."""

from __future__ import annotations

import pytest

from kv_schema.domain.entities import TableDescriptor
from kv_schema.domain.services import IndexMaintainer


@pytest.mark.unit
class TestIndexMaintainer:
    """Tests for index delta planning."""

    @pytest.fixture
    def maintainer(self, users_table: TableDescriptor) -> IndexMaintainer:
        """Maintainer for the users table."""
        return IndexMaintainer(users_table)

    def test_insert_puts_every_index(
        self, maintainer: IndexMaintainer, users_table: TableDescriptor
    ) -> None:
        """An insert writes one entry per index."""
        key = users_table.table_key(1)
        delta = maintainer.plan(key, None, {"age": 5, "email": "a@x"})

        assert [e.index_name for e in delta.puts] == ["by_age", "by_email"]
        assert delta.deletes == []
        assert delta.puts[0].key == users_table.encode_index_entry("by_age", 5, key)
        assert delta.puts[0].value == users_table.encode_key_bytes(key)

    def test_delete_removes_every_index(
        self, maintainer: IndexMaintainer, users_table: TableDescriptor
    ) -> None:
        """A delete removes one entry per index."""
        key = users_table.table_key(1)
        delta = maintainer.plan(key, {"age": 5, "email": "a@x"}, None)

        assert delta.puts == []
        assert {e.index_name for e in delta.deletes} == {"by_age", "by_email"}

    def test_update_moves_changed_entries_only(
        self, maintainer: IndexMaintainer, users_table: TableDescriptor
    ) -> None:
        """Only indexes whose value changed are touched."""
        key = users_table.table_key(1)
        delta = maintainer.plan(
            key,
            {"age": 5, "email": "a@x"},
            {"age": 9, "email": "a@x"},
        )

        assert [e.key for e in delta.deletes] == [
            users_table.encode_index_entry("by_age", 5, key)
        ]
        assert [e.key for e in delta.puts] == [users_table.encode_index_entry("by_age", 9, key)]
        assert delta.unchanged == ["by_email"]

    def test_unchanged_update_is_empty(
        self, maintainer: IndexMaintainer, users_table: TableDescriptor
    ) -> None:
        """Rewriting the same indexed values needs no index writes."""
        record = {"age": 5, "email": "a@x", "name": "old"}
        delta = maintainer.plan(users_table.table_key(1), record, {**record, "name": "new"})
        assert delta.is_empty
        assert delta.unchanged == ["by_age", "by_email"]

    def test_key_change_moves_entries(
        self, maintainer: IndexMaintainer, users_table: TableDescriptor
    ) -> None:
        """Entries follow a record to a new primary key."""
        record = {"age": 5, "email": "a@x"}
        delta = maintainer.plan(
            users_table.table_key(1),
            record,
            record,
            new_key=users_table.table_key(2),
        )
        assert len(delta.deletes) == 2
        assert len(delta.puts) == 2
