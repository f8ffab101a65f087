"""Schema: the registry of every table sharing one key space.

The schema is where cross-table rules are enforced, once, before any
data operation runs:

    - table ids are unique (they are namespace prefixes)
    - table names are unique
    - every foreign key points at a registered table and matches the
      shape of that table's primary key
"""

from __future__ import annotations

from typing import Iterable, Iterator

from kv_schema.domain.entities.table_descriptor import TableDescriptor
from kv_schema.domain.errors import SchemaViolationError
from kv_schema.domain.value_objects import TableId


class Schema:
    """Immutable collection of validated table descriptors.

    Example:
        >>> schema = Schema([users, orders])
        >>> schema.table("users").table_id
        1
    """

    def __init__(self, tables: Iterable[TableDescriptor]) -> None:
        """Register and cross-validate the given tables.

        Raises:
            SchemaViolationError: On duplicate ids/names or bad foreign keys.
        """
        self._by_name: dict[str, TableDescriptor] = {}
        self._by_id: dict[TableId, TableDescriptor] = {}

        for table in tables:
            if table.table_id in self._by_id:
                other = self._by_id[table.table_id]
                raise SchemaViolationError(
                    f"Tables '{other.name}' and '{table.name}' share table id {table.table_id}"
                )
            if table.name in self._by_name:
                raise SchemaViolationError(f"Duplicate table name '{table.name}'")
            self._by_id[table.table_id] = table
            self._by_name[table.name] = table

        for table in self._by_name.values():
            for fk in table.foreign_keys:
                target = self._by_id.get(fk.references)
                if target is None:
                    raise SchemaViolationError(
                        f"Foreign key '{table.name}.{fk.field}' references "
                        f"unknown table id {fk.references}"
                    )
                if tuple(fk.key_types) != target.key.shape:
                    raise SchemaViolationError(
                        f"Foreign key '{table.name}.{fk.field}' shape does not match "
                        f"primary key of '{target.name}'"
                    )

    def table(self, name: str) -> TableDescriptor:
        """Look up a table by name."""
        try:
            return self._by_name[name]
        except KeyError:
            raise SchemaViolationError(f"Unknown table '{name}'") from None

    def table_by_id(self, table_id: TableId) -> TableDescriptor:
        """Look up a table by id."""
        try:
            return self._by_id[table_id]
        except KeyError:
            raise SchemaViolationError(f"Unknown table id {table_id}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[TableDescriptor]:
        return iter(self._by_name.values())

    def __len__(self) -> int:
        return len(self._by_name)
