"""Database - one repository per table over a shared key space.

Usage:
    from kv_schema.application import Database

    db = Database(Schema([users, orders]), InMemoryStorage())
    user_key = db.table("users").insert({"name": "abc", "age": 42})
    db.table("orders").insert({"user": user_key.scalar, "number": 1, "total": 10})

    order = db.table("orders").get((user_key.scalar, 1))
    db.resolve(order["user"], "orders", "user")
"""

from __future__ import annotations

from typing import Any, Callable

from kv_schema.adapters.outbound.pydantic_serializer import PydanticRecordSerializer
from kv_schema.application.record_repository import RecordRepository
from kv_schema.domain.entities import Schema, TableDescriptor
from kv_schema.domain.services import SequenceAllocator
from kv_schema.infrastructure.metrics import MetricsRegistry
from kv_schema.ports.outbound import RecordSerializer, Storage


SerializerFactory = Callable[[TableDescriptor], RecordSerializer]


def default_serializer_factory(descriptor: TableDescriptor) -> RecordSerializer:
    """Dict records typed after each table's key, index and foreign-key fields."""
    return PydanticRecordSerializer.for_table(descriptor)


class Database:
    """Entry point bundling a schema, a backend and its repositories.

    All repositories share the backend and a single SequenceAllocator, so
    auto-increment keys stay unique however many handles a process holds
    on a table through this object.
    """

    def __init__(
        self,
        schema: Schema,
        storage: Storage,
        serializer_factory: SerializerFactory | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """Initialize the database.

        Args:
            schema: Validated set of tables
            storage: Backend shared by every table
            serializer_factory: Builds the record serializer of each table
            metrics: Metrics registry (defaults to the process-wide one)
        """
        self._schema = schema
        self._storage = storage
        self._sequence = SequenceAllocator(storage)
        factory = serializer_factory or default_serializer_factory
        self._repositories: dict[str, RecordRepository[Any]] = {
            table.name: RecordRepository(
                table,
                storage,
                factory(table),
                sequence=self._sequence,
                metrics=metrics,
            )
            for table in schema
        }

    @property
    def schema(self) -> Schema:
        return self._schema

    @property
    def storage(self) -> Storage:
        return self._storage

    @property
    def sequence(self) -> SequenceAllocator:
        return self._sequence

    def table(self, name: str) -> RecordRepository[Any]:
        """Repository of the named table.

        Raises:
            SchemaViolationError: If the schema has no such table.
        """
        self._schema.table(name)
        return self._repositories[name]

    def resolve(self, value: Any, source_table: str, field: str) -> Any | None:
        """Follow a foreign-key value to the record it references.

        Args:
            value: Value of the foreign-key field (a TableKey of the target
                table or raw key components); None resolves to None
            source_table: Table declaring the foreign key
            field: Name of the foreign-key field

        Returns:
            The referenced record, or None if the value is empty or the
            target record does not exist.

        Raises:
            SchemaViolationError: If `field` is not a foreign key of the table.
            KeyTableMismatchError: If a TableKey of another table is passed.
        """
        fk = self._schema.table(source_table).foreign_key(field)
        if value is None:
            return None
        target = self._schema.table_by_id(fk.references)
        return self._repositories[target.name].get(target.coerce_key(value))
