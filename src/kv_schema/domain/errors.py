"""Error hierarchy for the schema and indexing runtime.

Every fallible operation raises a subclass of KvSchemaError so callers
can tell encoding, schema, lookup and backend problems apart without
inspecting messages.

Kinds:
    - CorruptEncodingError: malformed key or record bytes (never retried)
    - NotFoundError: strict update/delete of a missing record
    - BackendFailureError: the storage call itself failed
    - SchemaViolationError: invalid schema or a value that does not fit it
    - DuplicateKeyError: insert over an existing primary key
    - SequenceExhaustedError: auto-increment counter overflow
"""

from __future__ import annotations

from typing import Sequence


class KvSchemaError(Exception):
    """Base class for all kv_schema errors."""

    pass


class CorruptEncodingError(KvSchemaError):
    """A key or record byte string could not be decoded."""

    def __init__(self, message: str, offset: int | None = None) -> None:
        if offset is not None:
            message = f"{message} (at offset {offset})"
        super().__init__(message)
        self.offset = offset


class NotFoundError(KvSchemaError):
    """The target record of a strict update or delete does not exist."""

    def __init__(self, table: str, key: object) -> None:
        super().__init__(f"No record in table '{table}' for key {key!r}")
        self.table = table
        self.key = key


class BackendFailureError(KvSchemaError):
    """The underlying storage backend failed.

    Attributes:
        tier: Index of the failing tier when layered storage is in use.
        errors: Underlying exceptions collected from every failing tier.
    """

    def __init__(
        self,
        message: str,
        tier: int | None = None,
        errors: Sequence[BaseException] = (),
    ) -> None:
        if tier is not None:
            message = f"{message} (tier {tier})"
        super().__init__(message)
        self.tier = tier
        self.errors = tuple(errors)


class SchemaViolationError(KvSchemaError):
    """The schema is invalid or a value does not fit its declared shape."""

    pass


class UniqueViolationError(SchemaViolationError):
    """A unique index already holds the value for another record."""

    def __init__(self, table: str, index: str, value: object) -> None:
        super().__init__(
            f"Unique index '{index}' on table '{table}' already contains {value!r}"
        )
        self.table = table
        self.index = index
        self.value = value


class KeyTableMismatchError(SchemaViolationError):
    """A key issued for one table was used against another table."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Key belongs to table {actual}, expected table {expected}")
        self.expected = expected
        self.actual = actual


class DuplicateKeyError(KvSchemaError):
    """An insert targeted a primary key that already holds a record."""

    def __init__(self, table: str, key: object) -> None:
        super().__init__(f"Table '{table}' already contains a record for key {key!r}")
        self.table = table
        self.key = key


class SequenceExhaustedError(KvSchemaError):
    """The auto-increment counter cannot issue another key."""

    pass
