"""Record Repository - typed CRUD and index queries for one table.

The repository is where the descriptor, the storage backend, the record
serializer and the index maintainer meet. Every mutation runs the same
pipeline:

    encode key -> read previous record -> write/delete record
               -> plan index delta -> apply delta

When the backend implements AtomicStorage the record change and its
index delta go to the backend as a single batch. Otherwise a written
record goes in before its index delta and a deleted record goes out
after it, so an interruption can leave a stale or missing index entry
but never an index entry pointing at a record that does not exist.

Usage:
    repo = RecordRepository(users, InMemoryStorage(), PydanticRecordSerializer(User))
    key = repo.insert(User(name="abc", age=42))
    repo.get(key)
    repo.get_by_index("by_age", 42)

Thread Safety:
    Mutations of one repository are serialised by a reentrant lock, so
    the duplicate-key and unique-index checks and the writes they guard
    happen together. Auto-increment keys come from a SequenceAllocator,
    which is safe to share between repositories.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Any, Generic, Iterable, Iterator, TypeVar

from kv_schema.domain.entities import KeyStrategy, TableDescriptor
from kv_schema.domain.errors import (
    BackendFailureError,
    DuplicateKeyError,
    KvSchemaError,
    NotFoundError,
    SchemaViolationError,
    UniqueViolationError,
)
from kv_schema.domain.services import IndexDelta, IndexMaintainer, SequenceAllocator
from kv_schema.domain.value_objects import TableKey
from kv_schema.infrastructure.logging import get_logger
from kv_schema.infrastructure.metrics import MetricsRegistry, get_metrics
from kv_schema.infrastructure.tracing import trace_span
from kv_schema.ports.outbound import AtomicStorage, RecordSerializer, Storage


R = TypeVar("R")

logger = get_logger(__name__)


class RecordRepository(Generic[R]):
    """CRUD, scans and index lookups for the records of one table.

    Keys may be passed as TableKey values of this table or as raw
    component values (a scalar for single-component keys, a tuple
    otherwise). A TableKey issued by another table raises
    KeyTableMismatchError.
    """

    def __init__(
        self,
        descriptor: TableDescriptor,
        storage: Storage,
        serializer: RecordSerializer,
        sequence: SequenceAllocator | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """Initialize the repository.

        Args:
            descriptor: The table served by this repository
            storage: Backend holding records, index entries and counters
            serializer: Turns records into bytes and back
            sequence: Counter allocator (shared across tables by Database)
            metrics: Metrics registry (defaults to the process-wide one)
        """
        self._descriptor = descriptor
        self._storage = storage
        self._serializer = serializer
        self._sequence = sequence or SequenceAllocator(storage)
        self._metrics = metrics or get_metrics()
        self._maintainer = IndexMaintainer(descriptor)
        self._atomic = isinstance(storage, AtomicStorage)
        self._lock = threading.RLock()
        self._log = logger.bind(table=descriptor.name)

    @property
    def descriptor(self) -> TableDescriptor:
        """The table this repository serves."""
        return self._descriptor

    @property
    def storage(self) -> Storage:
        return self._storage

    # Point operations

    def insert(self, record: R) -> TableKey:
        """Store a new record.

        Auto-increment tables issue the next key from the table counter;
        other tables take the key from the record.

        Returns:
            The primary key the record is stored under.

        Raises:
            DuplicateKeyError: If a record already exists under the key.
            UniqueViolationError: If a unique index already holds a value.
            SchemaViolationError: If the record does not fit the table.
        """
        with self._operation("insert"):
            raw = self._prepare(record)
            with self._lock:
                if self._descriptor.key.strategy is KeyStrategy.AUTO_INCREMENT:
                    self._check_unique(record, exclude=None)
                    key = self._descriptor.table_key(self._sequence.allocate(self._descriptor))
                    self._metrics.sequence_allocations_total.labels(
                        table=self._descriptor.name
                    ).inc()
                else:
                    key = self._descriptor.extract_key(record)
                    if self._read(self._descriptor.encode_primary_key(key)) is not None:
                        raise DuplicateKeyError(self._descriptor.name, key)
                    self._check_unique(record, exclude=key)
                self._write(key, None, record, raw)
            self._log.debug("record_inserted", key=repr(key))
            return key

    def put(self, record: R) -> TableKey:
        """Insert or replace the record stored under the record's own key.

        Raises:
            SchemaViolationError: On auto-increment tables, whose keys do
                not come from records.
            UniqueViolationError: If a unique index already holds a value.
        """
        with self._operation("put"):
            raw = self._prepare(record)
            key = self._descriptor.extract_key(record)
            with self._lock:
                old = self._load(key)
                self._check_unique(record, exclude=key)
                self._write(key, old, record, raw)
            self._log.debug("record_put", key=repr(key), replaced=old is not None)
            return key

    def get(self, key: TableKey | Any) -> R | None:
        """Look up a record by primary key. Returns None if absent."""
        with self._operation("get"):
            return self._load(self._descriptor.coerce_key(key))

    def update(self, key: TableKey | Any, record: R, strict: bool = False) -> bool:
        """Replace the record stored under `key`.

        Index entries whose value changed are moved; the others are left
        untouched.

        Args:
            key: Primary key of the record to replace
            record: The new record
            strict: Raise NotFoundError instead of returning False

        Returns:
            True if a record was replaced, False if none existed.

        Raises:
            NotFoundError: If strict and no record exists under `key`.
            SchemaViolationError: If the new record's own key differs from `key`.
        """
        with self._operation("update"):
            key = self._descriptor.coerce_key(key)
            raw = self._prepare(record)
            if self._descriptor.key.strategy is not KeyStrategy.AUTO_INCREMENT:
                own_key = self._descriptor.extract_key(record)
                if own_key != key:
                    raise SchemaViolationError(
                        f"Updated record of '{self._descriptor.name}' has key {own_key!r}, "
                        f"expected {key!r}"
                    )
            with self._lock:
                old = self._load(key)
                if old is None:
                    if strict:
                        raise NotFoundError(self._descriptor.name, key)
                    return False
                self._check_unique(record, exclude=key)
                self._write(key, old, record, raw)
            self._log.debug("record_updated", key=repr(key))
            return True

    def delete(self, key: TableKey | Any, strict: bool = False) -> R | None:
        """Remove a record and its index entries.

        Returns:
            The removed record, or None if none existed.

        Raises:
            NotFoundError: If strict and no record exists under `key`.
        """
        with self._operation("delete"):
            key = self._descriptor.coerce_key(key)
            with self._lock:
                old = self._load(key)
                if old is None:
                    if strict:
                        raise NotFoundError(self._descriptor.name, key)
                    return None
                self._write(key, old, None, None)
            self._log.debug("record_deleted", key=repr(key))
            return old

    # Index queries

    def get_by_index(self, index_name: str, value: Any) -> list[TableKey]:
        """Keys of every record whose indexed value equals `value`.

        Keys come back in primary-key order.
        """
        with self._operation("get_by_index", index=index_name):
            return list(self._index_lookup(index_name, value))

    def get_one_by_index(self, index_name: str, value: Any) -> TableKey | None:
        """First key (in primary-key order) holding `value`, or None."""
        with self._operation("get_one_by_index", index=index_name):
            return next(self._index_lookup(index_name, value), None)

    def _index_lookup(self, index_name: str, value: Any) -> Iterator[TableKey]:
        prefix = self._descriptor.encode_index_value(index_name, value)
        for _, pointer in self._scan(prefix):
            yield self._descriptor.decode_key_bytes(pointer)

    def range_by_index(
        self,
        index_name: str,
        lower: Any | None = None,
        upper: Any | None = None,
    ) -> Iterator[tuple[Any, TableKey]]:
        """Iterate index entries with lower <= value < upper.

        Either bound may be None (unbounded). Entries come in index order,
        ties in primary-key order. The iterator is lazy.

        Yields:
            (value, key) pairs; value is a scalar for single-field indexes
            and a tuple otherwise.
        """
        began = time.perf_counter()
        descriptor = self._descriptor
        single = len(descriptor.index(index_name).fields) == 1
        start = descriptor.encode_index_value(index_name, lower) if lower is not None else None
        stop = descriptor.encode_index_value(index_name, upper) if upper is not None else None

        def entries() -> Iterator[tuple[Any, TableKey]]:
            for entry_key, _ in self._bounded_scan(
                descriptor.index_prefix(index_name), start, stop
            ):
                values, key = descriptor.decode_index_entry(index_name, entry_key)
                yield (values[0] if single else values), key

        return self._instrumented("range_by_index", entries(), began)

    # Scans

    def scan(
        self,
        lower: Any | None = None,
        upper: Any | None = None,
    ) -> Iterator[tuple[TableKey, R]]:
        """Iterate records with lower <= key < upper in key order.

        Bounds may be full keys or leading runs of key components.
        """
        began = time.perf_counter()
        rows = self._key_range(lower, upper)

        def records() -> Iterator[tuple[TableKey, R]]:
            for raw_key, raw in rows:
                yield self._descriptor.decode_primary_key(raw_key), self._serializer.decode(raw)

        return self._instrumented("scan", records(), began)

    def keys(self, lower: Any | None = None, upper: Any | None = None) -> Iterator[TableKey]:
        """Iterate primary keys with lower <= key < upper, without decoding records."""
        began = time.perf_counter()
        rows = self._key_range(lower, upper)

        def table_keys() -> Iterator[TableKey]:
            for raw_key, _ in rows:
                yield self._descriptor.decode_primary_key(raw_key)

        return self._instrumented("keys", table_keys(), began)

    def last_key(self) -> TableKey | None:
        """Greatest primary key in the table, or None if it is empty."""
        with self._operation("last_key"):
            last: bytes | None = None
            for raw_key, _ in self._scan(self._descriptor.primary_key_prefix()):
                last = raw_key
            return None if last is None else self._descriptor.decode_primary_key(last)

    def count(self) -> int:
        """Number of records in the table."""
        with self._operation("count"):
            return sum(1 for _ in self._scan(self._descriptor.primary_key_prefix()))

    def _key_range(self, lower: Any | None, upper: Any | None) -> Iterator[tuple[bytes, bytes]]:
        descriptor = self._descriptor
        start = descriptor.encode_key_bound(lower) if lower is not None else None
        stop = descriptor.encode_key_bound(upper) if upper is not None else None
        return self._bounded_scan(descriptor.primary_key_prefix(), start, stop)

    def _bounded_scan(
        self,
        prefix: bytes,
        start: bytes | None,
        stop: bytes | None,
    ) -> Iterator[tuple[bytes, bytes]]:
        """Prefix scan restricted to start <= key < stop."""
        for key, value in self._scan(prefix):
            if start is not None and key < start:
                continue
            if stop is not None and key >= stop:
                return
            yield key, value

    # Internals

    def _prepare(self, record: R) -> bytes:
        """Validate a record against the table and serialize it."""
        raw = self._serializer.encode(record)
        for fk in self._descriptor.foreign_keys:
            self._descriptor.foreign_key_value(fk.field, record)
        for idx in self._descriptor.indexes:
            self._descriptor.encode_index_value(
                idx.name, self._descriptor.index_values(idx.name, record)
            )
        return raw

    def _check_unique(self, record: R, exclude: TableKey | None) -> None:
        """Raise UniqueViolationError if another live record holds a unique value."""
        descriptor = self._descriptor
        for idx in descriptor.indexes:
            if not idx.unique:
                continue
            values = descriptor.index_values(idx.name, record)
            for holder in self._index_lookup(idx.name, values):
                if holder == exclude:
                    continue
                current = self._load(holder)
                # Entries left behind by an interrupted write do not count
                if current is not None and descriptor.index_values(idx.name, current) == values:
                    raise UniqueViolationError(
                        descriptor.name,
                        idx.name,
                        values[0] if len(values) == 1 else values,
                    )

    def _load(self, key: TableKey) -> R | None:
        raw = self._read(self._descriptor.encode_primary_key(key))
        return None if raw is None else self._serializer.decode(raw)

    def _write(self, key: TableKey, old: R | None, new: R | None, raw: bytes | None) -> None:
        """Apply a record change and the index delta it implies."""
        delta = self._maintainer.plan(key, old, new)
        record_key = self._descriptor.encode_primary_key(key)

        if self._atomic:
            puts: list[tuple[bytes, bytes]] = []
            deletes: list[bytes] = []
            if raw is not None:
                puts.append((record_key, raw))
            else:
                deletes.append(record_key)
            puts.extend((entry.key, entry.value) for entry in delta.puts)
            deletes.extend(entry.key for entry in delta.deletes)
            batch = self._storage.apply_batch  # type: ignore[attr-defined]
            self._backend("apply_batch", batch, puts, deletes)
        else:
            # Index entries only ever point at records that exist
            if raw is not None:
                self._backend("put", self._storage.put, record_key, raw)
            for entry in delta.deletes:
                self._backend("delete", self._storage.delete, entry.key)
            for entry in delta.puts:
                self._backend("put", self._storage.put, entry.key, entry.value)
            if raw is None:
                self._backend("delete", self._storage.delete, record_key)

        self._count_index_changes(delta)

    def _count_index_changes(self, delta: IndexDelta) -> None:
        table = self._descriptor.name
        for entry in delta.puts:
            self._metrics.index_entries_written_total.labels(
                table=table, index=entry.index_name
            ).inc()
        for entry in delta.deletes:
            self._metrics.index_entries_deleted_total.labels(
                table=table, index=entry.index_name
            ).inc()

    def _read(self, key: bytes) -> bytes | None:
        return self._backend("get", self._storage.get, key)

    def _scan(self, prefix: bytes) -> Iterator[tuple[bytes, bytes]]:
        try:
            yield from self._storage.scan(prefix)
        except KvSchemaError:
            raise
        except Exception as exc:
            raise BackendFailureError(
                f"Storage scan failed for table '{self._descriptor.name}'"
            ) from exc

    def _backend(self, operation: str, call: Any, *args: Any) -> Any:
        """Invoke a storage call, wrapping foreign exceptions."""
        try:
            return call(*args)
        except KvSchemaError:
            raise
        except Exception as exc:
            raise BackendFailureError(
                f"Storage {operation} failed for table '{self._descriptor.name}'",
                errors=(exc,),
            ) from exc

    @contextmanager
    def _operation(self, operation: str, **attributes: Any) -> Iterator[None]:
        """Trace, time and count one repository operation."""
        start = time.perf_counter()
        status = "success"
        with trace_span(
            f"repository.{operation}",
            {"table": self._descriptor.name, **attributes},
        ):
            try:
                yield
            except Exception:
                status = "error"
                raise
            finally:
                self._observe(operation, status, start)

    def _instrumented(
        self, operation: str, items: Iterable[Any], start: float
    ) -> Iterator[Any]:
        """Count a lazy operation once its iterator finishes or is closed.

        Latency runs from `start`, taken when the operation was called.
        """
        status = "success"
        try:
            yield from items
        except Exception:
            status = "error"
            raise
        finally:
            self._observe(operation, status, start)

    def _observe(self, operation: str, status: str, start: float) -> None:
        self._metrics.repository_operation_latency_seconds.labels(operation=operation).observe(
            time.perf_counter() - start
        )
        self._metrics.repository_operations_total.labels(
            table=self._descriptor.name, operation=operation, status=status
        ).inc()
