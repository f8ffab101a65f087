"""Per-table auto-increment counters.

Each auto-keyed table keeps its counter under a reserved key in the same
storage as its records (table_prefix || 0x01 || b"seq"), as an 8-byte
big-endian unsigned integer. The counter is created lazily: the first
allocation for a table issues 1. It is never decremented, so keys of
deleted records are never reused.

Thread Safety:
    Allocation is a read-increment-write sequence held under a per-table
    lock, so concurrent inserts into the same table never claim the same
    value. The lock lives in this allocator: processes or allocators that
    share a backend must share one allocator (or a backend-native atomic
    increment) to keep the guarantee.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from kv_schema.domain.errors import CorruptEncodingError, SequenceExhaustedError
from kv_schema.domain.value_objects import TableId

if TYPE_CHECKING:
    from kv_schema.domain.entities.table_descriptor import TableDescriptor
    from kv_schema.ports.outbound.storage import Storage


COUNTER_WIDTH = 8
MAX_SEQUENCE = (1 << (COUNTER_WIDTH * 8)) - 1


class SequenceAllocator:
    """Issues strictly increasing keys per table.

    Example:
        >>> allocator = SequenceAllocator(storage)
        >>> allocator.allocate(users)
        1
        >>> allocator.allocate(users)
        2
    """

    def __init__(self, storage: Storage) -> None:
        """Initialize the allocator.

        Args:
            storage: Backend holding the counters.
        """
        self._storage = storage
        self._guard = threading.Lock()
        self._locks: dict[TableId, threading.Lock] = {}

    def _lock_for(self, table_id: TableId) -> threading.Lock:
        """Get (or create) the lock serialising one table's counter."""
        with self._guard:
            lock = self._locks.get(table_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[table_id] = lock
            return lock

    def current(self, descriptor: TableDescriptor) -> int:
        """Last value issued for the table, 0 if none was issued yet."""
        raw = self._storage.get(descriptor.counter_key())
        if raw is None:
            return 0
        if len(raw) != COUNTER_WIDTH:
            raise CorruptEncodingError(
                f"Counter of '{descriptor.name}' is {len(raw)} bytes, expected {COUNTER_WIDTH}"
            )
        return int.from_bytes(raw, byteorder="big")

    def allocate(self, descriptor: TableDescriptor) -> int:
        """Claim the next value for the table.

        Raises:
            SequenceExhaustedError: If the counter is at its maximum.
        """
        with self._lock_for(descriptor.table_id):
            value = self.current(descriptor) + 1
            if value > MAX_SEQUENCE:
                raise SequenceExhaustedError(
                    f"Auto-increment counter of '{descriptor.name}' is exhausted"
                )
            self._storage.put(
                descriptor.counter_key(),
                value.to_bytes(COUNTER_WIDTH, byteorder="big"),
            )
            return value
