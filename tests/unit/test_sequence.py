"""Unit tests for the auto-increment SequenceAllocator."""

from __future__ import annotations

import threading

import pytest

from kv_schema.adapters.outbound import InMemoryStorage
from kv_schema.domain.entities import TableDescriptor
from kv_schema.domain.errors import CorruptEncodingError, SequenceExhaustedError
from kv_schema.domain.services import SequenceAllocator
from kv_schema.domain.services.sequence import MAX_SEQUENCE


@pytest.mark.unit
class TestSequenceAllocator:
    """Tests for per-table counters."""

    @pytest.fixture
    def allocator(self, memory_storage: InMemoryStorage) -> SequenceAllocator:
        """Allocator over an empty store."""
        return SequenceAllocator(memory_storage)

    def test_first_value_is_one(
        self, allocator: SequenceAllocator, users_table: TableDescriptor
    ) -> None:
        """A fresh table starts at 1."""
        assert allocator.current(users_table) == 0
        assert allocator.allocate(users_table) == 1
        assert allocator.allocate(users_table) == 2
        assert allocator.current(users_table) == 2

    def test_counter_persisted(
        self,
        allocator: SequenceAllocator,
        memory_storage: InMemoryStorage,
        users_table: TableDescriptor,
    ) -> None:
        """The counter is an 8-byte big-endian value under the reserved key."""
        allocator.allocate(users_table)
        assert memory_storage.get(users_table.counter_key()) == (1).to_bytes(8, "big")

        # A new allocator over the same store continues the sequence
        assert SequenceAllocator(memory_storage).allocate(users_table) == 2

    def test_tables_are_independent(
        self,
        allocator: SequenceAllocator,
        users_table: TableDescriptor,
        orders_table: TableDescriptor,
    ) -> None:
        """Each table has its own counter."""
        allocator.allocate(users_table)
        allocator.allocate(users_table)
        assert allocator.allocate(orders_table) == 1

    def test_exhausted(
        self,
        allocator: SequenceAllocator,
        memory_storage: InMemoryStorage,
        users_table: TableDescriptor,
    ) -> None:
        """The counter never wraps."""
        memory_storage.put(users_table.counter_key(), MAX_SEQUENCE.to_bytes(8, "big"))
        with pytest.raises(SequenceExhaustedError):
            allocator.allocate(users_table)

    def test_corrupt_counter(
        self,
        allocator: SequenceAllocator,
        memory_storage: InMemoryStorage,
        users_table: TableDescriptor,
    ) -> None:
        """A counter of the wrong width is corrupt."""
        memory_storage.put(users_table.counter_key(), b"\x01")
        with pytest.raises(CorruptEncodingError):
            allocator.allocate(users_table)

    def test_concurrent_allocations_unique(
        self, allocator: SequenceAllocator, users_table: TableDescriptor
    ) -> None:
        """Concurrent callers never receive the same value."""
        results: list[int] = []
        lock = threading.Lock()

        def worker() -> None:
            for _ in range(50):
                value = allocator.allocate(users_table)
                with lock:
                    results.append(value)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(results) == list(range(1, 401))
