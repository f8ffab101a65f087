"""Storage port: the only contract a key-value backend must satisfy.

This outbound port defines the minimal operations the schema runtime
needs from a backend. Keys and values are opaque byte strings; all
structure (tables, indexes, counters) is encoded into the keys by the
layers above.

Backends:
    - in-memory ordered map (adapters.outbound.memory_storage)
    - directory of files (adapters.outbound.file_storage)
    - layered composition of other backends (adapters.outbound.layered_storage)
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Iterable, Iterator, Protocol, runtime_checkable


@runtime_checkable
class Storage(Protocol):
    """Protocol for an ordered key-value backend.

    Consistency:
        No multi-key atomicity is implied. Whether a scan in progress sees
        writes made after it started is backend-defined; each
        implementation documents its behaviour.

    Thread Safety:
        Callers may share one instance between threads. Each
        implementation states whether its point operations are safe to
        call concurrently.
    """

    @abstractmethod
    def get(self, key: bytes) -> bytes | None:
        """Point lookup.

        Args:
            key: The key to read.

        Returns:
            The stored value, or None if absent (absence is not an error).

        Raises:
            BackendFailureError: If the backend itself failed.
        """
        ...

    @abstractmethod
    def put(self, key: bytes, value: bytes) -> None:
        """Upsert a value, silently overwriting any previous one.

        Raises:
            BackendFailureError: If the backend itself failed.
        """
        ...

    @abstractmethod
    def delete(self, key: bytes) -> None:
        """Remove a key. Deleting an absent key is a no-op.

        Raises:
            BackendFailureError: If the backend itself failed.
        """
        ...

    @abstractmethod
    def scan(self, prefix: bytes) -> Iterator[tuple[bytes, bytes]]:
        """Iterate every entry whose key starts with `prefix`.

        Entries are yielded lazily in ascending unsigned byte order. The
        sequence is finite: it is bounded by what exists under the prefix
        when the scan starts.

        Args:
            prefix: Key prefix; b"" scans the whole store.

        Yields:
            (key, value) tuples in ascending key order.
        """
        ...


@runtime_checkable
class AtomicStorage(Storage, Protocol):
    """Optional extension for backends with all-or-nothing batches.

    When a backend offers this, the record repository submits a record
    write together with its index changes as one batch.
    """

    @abstractmethod
    def apply_batch(
        self,
        puts: Iterable[tuple[bytes, bytes]],
        deletes: Iterable[bytes],
    ) -> None:
        """Apply all puts and deletes atomically.

        Deletes are applied before puts, so a key present in both ends up
        written. Either every operation is persisted or none is.

        Raises:
            BackendFailureError: If the batch failed; nothing was applied.
        """
        ...
