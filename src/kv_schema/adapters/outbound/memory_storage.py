"""In-memory ordered storage adapter.

An implementation of the Storage and AtomicStorage ports that keeps
everything in process memory. Data is not persisted across restarts.

Usage:
    storage = InMemoryStorage()
    storage.put(b"\\x01\\x00a", b"record")
    list(storage.scan(b"\\x01"))

Layout:
    A dict holds the values; a separately maintained sorted list of keys
    (kept in order with bisect) answers prefix scans without sorting.
"""

from __future__ import annotations

import bisect
import threading
from typing import Iterable, Iterator


class InMemoryStorage:
    """In-memory implementation of AtomicStorage.

    Thread Safety:
        Point operations and batches are serialised by a reentrant lock.

    Scan isolation:
        A scan copies the matching keys and values when it starts. Writes
        made while the caller is iterating are not visible to that scan.
    """

    def __init__(self) -> None:
        """Initialize empty storage."""
        self._data: dict[bytes, bytes] = {}
        self._keys: list[bytes] = []
        self._lock = threading.RLock()

    def get(self, key: bytes) -> bytes | None:
        """Look up a value.

        Args:
            key: The key to read

        Returns:
            The stored value, or None if not found
        """
        with self._lock:
            return self._data.get(key)

    def put(self, key: bytes, value: bytes) -> None:
        """Store a value, overwriting any previous one."""
        with self._lock:
            self._put_locked(bytes(key), bytes(value))

    def delete(self, key: bytes) -> None:
        """Remove a key if present."""
        with self._lock:
            self._delete_locked(key)

    def scan(self, prefix: bytes) -> Iterator[tuple[bytes, bytes]]:
        """Yield entries under `prefix` from a snapshot taken at call time."""
        with self._lock:
            start = bisect.bisect_left(self._keys, prefix)
            snapshot: list[tuple[bytes, bytes]] = []
            for key in self._keys[start:]:
                if not key.startswith(prefix):
                    break
                snapshot.append((key, self._data[key]))
        return iter(snapshot)

    def apply_batch(
        self,
        puts: Iterable[tuple[bytes, bytes]],
        deletes: Iterable[bytes],
    ) -> None:
        """Apply deletes, then puts, under a single lock acquisition.

        Inputs are materialised before anything is mutated, so an error
        raised while iterating them leaves the store untouched.
        """
        put_items = [(bytes(k), bytes(v)) for k, v in puts]
        delete_keys = list(deletes)
        with self._lock:
            for key in delete_keys:
                self._delete_locked(key)
            for key, value in put_items:
                self._put_locked(key, value)

    def _put_locked(self, key: bytes, value: bytes) -> None:
        if key not in self._data:
            bisect.insort(self._keys, key)
        self._data[key] = value

    def _delete_locked(self, key: bytes) -> None:
        if key in self._data:
            del self._data[key]
            pos = bisect.bisect_left(self._keys, key)
            del self._keys[pos]

    def clear(self) -> None:
        """Clear all stored data."""
        with self._lock:
            self._data.clear()
            self._keys.clear()

    def __len__(self) -> int:
        """Number of stored keys."""
        with self._lock:
            return len(self._data)
