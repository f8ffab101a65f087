"""File-based storage adapter.

Implements the Storage port on the local filesystem with one file per
key. The filename is the lowercase hex encoding of the key, so the
lexicographic order of filenames equals the byte order of keys and a
key prefix maps to a filename prefix.

Usage:
    storage = FileStorage("/path/to/data")
    storage.put(b"\\x01\\x00a", b"record")
    value = storage.get(b"\\x01\\x00a")

Directory structure:
    data_dir/
        01006100          # key b"\\x01\\x00a"
        010100736571      # key b"\\x01\\x01seq"
        .tmp-<random>     # in-flight writes, ignored by scans
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Iterator

from kv_schema.domain.errors import BackendFailureError


_TMP_PREFIX = ".tmp-"


class FileStorage:
    """File-based implementation of the Storage port.

    Writes go to a temporary file in the same directory which is then
    renamed over the target with os.replace, so readers see either the
    old or the new value, never a partial one.

    Scan isolation:
        The directory is listed when the scan starts and values are read
        lazily. Keys created later are not visited; keys deleted before
        they are reached are skipped.

    There is no apply_batch: a multi-file batch cannot be made atomic
    with rename alone.

    Attributes:
        data_dir: Directory holding one file per key
    """

    def __init__(self, data_dir: str | Path) -> None:
        """Initialize file storage.

        Args:
            data_dir: Directory for the key files (created if missing)
        """
        self._data_dir = Path(data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def data_dir(self) -> Path:
        """Root data directory."""
        return self._data_dir

    def _path(self, key: bytes) -> Path:
        """Get file path for a key."""
        if not key:
            raise BackendFailureError("FileStorage cannot store the empty key")
        return self._data_dir / key.hex()

    def get(self, key: bytes) -> bytes | None:
        """Read a value from disk.

        Returns:
            The stored bytes, or None if the file does not exist
        """
        try:
            return self._path(key).read_bytes()
        except FileNotFoundError:
            return None

    def put(self, key: bytes, value: bytes) -> None:
        """Persist a value with an atomic rename."""
        target = self._path(key)
        fd, tmp_name = tempfile.mkstemp(prefix=_TMP_PREFIX, dir=self._data_dir)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(value)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, key: bytes) -> None:
        """Delete a key file if present."""
        self._path(key).unlink(missing_ok=True)

    def scan(self, prefix: bytes) -> Iterator[tuple[bytes, bytes]]:
        """Yield entries under `prefix` in ascending key order."""
        hex_prefix = prefix.hex()
        names = sorted(
            name
            for name in os.listdir(self._data_dir)
            if not name.startswith(_TMP_PREFIX) and name.startswith(hex_prefix)
        )
        return self._read_lazily(names)

    def _read_lazily(self, names: list[str]) -> Iterator[tuple[bytes, bytes]]:
        for name in names:
            try:
                value = (self._data_dir / name).read_bytes()
            except FileNotFoundError:
                # Deleted after the listing
                continue
            yield bytes.fromhex(name), value

    def __len__(self) -> int:
        """Number of stored keys."""
        return sum(1 for name in os.listdir(self._data_dir) if not name.startswith(_TMP_PREFIX))
