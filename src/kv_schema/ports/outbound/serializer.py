"""Record serializer port.

The runtime never interprets record bytes; it only needs a pair of
functions that round-trip a record through bytes. Any format works
(JSON, MessagePack, protobuf) as long as decode(encode(r)) == r.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class RecordSerializer(Protocol):
    """Protocol for turning a full record into bytes and back."""

    @abstractmethod
    def encode(self, record: Any) -> bytes:
        """Serialize a record.

        Raises:
            SchemaViolationError: If the record does not match the record type.
        """
        ...

    @abstractmethod
    def decode(self, data: bytes) -> Any:
        """Deserialize a record.

        Raises:
            CorruptEncodingError: If `data` is not a valid encoded record.
        """
        ...
