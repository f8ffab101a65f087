"""Outbound ports - interfaces for external dependencies.

Outbound ports define contracts for the systems the runtime depends on:
the key-value backend and the record serialization format.
"""

from kv_schema.ports.outbound.serializer import RecordSerializer
from kv_schema.ports.outbound.storage import AtomicStorage, Storage

__all__ = [
    "Storage",
    "AtomicStorage",
    "RecordSerializer",
]
