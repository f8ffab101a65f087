"""Ports layer - interface definitions following Hexagonal Architecture.

Ports are abstract interfaces (protocols) that define contracts:
- Outbound ports: Dependencies on external systems (Storage, RecordSerializer)

Adapters implement these ports with concrete functionality.
"""

from kv_schema.ports.outbound import AtomicStorage, RecordSerializer, Storage

__all__ = [
    "Storage",
    "AtomicStorage",
    "RecordSerializer",
]
