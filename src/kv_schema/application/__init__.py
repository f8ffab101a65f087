"""Application layer - repositories that tie schema, storage and serialization together."""

from kv_schema.application.database import Database, default_serializer_factory
from kv_schema.application.record_repository import RecordRepository

__all__ = [
    "Database",
    "RecordRepository",
    "default_serializer_factory",
]
