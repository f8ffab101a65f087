"""Outbound adapters - storage backends and record serializers."""

from kv_schema.adapters.outbound.file_storage import FileStorage
from kv_schema.adapters.outbound.layered_storage import LayeredStorage, WritePolicy
from kv_schema.adapters.outbound.memory_storage import InMemoryStorage
from kv_schema.adapters.outbound.pydantic_serializer import PydanticRecordSerializer

__all__ = [
    "FileStorage",
    "InMemoryStorage",
    "LayeredStorage",
    "PydanticRecordSerializer",
    "WritePolicy",
]
