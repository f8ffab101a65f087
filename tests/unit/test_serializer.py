"""Unit tests for PydanticRecordSerializer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import pytest
from pydantic import BaseModel

from kv_schema.adapters.outbound import PydanticRecordSerializer
from kv_schema.adapters.outbound.pydantic_serializer import table_record_model
from kv_schema.domain.entities import (
    ForeignKeyDefinition,
    IndexDefinition,
    KeyComponent,
    PrimaryKeyDescriptor,
    TableDescriptor,
)
from kv_schema.domain.errors import CorruptEncodingError, SchemaViolationError
from kv_schema.domain.value_objects import KeyType, TableId, TableKey
from kv_schema.ports.outbound import RecordSerializer


class User(BaseModel):
    name: str
    age: int


@dataclass
class Point:
    x: int
    y: int


@pytest.mark.unit
class TestPydanticRecordSerializer:
    """Tests for JSON record serialization."""

    def test_model_round_trip(self) -> None:
        """Pydantic models come back equal."""
        serializer = PydanticRecordSerializer(User)
        data = serializer.encode(User(name="abc", age=42))
        assert data == b'{"name":"abc","age":42}'
        assert serializer.decode(data) == User(name="abc", age=42)

    def test_dataclass_records(self) -> None:
        """Dataclasses work as records."""
        serializer = PydanticRecordSerializer(Point)
        assert serializer.decode(serializer.encode(Point(1, -2))) == Point(1, -2)

    def test_plain_dicts_by_default(self) -> None:
        """Without a type, records are JSON objects."""
        serializer = PydanticRecordSerializer()
        record: dict[str, Any] = {"a": 1, "b": [1, 2]}
        assert serializer.decode(serializer.encode(record)) == record

    def test_encode_wrong_shape(self) -> None:
        """Records that do not validate are schema violations."""
        serializer = PydanticRecordSerializer(User)
        with pytest.raises(SchemaViolationError):
            serializer.encode({"name": "abc"})

    def test_decode_garbage(self) -> None:
        """Bytes that are not a valid record are corrupt."""
        serializer = PydanticRecordSerializer(User)
        with pytest.raises(CorruptEncodingError):
            serializer.decode(b"not json")
        with pytest.raises(CorruptEncodingError):
            serializer.decode(b'{"name": "abc", "age": "many"}')

    def test_strict_mode(self) -> None:
        """Strict mode refuses coercion on decode."""
        lenient = PydanticRecordSerializer(User)
        strict = PydanticRecordSerializer(User, strict=True)
        data = b'{"name": "abc", "age": "42"}'

        assert lenient.decode(data).age == 42
        with pytest.raises(CorruptEncodingError):
            strict.decode(data)

    def test_satisfies_protocol(self) -> None:
        """The serializer implements the port."""
        assert isinstance(PydanticRecordSerializer(User), RecordSerializer)


@pytest.fixture
def blobs_table() -> TableDescriptor:
    """Blobs keyed by id, indexed by raw tag and score, referencing an order."""
    return TableDescriptor(
        name="blobs",
        table_id=TableId(20),
        key=PrimaryKeyDescriptor.fields(KeyComponent("id", KeyType.UINT32)),
        indexes=(
            IndexDefinition.on("by_tag", "tag", KeyType.BYTES, unique=True),
            IndexDefinition.on("by_score", "score", KeyType.FLOAT64),
        ),
        foreign_keys=(
            ForeignKeyDefinition("order", TableId(2), (KeyType.UINT64, KeyType.UINT32)),
        ),
    )


@pytest.mark.unit
class TestTableRecordSerializer:
    """Tests for dict records typed after a table descriptor."""

    def test_key_types_round_trip(self, blobs_table: TableDescriptor) -> None:
        """Bytes, infinities and composite references come back unchanged."""
        serializer = PydanticRecordSerializer.for_table(blobs_table)
        record = {
            "id": 1,
            "tag": b"\x00\xff\xfe",
            "score": float("-inf"),
            "order": (7, 2),
            "note": "kept",
        }

        decoded = serializer.decode(serializer.encode(record))

        assert decoded == record
        assert isinstance(decoded["tag"], bytes)
        assert isinstance(decoded["order"], tuple)

    def test_empty_reference(self, blobs_table: TableDescriptor) -> None:
        """A foreign-key field may hold None."""
        serializer = PydanticRecordSerializer.for_table(blobs_table)
        record = {"id": 1, "tag": b"a", "score": 0.5, "order": None}
        assert serializer.decode(serializer.encode(record)) == record

    def test_table_key_reference_stored_raw(self, blobs_table: TableDescriptor) -> None:
        """A TableKey in a foreign-key field is stored as its components."""
        serializer = PydanticRecordSerializer.for_table(blobs_table)
        record = {"id": 1, "tag": b"a", "score": 0.5, "order": TableKey(TableId(2), (7, 2))}
        assert serializer.decode(serializer.encode(record))["order"] == (7, 2)

    def test_missing_typed_field(self, blobs_table: TableDescriptor) -> None:
        """Key and index fields are required."""
        serializer = PydanticRecordSerializer.for_table(blobs_table)
        with pytest.raises(SchemaViolationError):
            serializer.encode({"id": 1, "score": 0.5, "order": None})

    def test_record_model(self, users_table: TableDescriptor) -> None:
        """Auto-increment keys are not record fields."""
        model = table_record_model(users_table)
        assert model.__name__ == "UsersRecord"
        assert sorted(f.alias for f in model.model_fields.values()) == ["age", "email"]
