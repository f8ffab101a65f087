"""Pydantic-backed record serializer.

Records are dumped to JSON bytes and validated back into the declared
record type with a pydantic TypeAdapter, so any type pydantic can
validate works as a record: BaseModel subclasses, dataclasses,
TypedDicts and plain dict[str, Any].

Plain dicts carry no field types, so JSON alone cannot tell bytes from
text or keep infinite floats. `PydanticRecordSerializer.for_table`
builds a record model from a table descriptor instead: every key,
index and foreign-key field is typed after its KeyType, bytes travel as
base64 and infinities as JSON constants. Records still come back as
plain dicts; fields the descriptor does not name are stored as-is and
should hold JSON-native values.

Usage:
    serializer = PydanticRecordSerializer(User)
    data = serializer.encode(User(name="abc", age=42))
    user = serializer.decode(data)

    serializer = PydanticRecordSerializer.for_table(users)
    serializer.decode(serializer.encode({"name": "abc", "tag": b"\\xff"}))
"""

from __future__ import annotations

from typing import Annotated, Any, Generic, Optional, TypeVar

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    create_model,
)
from pydantic_core import PydanticSerializationError

from kv_schema.domain.entities import KeyStrategy, TableDescriptor
from kv_schema.domain.errors import CorruptEncodingError, SchemaViolationError
from kv_schema.domain.value_objects import KeyShape, KeyType, TableKey


R = TypeVar("R")

_PYTHON_TYPES: dict[KeyType, type] = {
    KeyType.BOOL: bool,
    KeyType.FLOAT64: float,
    KeyType.STRING: str,
    KeyType.BYTES: bytes,
}

TABLE_RECORD_CONFIG = ConfigDict(
    extra="allow",
    ser_json_bytes="base64",
    val_json_bytes="base64",
    ser_json_inf_nan="constants",
)


def python_type(key_type: KeyType) -> type:
    """Python type pydantic validates a key component into."""
    return _PYTHON_TYPES.get(key_type, int)


def _key_values(arity: int) -> Any:
    def unwrap(value: Any) -> Any:
        # Foreign keys may be given as TableKey; the stored form is raw components
        if isinstance(value, TableKey):
            return value.values[0] if arity == 1 else value.values
        return value

    return unwrap


def _shape_type(shape: KeyShape) -> Any:
    if len(shape) == 1:
        return python_type(shape[0])
    return tuple[tuple(python_type(t) for t in shape)]  # type: ignore[misc]


def table_record_model(descriptor: TableDescriptor) -> type[BaseModel]:
    """Build a pydantic model typing the fields a table's keys and indexes read.

    Key, index and foreign-key fields are required; foreign-key fields
    may hold None. Other fields are accepted as extras.
    """
    fields: dict[str, Any] = {}

    def add(name: str, annotation: Any) -> None:
        if name not in fields:
            fields[name] = (annotation, Field(alias=name))

    if descriptor.key.strategy is KeyStrategy.FIELDS:
        for component in descriptor.key.components:
            add(component.name, python_type(component.key_type))
    for idx in descriptor.indexes:
        for name, key_type in zip(idx.fields, idx.key_types):
            add(name, python_type(key_type))
    for fk in descriptor.foreign_keys:
        annotation = Annotated[
            Optional[_shape_type(fk.key_types)],
            BeforeValidator(_key_values(len(fk.key_types))),
        ]
        add(fk.field, annotation)

    # Python-side names are positional so record fields never clash with BaseModel attributes
    definitions = {f"field_{i}": definition for i, definition in enumerate(fields.values())}
    return create_model(  # type: ignore[call-overload, no-any-return]
        f"{descriptor.name.title().replace('_', '')}Record",
        __config__=TABLE_RECORD_CONFIG,
        **definitions,
    )


class PydanticRecordSerializer(Generic[R]):
    """RecordSerializer implementation on top of pydantic.

    Attributes:
        record_type: The type records are validated into
        strict: Whether decoding uses pydantic strict mode
    """

    def __init__(self, record_type: type[R] | Any = dict[str, Any], strict: bool = False) -> None:
        """Initialize the serializer.

        Args:
            record_type: Record type (any type pydantic can validate)
            strict: Reject values that would need coercion when decoding
        """
        self.record_type = record_type
        self.strict = strict
        self._adapter: TypeAdapter[Any] = TypeAdapter(record_type)
        self._as_mapping = False

    @classmethod
    def for_table(
        cls, descriptor: TableDescriptor, strict: bool = False
    ) -> PydanticRecordSerializer[dict[str, Any]]:
        """Serializer for dict records of `descriptor` that round-trips every key type."""
        serializer: PydanticRecordSerializer[dict[str, Any]] = cls(
            table_record_model(descriptor), strict=strict
        )
        serializer._as_mapping = True
        return serializer

    def encode(self, record: R) -> bytes:
        """Serialize a record to JSON bytes.

        Raises:
            SchemaViolationError: If the record does not match the record type
        """
        try:
            validated = self._adapter.validate_python(record, strict=self.strict)
            if self._as_mapping:
                return self._adapter.dump_json(validated, by_alias=True)
            return self._adapter.dump_json(validated)
        except (ValidationError, PydanticSerializationError) as exc:
            raise SchemaViolationError(f"Record does not match {self._type_name}: {exc}") from exc

    def decode(self, data: bytes) -> R:
        """Deserialize JSON bytes into the record type.

        Raises:
            CorruptEncodingError: If the bytes are not a valid record
        """
        try:
            validated = self._adapter.validate_json(data, strict=self.strict)
        except ValidationError as exc:
            raise CorruptEncodingError(f"Invalid {self._type_name} record: {exc}") from exc
        if self._as_mapping:
            return validated.model_dump(by_alias=True)  # type: ignore[no-any-return]
        return validated  # type: ignore[no-any-return]

    @property
    def _type_name(self) -> str:
        return getattr(self.record_type, "__name__", repr(self.record_type))
