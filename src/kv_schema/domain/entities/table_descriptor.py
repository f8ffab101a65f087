"""Table descriptor: static metadata for one record type.

A descriptor fixes everything the runtime needs to lay a record type out
in a flat, ordered key space:

    - the table id (namespace prefix)
    - the primary-key shape and how a key is obtained for a record
    - the secondary indexes and their value shapes
    - the foreign-key fields and the tables they point to

Descriptors are validated once at construction and immutable afterwards.
Records may be mappings or attribute objects (dataclasses, pydantic
models, plain classes); fields are read by name.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Sequence

from kv_schema.domain.errors import CorruptEncodingError, SchemaViolationError
from kv_schema.domain.services.key_encoder import KeyCodec
from kv_schema.domain.value_objects import (
    COUNTER_SENTINEL,
    FIRST_INDEX_SUBTABLE,
    MAX_INDEXES,
    RECORD_SUBTABLE,
    RESERVED_SUBTABLE,
    KeyShape,
    KeyType,
    TableId,
    TableKey,
    encode_table_prefix,
)


class KeyStrategy(Enum):
    """How a record's primary key is obtained."""

    FIELDS = "fields"  # One or more record fields
    DERIVED = "derived"  # Caller-supplied function of the record
    AUTO_INCREMENT = "auto_increment"  # Issued by the per-table counter


@dataclass(frozen=True)
class KeyComponent:
    """One component of a primary key."""

    name: str
    key_type: KeyType


@dataclass(frozen=True)
class PrimaryKeyDescriptor:
    """Shape and origin of a table's primary key.

    Use the constructors rather than instantiating directly:

        PrimaryKeyDescriptor.fields(KeyComponent("dept", KeyType.UINT32),
                                    KeyComponent("unit", KeyType.UINT32))
        PrimaryKeyDescriptor.derived(lambda r: (r["name"].lower(),),
                                     KeyComponent("slug", KeyType.STRING))
        PrimaryKeyDescriptor.auto_increment()
    """

    strategy: KeyStrategy
    components: tuple[KeyComponent, ...]
    derive: Callable[[Any], Sequence[Any]] | None = field(default=None, compare=False)

    @classmethod
    def fields(cls, *components: KeyComponent) -> PrimaryKeyDescriptor:
        """Key made of record fields, in the given order."""
        return cls(strategy=KeyStrategy.FIELDS, components=tuple(components))

    @classmethod
    def derived(
        cls,
        derive: Callable[[Any], Sequence[Any]],
        *components: KeyComponent,
    ) -> PrimaryKeyDescriptor:
        """Key computed from the record by `derive`."""
        return cls(
            strategy=KeyStrategy.DERIVED,
            components=tuple(components),
            derive=derive,
        )

    @classmethod
    def auto_increment(cls, name: str = "id") -> PrimaryKeyDescriptor:
        """Single unsigned 64-bit key issued by the table counter."""
        return cls(
            strategy=KeyStrategy.AUTO_INCREMENT,
            components=(KeyComponent(name, KeyType.UINT64),),
        )

    @property
    def shape(self) -> KeyShape:
        """Component types in order."""
        return tuple(c.key_type for c in self.components)


@dataclass(frozen=True)
class IndexDefinition:
    """A secondary index over one or more record fields.

    Attributes:
        name: Index name, unique within the table
        fields: Record fields forming the index value, in order
        key_types: Declared type of each field
        unique: Reject two live records with the same value
    """

    name: str
    fields: tuple[str, ...]
    key_types: KeyShape
    unique: bool = False

    @classmethod
    def on(
        cls,
        name: str,
        field_name: str,
        key_type: KeyType,
        unique: bool = False,
    ) -> IndexDefinition:
        """Single-field index."""
        return cls(name=name, fields=(field_name,), key_types=(key_type,), unique=unique)


@dataclass(frozen=True)
class ForeignKeyDefinition:
    """A record field holding the primary key of another table.

    Attributes:
        field: Record field holding the referenced key
        references: Table id of the referenced table
        key_types: Shape of the referenced primary key
    """

    field: str
    references: TableId
    key_types: KeyShape


def read_field(record: Any, name: str) -> Any:
    """Read a named field from a mapping or an attribute object."""
    if isinstance(record, Mapping):
        if name not in record:
            raise SchemaViolationError(f"Record has no field '{name}'")
        return record[name]
    try:
        return getattr(record, name)
    except AttributeError as exc:
        raise SchemaViolationError(f"Record has no field '{name}'") from exc


def as_components(value: Any, arity: int) -> tuple[Any, ...]:
    """Normalise a scalar or sequence into a component tuple."""
    if isinstance(value, TableKey):
        return value.values
    if arity == 1 and not isinstance(value, (tuple, list)):
        return (value,)
    return tuple(value)


@dataclass(frozen=True)
class TableDescriptor:
    """Static metadata for one record type.

    Example:
        >>> users = TableDescriptor(
        ...     name="users",
        ...     table_id=TableId(1),
        ...     key=PrimaryKeyDescriptor.auto_increment(),
        ...     indexes=(IndexDefinition.on("by_age", "age", KeyType.UINT32),),
        ... )
        >>> users.primary_key_prefix()
        b'\\x01\\x00'
    """

    name: str
    table_id: TableId
    key: PrimaryKeyDescriptor
    indexes: tuple[IndexDefinition, ...] = ()
    foreign_keys: tuple[ForeignKeyDefinition, ...] = ()

    _prefix: bytes = field(init=False, repr=False, compare=False)
    _key_codec: KeyCodec = field(init=False, repr=False, compare=False)
    _index_positions: dict[str, int] = field(init=False, repr=False, compare=False)
    _index_codecs: dict[str, KeyCodec] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Validate the descriptor and precompute prefixes and codecs."""
        object.__setattr__(self, "indexes", tuple(self.indexes))
        object.__setattr__(self, "foreign_keys", tuple(self.foreign_keys))
        self._validate()

        try:
            prefix = encode_table_prefix(self.table_id)
        except ValueError as exc:
            raise SchemaViolationError(str(exc)) from exc
        object.__setattr__(self, "_prefix", prefix)
        object.__setattr__(self, "_key_codec", KeyCodec(self.key.shape))
        object.__setattr__(
            self,
            "_index_positions",
            {idx.name: pos for pos, idx in enumerate(self.indexes)},
        )
        object.__setattr__(
            self,
            "_index_codecs",
            {idx.name: KeyCodec(idx.key_types) for idx in self.indexes},
        )

    def _validate(self) -> None:
        """Check the descriptor for shape and naming errors."""
        if not self.name:
            raise SchemaViolationError("Table name must not be empty")
        if not self.key.components:
            raise SchemaViolationError(f"Table '{self.name}' has an empty primary key")
        if self.key.strategy is KeyStrategy.AUTO_INCREMENT:
            if self.key.shape != (KeyType.UINT64,):
                raise SchemaViolationError(
                    f"Auto-increment key of '{self.name}' must be a single UINT64"
                )
        if self.key.strategy is KeyStrategy.DERIVED and self.key.derive is None:
            raise SchemaViolationError(f"Derived key of '{self.name}' has no function")

        if len(self.indexes) > MAX_INDEXES:
            raise SchemaViolationError(
                f"Table '{self.name}' declares {len(self.indexes)} indexes, "
                f"at most {MAX_INDEXES} are supported"
            )
        seen: set[str] = set()
        for idx in self.indexes:
            if idx.name in seen:
                raise SchemaViolationError(
                    f"Duplicate index name '{idx.name}' in table '{self.name}'"
                )
            seen.add(idx.name)
            if not idx.fields:
                raise SchemaViolationError(f"Index '{idx.name}' covers no fields")
            if len(idx.fields) != len(idx.key_types):
                raise SchemaViolationError(
                    f"Index '{idx.name}' has {len(idx.fields)} fields "
                    f"but {len(idx.key_types)} key types"
                )

        fk_fields: set[str] = set()
        for fk in self.foreign_keys:
            if fk.field in fk_fields:
                raise SchemaViolationError(
                    f"Field '{fk.field}' of '{self.name}' declared as foreign key twice"
                )
            fk_fields.add(fk.field)
            if not fk.key_types:
                raise SchemaViolationError(f"Foreign key '{fk.field}' has an empty shape")

    # Prefixes

    def table_prefix(self) -> bytes:
        """Namespace prefix shared by everything stored for this table."""
        return self._prefix

    def primary_key_prefix(self) -> bytes:
        """Prefix of every record key of this table."""
        return self._prefix + bytes([RECORD_SUBTABLE])

    def index_prefix(self, index_name: str) -> bytes:
        """Prefix of every entry of the named index."""
        return self._prefix + bytes([FIRST_INDEX_SUBTABLE + self.index_position(index_name)])

    def counter_key(self) -> bytes:
        """Reserved key holding the auto-increment counter."""
        return self._prefix + bytes([RESERVED_SUBTABLE]) + COUNTER_SENTINEL

    # Indexes

    def index(self, index_name: str) -> IndexDefinition:
        """Look up an index definition by name."""
        return self.indexes[self.index_position(index_name)]

    def index_position(self, index_name: str) -> int:
        """Position of the index in declaration order."""
        try:
            return self._index_positions[index_name]
        except KeyError:
            raise SchemaViolationError(
                f"Table '{self.name}' has no index '{index_name}'"
            ) from None

    def index_values(self, index_name: str, record: Any) -> tuple[Any, ...]:
        """Current values of the indexed fields of `record`."""
        return tuple(read_field(record, f) for f in self.index(index_name).fields)

    def encode_index_value(self, index_name: str, value: Any) -> bytes:
        """Index prefix plus the encoded indexed value (no primary key)."""
        idx = self.index(index_name)
        values = as_components(value, len(idx.key_types))
        return self.index_prefix(index_name) + self._index_codecs[index_name].encode(values)

    def encode_index_entry(self, index_name: str, value: Any, key: TableKey) -> bytes:
        """Full index-entry key: prefix, indexed value, then primary key."""
        return self.encode_index_value(index_name, value) + self._encode_key_suffix(key)

    def decode_index_entry(
        self,
        index_name: str,
        data: bytes,
    ) -> tuple[tuple[Any, ...], TableKey]:
        """Split an index-entry key into (indexed values, primary key)."""
        prefix = self.index_prefix(index_name)
        if not data.startswith(prefix):
            raise CorruptEncodingError(
                f"Key does not belong to index '{index_name}' of '{self.name}'"
            )
        values, offset = self._index_codecs[index_name].decode(data, len(prefix))
        return values, self.table_key(*self._key_codec.decode_exact(data, offset))

    # Primary keys

    def table_key(self, *values: Any) -> TableKey:
        """Build a TableKey for this table, checking each component's type."""
        if len(values) != len(self.key.components):
            raise SchemaViolationError(
                f"Table '{self.name}' key has {len(self.key.components)} components, "
                f"got {len(values)}"
            )
        for value, component in zip(values, self.key.components):
            if not component.key_type.accepts(value):
                raise SchemaViolationError(
                    f"Key component '{component.name}' of '{self.name}' "
                    f"does not accept {value!r}"
                )
        return TableKey(self.table_id, tuple(values))

    def coerce_key(self, key: Any) -> TableKey:
        """Accept a TableKey of this table or raw component value(s)."""
        if isinstance(key, TableKey):
            key.ensure_table(self.table_id)
            return key
        return self.table_key(*as_components(key, len(self.key.components)))

    def extract_key(self, record: Any) -> TableKey:
        """Primary key of a record for field and derived key strategies."""
        if self.key.strategy is KeyStrategy.FIELDS:
            return self.table_key(*(read_field(record, c.name) for c in self.key.components))
        if self.key.strategy is KeyStrategy.DERIVED:
            assert self.key.derive is not None
            derived = self.key.derive(record)
            return self.table_key(*as_components(derived, len(self.key.components)))
        raise SchemaViolationError(
            f"Table '{self.name}' uses auto-increment keys; keys are not derived from records"
        )

    def _encode_key_suffix(self, key: TableKey) -> bytes:
        key.ensure_table(self.table_id)
        return self._key_codec.encode(key.values)

    def encode_primary_key(self, key: TableKey) -> bytes:
        """Storage key of the record addressed by `key`."""
        return self.primary_key_prefix() + self._encode_key_suffix(key)

    def encode_key_bound(self, key: Any) -> bytes:
        """Storage key for a (possibly partial) leading run of key components.

        Used for range bounds: a bound with fewer components than the key
        shape addresses the start of every key sharing those components.
        """
        values = as_components(key, len(self.key.components))
        if not 0 < len(values) <= len(self.key.components):
            raise SchemaViolationError(
                f"Key bound for '{self.name}' needs 1..{len(self.key.components)} components"
            )
        shape = self.key.shape[: len(values)]
        return self.primary_key_prefix() + KeyCodec(shape).encode(values)

    def decode_primary_key(self, data: bytes) -> TableKey:
        """Decode a record storage key back into a TableKey."""
        prefix = self.primary_key_prefix()
        if not data.startswith(prefix):
            raise CorruptEncodingError(f"Key does not belong to table '{self.name}'")
        return self.table_key(*self._key_codec.decode_exact(data, len(prefix)))

    def decode_key_bytes(self, data: bytes) -> TableKey:
        """Decode a bare encoded primary key (no table prefix)."""
        return self.table_key(*self._key_codec.decode_exact(data))

    def encode_key_bytes(self, key: TableKey) -> bytes:
        """Encode a primary key without the table prefix."""
        return self._encode_key_suffix(key)

    # Foreign keys

    def foreign_key(self, field_name: str) -> ForeignKeyDefinition:
        """Look up a foreign-key definition by field name."""
        for fk in self.foreign_keys:
            if fk.field == field_name:
                return fk
        raise SchemaViolationError(f"Field '{field_name}' of '{self.name}' is not a foreign key")

    def foreign_key_value(self, field_name: str, record: Any) -> TableKey | None:
        """The referenced key held by `record`, tagged with the target table.

        Returns None when the field is empty. A TableKey held in the field
        must belong to the referenced table; raw values must fit its shape.
        """
        fk = self.foreign_key(field_name)
        raw = read_field(record, field_name)
        if raw is None:
            return None
        if isinstance(raw, TableKey):
            raw.ensure_table(fk.references)
        values = as_components(raw, len(fk.key_types))
        if len(values) != len(fk.key_types):
            raise SchemaViolationError(
                f"Foreign key '{field_name}' of '{self.name}' expects "
                f"{len(fk.key_types)} components, got {len(values)}"
            )
        for value, key_type in zip(values, fk.key_types):
            if not key_type.accepts(value):
                raise SchemaViolationError(
                    f"Foreign key '{field_name}' of '{self.name}' does not accept {value!r}"
                )
        return TableKey(fk.references, values)
