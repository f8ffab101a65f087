"""Value objects for the schema runtime.

Value objects are immutable types that represent domain concepts.
They have no identity - two value objects with the same attributes are equal.

Exports:
    Key Types:
        - KeyType: Supported key component types
        - KeyShape: Ordered tuple of KeyTypes

    Identifiers:
        - TableId: Type-safe table identifier
        - TableKey: Primary key tagged with its table
        - encode_table_prefix / decode_table_prefix: Table namespace tags
        - Subtable tag constants
"""

from kv_schema.domain.value_objects.identifiers import (
    COUNTER_SENTINEL,
    FIRST_INDEX_SUBTABLE,
    MAX_INDEXES,
    MAX_TABLE_ID,
    RECORD_SUBTABLE,
    RESERVED_SUBTABLE,
    TableId,
    TableKey,
    decode_table_prefix,
    encode_table_prefix,
)
from kv_schema.domain.value_objects.key_types import KeyShape, KeyType

__all__ = [
    # Key types
    "KeyType",
    "KeyShape",
    # Identifiers
    "TableId",
    "TableKey",
    "MAX_TABLE_ID",
    "encode_table_prefix",
    "decode_table_prefix",
    # Subtables
    "RECORD_SUBTABLE",
    "RESERVED_SUBTABLE",
    "FIRST_INDEX_SUBTABLE",
    "MAX_INDEXES",
    "COUNTER_SENTINEL",
]
