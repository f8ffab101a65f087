"""Domain entities for the schema runtime.

Exports:
    Table Descriptor:
        - TableDescriptor: Static metadata for one record type
        - PrimaryKeyDescriptor, KeyComponent, KeyStrategy: Primary-key shape
        - IndexDefinition: Secondary index declaration
        - ForeignKeyDefinition: Cross-table reference declaration

    Schema:
        - Schema: Registry of tables sharing one key space
"""

from kv_schema.domain.entities.schema import Schema
from kv_schema.domain.entities.table_descriptor import (
    ForeignKeyDefinition,
    IndexDefinition,
    KeyComponent,
    KeyStrategy,
    PrimaryKeyDescriptor,
    TableDescriptor,
    read_field,
)

__all__ = [
    "TableDescriptor",
    "PrimaryKeyDescriptor",
    "KeyComponent",
    "KeyStrategy",
    "IndexDefinition",
    "ForeignKeyDefinition",
    "Schema",
    "read_field",
]
