"""Index Maintainer: keeps secondary indexes consistent with records.

Given a record's previous value (None on insert) and its new value (None
on delete), the maintainer computes which index-entry keys must be
written and which must be removed:

    - Insert: write one entry per index
    - Delete: remove one entry per index
    - Update: per index, leave the entry alone if the encoded value is
      unchanged, otherwise remove the old entry and write the new one

The maintainer is pure: it produces an IndexDelta and never touches
storage. The repository applies the delta only after the record write it
describes, so a crash between the two leaves a stale or missing index
entry at worst, never an entry pointing at a record that does not exist.

Index entry layout:
    table_prefix || index_tag || encode(indexed value) || encode(primary key)
The value of an entry is the encoded primary key (back-pointer).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from kv_schema.domain.value_objects import TableKey

if TYPE_CHECKING:
    from kv_schema.domain.entities.table_descriptor import TableDescriptor


@dataclass(frozen=True)
class IndexEntry:
    """One index entry to write or remove.

    Attributes:
        index_name: The index the entry belongs to
        key: Full storage key of the entry
        value: Back-pointer (encoded primary key)
    """

    index_name: str
    key: bytes
    value: bytes = b""


@dataclass
class IndexDelta:
    """Index changes implied by one record mutation.

    Attributes:
        puts: Entries to write
        deletes: Entries to remove
        unchanged: Names of indexes whose entry stays as it is
    """

    puts: list[IndexEntry] = field(default_factory=list)
    deletes: list[IndexEntry] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True if the mutation needs no index writes."""
        return not self.puts and not self.deletes


class IndexMaintainer:
    """Computes index deltas for one table.

    Example:
        >>> maintainer = IndexMaintainer(users)
        >>> delta = maintainer.plan(key, old_record=None, new_record=record)
        >>> [e.index_name for e in delta.puts]
        ['by_age']
    """

    def __init__(self, descriptor: TableDescriptor) -> None:
        """Initialize the maintainer.

        Args:
            descriptor: The table whose indexes are maintained.
        """
        self._descriptor = descriptor

    @property
    def descriptor(self) -> TableDescriptor:
        """The table this maintainer serves."""
        return self._descriptor

    def entry_for(self, index_name: str, record: Any, key: TableKey) -> IndexEntry:
        """Index entry of `record` (stored under `key`) in the named index."""
        values = self._descriptor.index_values(index_name, record)
        return IndexEntry(
            index_name=index_name,
            key=self._descriptor.encode_index_entry(index_name, values, key),
            value=self._descriptor.encode_key_bytes(key),
        )

    def plan(
        self,
        key: TableKey,
        old_record: Any | None,
        new_record: Any | None,
        new_key: TableKey | None = None,
    ) -> IndexDelta:
        """Compute the index changes for a record mutation.

        Args:
            key: Primary key the old record is stored under.
            old_record: Previous record, None on insert.
            new_record: New record, None on delete.
            new_key: Primary key of the new record if it differs from `key`.

        Returns:
            The entries to write and to remove.
        """
        delta = IndexDelta()
        target_key = new_key or key

        for idx in self._descriptor.indexes:
            old_entry = (
                self.entry_for(idx.name, old_record, key) if old_record is not None else None
            )
            new_entry = (
                self.entry_for(idx.name, new_record, target_key)
                if new_record is not None
                else None
            )

            if old_entry is not None and new_entry is not None and old_entry == new_entry:
                delta.unchanged.append(idx.name)
                continue
            if old_entry is not None:
                delta.deletes.append(old_entry)
            if new_entry is not None:
                delta.puts.append(new_entry)

        return delta
