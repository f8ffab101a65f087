"""Domain services for key encoding and index bookkeeping.

Services implement logic that doesn't naturally fit within a single
entity. They coordinate between entities and value objects.
"""

from kv_schema.domain.services.index_maintainer import IndexDelta, IndexEntry, IndexMaintainer
from kv_schema.domain.services.key_encoder import (
    KeyCodec,
    decode,
    decode_tuple,
    encode,
    encode_tuple,
    prefix_successor,
)
from kv_schema.domain.services.sequence import SequenceAllocator

__all__ = [
    "IndexDelta",
    "IndexEntry",
    "IndexMaintainer",
    "KeyCodec",
    "SequenceAllocator",
    "decode",
    "decode_tuple",
    "encode",
    "encode_tuple",
    "prefix_successor",
]
