"""Domain layer: key encoding, table metadata and index bookkeeping."""
