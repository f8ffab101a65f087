"""Layered Storage Composer.

Stacks several Storage backends into one. Tier 0 is the fastest (e.g. an
in-memory cache) and the last tier is the most authoritative (e.g. the
file store). Reads fall through the tiers and warm the faster ones;
writes follow a WritePolicy.

Usage:
    storage = LayeredStorage(
        [InMemoryStorage(), FileStorage("/data/kv")],
        write_policy=WritePolicy.ALL_TIERS,
    )

Failure semantics:
    - A tier that raises on get is treated as a miss; the read goes on to
      the next tier. BackendFailureError is raised only if every tier
      failed.
    - A scan drops a failing tier from the merge. If every tier failed,
      BackendFailureError is raised once the surviving output (if any)
      has been yielded.
    - A failed write is reported after the remaining tiers have been
      attempted. Writes already applied to other tiers are not unwound.
    - Population of faster tiers after a read is best effort: failures
      are logged and counted, never raised.

There is no apply_batch: a batch cannot be atomic across tiers.
"""

from __future__ import annotations

import heapq
from enum import Enum
from typing import Callable, Iterator, Sequence

from kv_schema.domain.errors import BackendFailureError
from kv_schema.infrastructure.logging import get_logger
from kv_schema.infrastructure.metrics import MetricsRegistry, get_metrics
from kv_schema.ports.outbound.storage import Storage


logger = get_logger(__name__)


class WritePolicy(Enum):
    """Which tiers receive puts and deletes."""

    FIRST_TIER = "first_tier"  # Tier 0 only (write-back caches, scratch layers)
    ALL_TIERS = "all_tiers"  # Every tier, slowest first (write-through)


class LayeredStorage:
    """Storage composed of ordered tiers.

    Deletes under FIRST_TIER:
        Only tier 0 forgets the key. A deeper tier still holding it answers
        the next get (which copies the value back into tier 0) and keeps it
        in scans. Use ALL_TIERS when deletes must reach the backing store.

    Scan isolation:
        Inherited from the tiers; each tier's stream behaves as that tier
        documents.

    Thread Safety:
        Holds no state of its own beyond the tier list; safe to share when
        every tier is.
    """

    def __init__(
        self,
        tiers: Sequence[Storage],
        write_policy: WritePolicy = WritePolicy.FIRST_TIER,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """Initialize the composer.

        Args:
            tiers: Backends ordered fastest first
            write_policy: Where writes go
            metrics: Metrics registry (defaults to the process-wide one)
        """
        if not tiers:
            raise ValueError("LayeredStorage needs at least one tier")
        self._tiers = list(tiers)
        self._write_policy = write_policy
        self._metrics = metrics or get_metrics()

    @property
    def tiers(self) -> list[Storage]:
        """The composed tiers, fastest first."""
        return list(self._tiers)

    @property
    def write_policy(self) -> WritePolicy:
        return self._write_policy

    # Reads

    def get(self, key: bytes) -> bytes | None:
        """Read through the tiers, populating faster tiers on a deeper hit."""
        errors: list[BaseException] = []
        for tier, storage in enumerate(self._tiers):
            try:
                value = storage.get(key)
            except Exception as exc:
                errors.append(exc)
                self._record_failure(tier, "get", exc)
                continue

            if value is None:
                self._metrics.tier_misses_total.labels(tier=str(tier)).inc()
                continue

            self._metrics.tier_hits_total.labels(tier=str(tier)).inc()
            self._populate(key, value, upto=tier)
            return value

        if len(errors) == len(self._tiers):
            raise BackendFailureError(
                "Every storage tier failed to read",
                tier=len(self._tiers) - 1,
                errors=errors,
            )
        return None

    def _populate(self, key: bytes, value: bytes, upto: int) -> None:
        """Copy a value into tiers 0..upto-1."""
        for tier in range(upto):
            try:
                self._tiers[tier].put(key, value)
            except Exception as exc:
                self._record_failure(tier, "populate", exc)
            else:
                self._metrics.tier_populations_total.labels(tier=str(tier)).inc()

    def scan(self, prefix: bytes) -> Iterator[tuple[bytes, bytes]]:
        """Merge every tier's ordered stream; the fastest tier wins duplicates."""
        failed: list[tuple[int, BaseException]] = []
        streams = [
            self._guarded_stream(tier, storage, prefix, failed)
            for tier, storage in enumerate(self._tiers)
        ]

        last_key: bytes | None = None
        # Items are (key, tier, value): equal keys come out lowest tier first
        for key, _tier, value in heapq.merge(*streams):
            if key == last_key:
                continue
            last_key = key
            yield key, value

        if len(failed) == len(self._tiers):
            raise BackendFailureError(
                "Every storage tier failed to scan",
                tier=failed[-1][0],
                errors=[exc for _, exc in failed],
            )

    def _guarded_stream(
        self,
        tier: int,
        storage: Storage,
        prefix: bytes,
        failed: list[tuple[int, BaseException]],
    ) -> Iterator[tuple[bytes, int, bytes]]:
        try:
            for key, value in storage.scan(prefix):
                yield key, tier, value
        except Exception as exc:
            failed.append((tier, exc))
            self._record_failure(tier, "scan", exc)

    # Writes

    def put(self, key: bytes, value: bytes) -> None:
        """Write according to the write policy."""
        self._write("put", lambda storage: storage.put(key, value))

    def delete(self, key: bytes) -> None:
        """Delete according to the write policy."""
        self._write("delete", lambda storage: storage.delete(key))

    def _write_targets(self) -> list[int]:
        if self._write_policy is WritePolicy.FIRST_TIER:
            return [0]
        return list(reversed(range(len(self._tiers))))

    def _write(self, operation: str, apply: Callable[[Storage], None]) -> None:
        errors: list[BaseException] = []
        first_failed: int | None = None
        for tier in self._write_targets():
            try:
                apply(self._tiers[tier])
            except Exception as exc:
                errors.append(exc)
                if first_failed is None:
                    first_failed = tier
                self._record_failure(tier, operation, exc)

        if errors:
            raise BackendFailureError(
                f"Storage tier failed to {operation}",
                tier=first_failed,
                errors=errors,
            ) from errors[0]

    def _record_failure(self, tier: int, operation: str, exc: BaseException) -> None:
        self._metrics.tier_failures_total.labels(tier=str(tier), operation=operation).inc()
        logger.warning(
            "layered_tier_failed",
            tier=tier,
            operation=operation,
            error=str(exc),
            error_type=type(exc).__name__,
        )
