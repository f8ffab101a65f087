"""Prometheus metrics for the schema runtime."""

from __future__ import annotations

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    Info,
    start_http_server,
)


class MetricsRegistry:
    """Registry of all kv_schema metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics registry."""
        self._registry = registry or REGISTRY

        # Repository metrics
        self.repository_operations_total = Counter(
            "kv_repository_operations_total",
            "Total number of record repository operations",
            ["table", "operation", "status"],  # status: success, error
            registry=self._registry,
        )

        self.repository_operation_latency_seconds = Histogram(
            "kv_repository_operation_latency_seconds",
            "Record repository operation latency in seconds",
            ["operation"],  # insert, get, update, delete, get_by_index, ...
            buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.5, 1.0),
            registry=self._registry,
        )

        # Index metrics
        self.index_entries_written_total = Counter(
            "kv_index_entries_written_total",
            "Total secondary index entries written",
            ["table", "index"],
            registry=self._registry,
        )

        self.index_entries_deleted_total = Counter(
            "kv_index_entries_deleted_total",
            "Total secondary index entries removed",
            ["table", "index"],
            registry=self._registry,
        )

        # Sequence metrics
        self.sequence_allocations_total = Counter(
            "kv_sequence_allocations_total",
            "Total auto-increment keys issued",
            ["table"],
            registry=self._registry,
        )

        # Layered storage metrics
        self.tier_hits_total = Counter(
            "kv_tier_hits_total",
            "Total point reads answered by a storage tier",
            ["tier"],
            registry=self._registry,
        )

        self.tier_misses_total = Counter(
            "kv_tier_misses_total",
            "Total point reads missed by a storage tier",
            ["tier"],
            registry=self._registry,
        )

        self.tier_failures_total = Counter(
            "kv_tier_failures_total",
            "Total storage tier failures",
            ["tier", "operation"],  # get, put, delete, scan, populate
            registry=self._registry,
        )

        self.tier_populations_total = Counter(
            "kv_tier_populations_total",
            "Total values copied into a faster tier after a miss",
            ["tier"],
            registry=self._registry,
        )

        # Runtime info
        self.info = Info(
            "kv_schema",
            "Schema runtime information",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        """The Prometheus registry the metrics are registered in."""
        return self._registry


# Global metrics registry
_metrics: MetricsRegistry | None = None


def setup_metrics(port: int = 8001, registry: CollectorRegistry | None = None) -> MetricsRegistry:
    """
    Set up the Prometheus metrics exporter.

    Args:
        port: Port for the metrics HTTP server
        registry: Optional custom registry

    Returns:
        The metrics registry
    """
    global _metrics
    _metrics = MetricsRegistry(registry)

    from kv_schema import __version__
    _metrics.info.info({
        "version": __version__,
    })

    start_http_server(port, registry=registry or REGISTRY)

    return _metrics


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsRegistry()
    return _metrics
