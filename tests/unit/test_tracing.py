"""Unit tests for tracing helpers."""

from __future__ import annotations

from typing import Generator

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from kv_schema.adapters.outbound import InMemoryStorage, PydanticRecordSerializer
from kv_schema.application import RecordRepository
from kv_schema.domain.entities import TableDescriptor
from kv_schema.domain.errors import NotFoundError
from kv_schema.infrastructure.metrics import MetricsRegistry
from kv_schema.infrastructure.tracing import (
    reset_tracing,
    setup_tracing,
    span_attributes,
    trace_span,
)


@pytest.fixture
def exporter() -> Generator[InMemorySpanExporter, None, None]:
    """Tracing wired to an in-memory exporter."""
    exporter = InMemorySpanExporter()
    setup_tracing(span_exporter=exporter)
    yield exporter
    reset_tracing()


@pytest.mark.unit
class TestSpanAttributes:
    """Tests for attribute normalisation."""

    def test_namespaced(self) -> None:
        """Keys gain the kv. prefix once."""
        assert span_attributes({"table": "users", "kv.index": "by_age"}) == {
            "kv.table": "users",
            "kv.index": "by_age",
        }

    def test_values_coerced(self) -> None:
        """None is dropped and other objects are recorded by repr."""
        assert span_attributes({"a": None, "b": 3, "c": (1, 2)}) == {
            "kv.b": 3,
            "kv.c": "(1, 2)",
        }


@pytest.mark.unit
class TestTraceSpan:
    """Tests for trace_span."""

    def test_records_attributes(self, exporter: InMemorySpanExporter) -> None:
        """Spans carry their namespaced attributes."""
        with trace_span("repository.get", {"table": "users"}):
            pass

        (span,) = exporter.get_finished_spans()
        assert span.name == "repository.get"
        assert span.attributes["kv.table"] == "users"

    def test_library_error_marked(self, exporter: InMemorySpanExporter) -> None:
        """Library errors name their class on the failed span."""
        with pytest.raises(NotFoundError):
            with trace_span("repository.delete", {"table": "users"}):
                raise NotFoundError("users", 1)

        (span,) = exporter.get_finished_spans()
        assert span.attributes["kv.error"] == "NotFoundError"
        assert span.status.status_code is StatusCode.ERROR

    def test_sampling_off(self) -> None:
        """A zero sample ratio drops root spans."""
        exporter = InMemorySpanExporter()
        setup_tracing(sample_ratio=0.0, span_exporter=exporter)
        try:
            with trace_span("repository.get"):
                pass
            assert len(exporter.get_finished_spans()) == 0
        finally:
            reset_tracing()

    def test_repository_operations_traced(
        self,
        exporter: InMemorySpanExporter,
        users_table: TableDescriptor,
        metrics_registry: MetricsRegistry,
    ) -> None:
        """Repository calls produce one span per operation."""
        repo = RecordRepository(
            users_table, InMemoryStorage(), PydanticRecordSerializer(), metrics=metrics_registry
        )
        key = repo.insert({"age": 30, "email": "a@x"})
        repo.get_by_index("by_age", 30)
        repo.get(key)

        spans = exporter.get_finished_spans()
        assert [s.name for s in spans] == [
            "repository.insert",
            "repository.get_by_index",
            "repository.get",
        ]
        assert all(s.attributes["kv.table"] == "users" for s in spans)
        assert spans[1].attributes["kv.index"] == "by_age"
