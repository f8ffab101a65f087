"""OpenTelemetry tracing for repository operations.

Spans are named after the operation (``repository.insert``,
``repository.range_by_index``) and carry attributes under the ``kv.``
namespace: ``kv.table``, ``kv.index`` and, when the operation fails with
a library error, ``kv.error`` holding the error class name.

Until setup_tracing runs, spans go to the no-op tracer of the global
OpenTelemetry API.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Generator

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased

from kv_schema.domain.errors import KvSchemaError


ATTRIBUTE_PREFIX = "kv."

_tracer: trace.Tracer | None = None


def setup_tracing(
    service_name: str = "kv_schema",
    otlp_endpoint: str | None = None,
    console_export: bool = False,
    sample_ratio: float = 1.0,
    span_exporter: SpanExporter | None = None,
) -> trace.Tracer:
    """
    Set up OpenTelemetry tracing.

    Args:
        service_name: Name of the service for tracing
        otlp_endpoint: OTLP collector endpoint (e.g., "http://localhost:4317")
        console_export: Whether to also export to console (for debugging)
        sample_ratio: Fraction of root spans kept; child spans follow their parent
        span_exporter: Extra exporter fed synchronously (e.g. an in-memory
            exporter in tests)

    Returns:
        Configured tracer instance
    """
    global _tracer

    from kv_schema import __version__

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.version": __version__,
        }
    )
    provider = TracerProvider(
        resource=resource,
        sampler=ParentBased(TraceIdRatioBased(sample_ratio)),
    )

    if otlp_endpoint:
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True))
        )
    if console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    if span_exporter is not None:
        provider.add_span_processor(SimpleSpanProcessor(span_exporter))

    trace.set_tracer_provider(provider)
    # The global provider can only be set once per process; keep our own handle
    _tracer = provider.get_tracer("kv_schema", __version__)
    return _tracer


def get_tracer() -> trace.Tracer:
    """Get the configured tracer, or the API's global one before setup."""
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer("kv_schema")
    return _tracer


def reset_tracing() -> None:
    """Forget the configured tracer (for testing)."""
    global _tracer
    _tracer = None


def span_attributes(attributes: dict[str, Any]) -> dict[str, Any]:
    """Namespace attributes and coerce values OpenTelemetry cannot carry.

    None values are dropped; anything other than str, bool, int or float
    is recorded by its repr.
    """
    result: dict[str, Any] = {}
    for key, value in attributes.items():
        if value is None:
            continue
        if not isinstance(value, (str, bool, int, float)):
            value = repr(value)
        name = key if key.startswith(ATTRIBUTE_PREFIX) else ATTRIBUTE_PREFIX + key
        result[name] = value
    return result


@contextmanager
def trace_span(
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Generator[trace.Span, None, None]:
    """
    Context manager for creating a trace span.

    Args:
        name: Name of the span (e.g. "repository.insert")
        attributes: Attributes to add to the span, namespaced under "kv."

    Yields:
        The created span
    """
    tracer = get_tracer()
    with tracer.start_as_current_span(name, attributes=span_attributes(attributes or {})) as span:
        try:
            yield span
        except KvSchemaError as exc:
            span.set_attribute(ATTRIBUTE_PREFIX + "error", type(exc).__name__)
            raise
