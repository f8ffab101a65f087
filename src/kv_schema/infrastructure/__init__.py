"""Infrastructure layer - cross-cutting concerns."""

from kv_schema.infrastructure.config import Config, get_config
from kv_schema.infrastructure.logging import get_logger, setup_logging
from kv_schema.infrastructure.metrics import MetricsRegistry, get_metrics, setup_metrics
from kv_schema.infrastructure.tracing import get_tracer, setup_tracing, trace_span

__all__ = [
    "Config",
    "get_config",
    "setup_logging",
    "get_logger",
    "setup_metrics",
    "get_metrics",
    "MetricsRegistry",
    "setup_tracing",
    "get_tracer",
    "trace_span",
]
