"""Observability: OpenTelemetry-aligned tracing, Prometheus metrics and JSON logging."""

from docindex_server.observability.context import bound_trace_context, get_trace_context, set_trace_context
from docindex_server.observability.logging import JsonFormatter, configure_logging
from docindex_server.observability.metrics import (
    DOCUMENT_COUNT,
    QUERY_LATENCY,
    REQUEST_COUNT,
    REQUEST_LATENCY,
    WRITE_OUTCOMES,
    configure_metrics_exporter,
    get_metrics,
    get_metrics_content_type,
    init_metrics,
    track_latency,
)
from docindex_server.observability.tracing import (
    TraceContextMiddleware,
    configure_trace_exporter,
    create_span,
    get_tracer,
    init_tracing,
    trace_request,
)


__all__ = [
    "DOCUMENT_COUNT",
    "QUERY_LATENCY",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "WRITE_OUTCOMES",
    "JsonFormatter",
    "TraceContextMiddleware",
    "bound_trace_context",
    "configure_logging",
    "configure_metrics_exporter",
    "configure_trace_exporter",
    "create_span",
    "get_metrics",
    "get_metrics_content_type",
    "get_trace_context",
    "get_tracer",
    "init_metrics",
    "init_tracing",
    "set_trace_context",
    "trace_request",
    "track_latency",
]
