"""OpenTelemetry tracing with Starlette middleware."""

from __future__ import annotations

from contextlib import contextmanager
import logging
import time
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter as GrpcOTLPSpanExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter as HttpOTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import SpanKind, Status, StatusCode
from starlette.routing import Match

from docindex_server.observability.context import (
    bound_trace_context,
    update_span_id,
)
from docindex_server.observability.metrics import REQUEST_COUNT, REQUEST_LATENCY


if TYPE_CHECKING:
    from collections.abc import Generator

    from opentelemetry.trace import Span, Tracer
    from starlette.requests import Request
    from starlette.responses import Response

    from docindex_server.config import CollectorConfig

logger = logging.getLogger(__name__)

_tracer_holder: dict[str, Tracer | None] = {"tracer": None}


def init_tracing(
    service_name: str = "docindex-server",
    resource_attributes: dict[str, str] | None = None,
) -> TracerProvider:
    """Install a tracer provider for ``service_name``."""
    attributes = {"service.name": service_name, **(resource_attributes or {})}
    provider = TracerProvider(resource=Resource.create(attributes))
    trace.set_tracer_provider(provider)
    _tracer_holder["tracer"] = trace.get_tracer(__name__)
    logger.info("Tracing initialized for service: %s", service_name)
    return provider


def configure_trace_exporter(config: CollectorConfig | None, provider: TracerProvider | None = None) -> bool:
    """Attach an OTLP span exporter. Returns True when export was enabled."""
    if not config or not config.enabled:
        return False

    active_provider = provider or trace.get_tracer_provider()
    if not isinstance(active_provider, TracerProvider):
        active_provider = init_tracing(resource_attributes=config.resource_attributes)

    try:
        if config.otlp_protocol == "grpc":
            exporter = GrpcOTLPSpanExporter(
                endpoint=config.collector_endpoint,
                headers=config.headers,
                timeout=config.timeout_seconds,
                insecure=config.grpc_insecure,
            )
        else:
            exporter = HttpOTLPSpanExporter(
                endpoint=config.collector_endpoint,
                headers=config.headers,
                timeout=config.timeout_seconds,
            )
    except Exception as exc:
        logger.error("Failed to configure OTLP exporter: %s", exc, exc_info=True)
        return False

    active_provider.add_span_processor(BatchSpanProcessor(exporter))
    logger.info("OTLP trace export enabled (%s) to %s", config.otlp_protocol, config.collector_endpoint)
    return True


def get_tracer() -> Tracer:
    if _tracer_holder["tracer"] is None:
        _tracer_holder["tracer"] = trace.get_tracer(__name__)
    return _tracer_holder["tracer"]  # type: ignore[return-value]


@contextmanager
def create_span(
    name: str,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: dict[str, Any] | None = None,
) -> Generator[Span, None, None]:
    """Open a span, mark it failed if the block raises, and expose its id to log records."""
    with get_tracer().start_as_current_span(name, kind=kind, record_exception=False) as span:
        for key, value in (attributes or {}).items():
            span.set_attribute(key, value)
        span_context = span.get_span_context()
        if span_context.is_valid:
            update_span_id(format(span_context.span_id, "016x"))
        try:
            yield span
        except Exception as exc:
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            span.record_exception(exc)
            raise


def _route_template(request: Request) -> str:
    """Path template of the matched route, so ids in URLs do not become metric labels."""
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", request.url.path)
    return "unmatched"


class TraceContextMiddleware:
    """ASGI middleware binding trace ids for each HTTP request.

    Honors an incoming ``x-trace-id`` header and echoes the id back on the
    response so clients can quote it in bug reports.
    """

    def __init__(self, app: Any) -> None:
        self.app = app

    async def __call__(self, scope: dict, receive: Any, send: Any) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        incoming = headers.get(b"x-trace-id", b"").decode("latin-1").strip() or None

        with bound_trace_context(incoming, route=scope.get("path", "")) as ctx:
            trace_header = (b"x-trace-id", ctx["trace_id"].encode("latin-1"))

            async def send_with_trace_id(message: dict) -> None:
                if message["type"] == "http.response.start":
                    message.setdefault("headers", [])
                    message["headers"] = [*message["headers"], trace_header]
                await send(message)

            await self.app(scope, receive, send_with_trace_id)


async def trace_request(request: Request, call_next: Any) -> Response:
    """HTTP middleware: one server span plus request count and latency per route."""
    method = request.method
    start = time.perf_counter()
    attributes = {"http.method": method, "http.target": request.url.path}
    status = 500
    with create_span("http.request", kind=SpanKind.SERVER, attributes=attributes) as span:
        try:
            response: Response = await call_next(request)
            status = response.status_code
        finally:
            route = _route_template(request)
            span.set_attribute("http.route", route)
            span.set_attribute("http.status_code", status)
            REQUEST_COUNT.labels(route=route, method=method, status=str(status)).inc()
            REQUEST_LATENCY.labels(route=route, method=method).observe(time.perf_counter() - start)
        if status >= 500:
            span.set_status(Status(StatusCode.ERROR, f"HTTP {status}"))
        return response
