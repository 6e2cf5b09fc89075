"""Prometheus metrics for the HTTP surface and the engine, mirrored to OpenTelemetry."""

from __future__ import annotations

from contextlib import contextmanager
import time
from typing import TYPE_CHECKING, Any

from opentelemetry import metrics as otel_metrics
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
    OTLPMetricExporter as GrpcOTLPMetricExporter,
)
from opentelemetry.exporter.otlp.proto.http.metric_exporter import (
    OTLPMetricExporter as HttpOTLPMetricExporter,
)
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest


if TYPE_CHECKING:
    from collections.abc import Generator

    from docindex_server.config import CollectorConfig


_meter_holder: dict[str, Any] = {"meter": None, "provider": None, "exporting": False}


def init_metrics(
    service_name: str = "docindex-server",
    metric_readers: list[PeriodicExportingMetricReader] | None = None,
) -> MeterProvider:
    """Install the global meter provider (idempotent unless readers are supplied)."""
    provider = _meter_holder.get("provider")
    if isinstance(provider, MeterProvider) and not metric_readers:
        return provider

    provider = MeterProvider(
        resource=Resource.create({"service.name": service_name}),
        metric_readers=metric_readers or [],
    )
    otel_metrics.set_meter_provider(provider)
    _meter_holder["provider"] = provider
    _meter_holder["meter"] = otel_metrics.get_meter(__name__)
    return provider


def configure_metrics_exporter(config: CollectorConfig | None, *, service_name: str = "docindex-server") -> bool:
    """Start periodic OTLP export of every bridged metric. Returns True when export was enabled."""
    if not config or not config.enabled or _meter_holder.get("exporting"):
        return False

    endpoint = config.collector_endpoint
    if config.otlp_protocol == "http":
        endpoint = endpoint.removesuffix("/v1/traces").rstrip("/") + "/v1/metrics"
        exporter = HttpOTLPMetricExporter(endpoint=endpoint, headers=config.headers, timeout=config.timeout_seconds)
    else:
        exporter = GrpcOTLPMetricExporter(
            endpoint=endpoint,
            headers=config.headers,
            timeout=config.timeout_seconds,
            insecure=config.grpc_insecure,
        )

    init_metrics(service_name=service_name, metric_readers=[PeriodicExportingMetricReader(exporter)])
    for bridge in MetricBridge.registry:
        bridge.reset_instrument()
    _meter_holder["exporting"] = True
    return True


def _get_meter():
    if _meter_holder.get("meter") is None:
        init_metrics()
    return _meter_holder["meter"]


class _BoundMetric:
    def __init__(self, bridge: MetricBridge, labels: dict[str, str]) -> None:
        self._bridge = bridge
        self._labels = labels

    def inc(self, amount: float = 1.0) -> None:
        self._bridge.inc(self._labels, amount)

    def observe(self, value: float) -> None:
        self._bridge.observe(self._labels, value)

    def set(self, value: float) -> None:
        self._bridge.set(self._labels, value)


class MetricBridge:
    """A Prometheus metric whose updates are also recorded on an OTel instrument."""

    registry: list[MetricBridge] = []

    def __init__(self, prom_metric: Counter | Histogram | Gauge, *, kind: str) -> None:
        if kind not in ("counter", "histogram", "gauge"):
            raise ValueError(f"Unknown metric kind: {kind}")
        self.prom_metric = prom_metric
        self.kind = kind
        family = prom_metric.describe()[0]
        self.name = family.name
        self.description = family.documentation
        self._instrument = None
        self._gauge_values: dict[tuple[tuple[str, str], ...], float] = {}
        MetricBridge.registry.append(self)

    def labels(self, **labels: str) -> _BoundMetric:
        return _BoundMetric(self, labels)

    def reset_instrument(self) -> None:
        self._instrument = None

    def _otel(self):
        if self._instrument is None:
            meter = _get_meter()
            if self.kind == "counter":
                self._instrument = meter.create_counter(self.name, description=self.description)
            elif self.kind == "histogram":
                self._instrument = meter.create_histogram(self.name, unit="s", description=self.description)
            else:
                self._instrument = meter.create_up_down_counter(self.name, description=self.description)
        return self._instrument

    def inc(self, labels: dict[str, str], amount: float) -> None:
        self.prom_metric.labels(**labels).inc(amount)
        self._otel().add(amount, labels)

    def observe(self, labels: dict[str, str], value: float) -> None:
        self.prom_metric.labels(**labels).observe(value)
        self._otel().record(value, labels)

    def set(self, labels: dict[str, str], value: float) -> None:
        self.prom_metric.labels(**labels).set(value)
        key = tuple(sorted(labels.items()))
        delta = value - self._gauge_values.get(key, 0.0)
        if delta:
            self._otel().add(delta, labels)
        self._gauge_values[key] = value


REQUEST_COUNT = MetricBridge(
    Counter("docindex_http_requests_total", "HTTP requests by route and status", ["route", "method", "status"]),
    kind="counter",
)

REQUEST_LATENCY = MetricBridge(
    Histogram(
        "docindex_http_request_latency_seconds",
        "HTTP request latency in seconds",
        ["route", "method"],
        buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
    ),
    kind="histogram",
)

QUERY_LATENCY = MetricBridge(
    Histogram(
        "docindex_query_latency_seconds",
        "Engine query latency by access strategy",
        ["collection", "strategy"],
        buckets=(0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25),
    ),
    kind="histogram",
)

DOCUMENT_COUNT = MetricBridge(
    Gauge("docindex_documents", "Documents stored per collection", ["collection"]),
    kind="gauge",
)

WRITE_OUTCOMES = MetricBridge(
    Counter(
        "docindex_writes_total",
        "Write operations by kind and outcome code",
        ["collection", "operation", "outcome"],
    ),
    kind="counter",
)


@contextmanager
def track_latency(histogram: MetricBridge, **labels: str) -> Generator[None, None, None]:
    """Observe the wall time of the wrapped block, including when it raises."""
    start = time.perf_counter()
    try:
        yield
    finally:
        histogram.labels(**labels).observe(time.perf_counter() - start)


def get_metrics() -> bytes:
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
