"""Search pipeline metrics, scraped from ``/metrics`` and optionally pushed over OTLP.

Every metric is a :class:`MetricBridge`: one Prometheus series family plus a
lazily created OpenTelemetry instrument of the same name. The Prometheus side
always works; the OTel side only leaves the process once ``init_metrics`` is
given an enabled collector config.
"""

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

from site_search.config import ObservabilityCollectorConfig


if TYPE_CHECKING:
    from collections.abc import Generator


_LATENCY_BUCKETS = (0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

# kind -> (Prometheus type, MeterProvider factory method)
_KINDS: dict[str, tuple[type, str]] = {
    "counter": (Counter, "create_counter"),
    "histogram": (Histogram, "create_histogram"),
    "gauge": (Gauge, "create_up_down_counter"),
}

_meter_state: dict[str, Any] = {"provider": None, "meter": None, "exporting": False}
_bridges: list[MetricBridge] = []


class _Series:
    """A bridge with its label values bound, mirroring ``prometheus_client``'s ``labels()``."""

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
    """One metric recorded into Prometheus and OpenTelemetry at once.

    Gauges map to OTel up-down counters, so ``set`` forwards the delta from the
    last value seen for the same label set.
    """

    def __init__(
        self,
        kind: str,
        name: str,
        description: str,
        label_names: list[str],
        **prom_kwargs: Any,
    ) -> None:
        if kind not in _KINDS:
            raise ValueError(f"Unknown metric kind: {kind}")
        prom_type, self._factory = _KINDS[kind]
        self.kind = kind
        self.name = name
        self.description = description
        self._prom_metric = prom_type(name, description, label_names, **prom_kwargs)
        self._otel_instrument: Any = None
        self._last_values: dict[tuple[tuple[str, str], ...], float] = {}
        _bridges.append(self)

    def labels(self, **labels: str) -> _Series:
        return _Series(self, labels)

    def _instrument(self) -> Any:
        if self._otel_instrument is None:
            self._otel_instrument = getattr(_get_meter(), self._factory)(self.name, description=self.description)
        return self._otel_instrument

    def inc(self, labels: dict[str, str], amount: float) -> None:
        self._prom_metric.labels(**labels).inc(amount)
        self._instrument().add(amount, labels)

    def observe(self, labels: dict[str, str], value: float) -> None:
        self._prom_metric.labels(**labels).observe(value)
        self._instrument().record(value, labels)

    def set(self, labels: dict[str, str], value: float) -> None:
        self._prom_metric.labels(**labels).set(value)
        key = tuple(sorted(labels.items()))
        delta = value - self._last_values.get(key, 0.0)
        if delta:
            self._instrument().add(delta, labels)
        self._last_values[key] = value


def _otlp_reader(config: ObservabilityCollectorConfig) -> PeriodicExportingMetricReader:
    endpoint = config.signal_endpoint("metrics")
    if config.otlp_protocol == "grpc":
        exporter = GrpcOTLPMetricExporter(
            endpoint=endpoint,
            headers=config.headers,
            timeout=config.timeout_seconds,
            insecure=config.grpc_insecure,
        )
    else:
        exporter = HttpOTLPMetricExporter(endpoint=endpoint, headers=config.headers, timeout=config.timeout_seconds)
    return PeriodicExportingMetricReader(exporter)


def init_metrics(
    service_name: str = "site-search",
    resource_attributes: dict[str, str] | None = None,
    config: ObservabilityCollectorConfig | None = None,
) -> MeterProvider:
    """Install the meter provider, attaching an OTLP reader when ``config`` enables export.

    A provider cannot gain readers after creation, so enabling export later
    replaces it and re-creates every bridge's instrument on the new meter.
    """
    wants_export = bool(config and config.enabled)
    provider = _meter_state["provider"]
    if isinstance(provider, MeterProvider) and (_meter_state["exporting"] or not wants_export):
        return provider

    readers = [_otlp_reader(config)] if wants_export and config is not None else []
    resource = Resource.create({"service.name": service_name, **(resource_attributes or {})})
    provider = MeterProvider(resource=resource, metric_readers=readers)
    otel_metrics.set_meter_provider(provider)
    _meter_state.update(provider=provider, meter=provider.get_meter(__name__), exporting=wants_export)
    for bridge in _bridges:
        bridge._otel_instrument = None
    return provider


def _get_meter() -> Any:
    if _meter_state["meter"] is None:
        init_metrics()
    return _meter_state["meter"]


# status: ok | empty | error
SEARCH_REQUESTS = MetricBridge("counter", "search_requests_total", "Search requests by outcome", ["status"])

# stage: total | understanding | index | ranking | overview
SEARCH_LATENCY = MetricBridge(
    "histogram",
    "search_latency_seconds",
    "Search pipeline latency per stage",
    ["stage"],
    buckets=_LATENCY_BUCKETS,
)

# service: index | language_model | search_log
EXTERNAL_CALL_LATENCY = MetricBridge(
    "histogram",
    "external_call_latency_seconds",
    "Latency of calls to the index engine, language model and search log",
    ["service", "operation"],
    buckets=_LATENCY_BUCKETS,
)

# outcome: hit | miss
CACHE_LOOKUPS = MetricBridge("counter", "cache_lookups_total", "Response cache lookups by outcome", ["cache", "outcome"])
CACHE_ENTRIES = MetricBridge("gauge", "cache_entries", "Live entries per response cache class", ["cache"])

ENRICHMENT_FALLBACKS = MetricBridge(
    "counter",
    "enrichment_fallbacks_total",
    "Language-model stages that degraded to their local fallback",
    ["stage", "reason"],
)

OTLP_EXPORT_ERRORS = MetricBridge("counter", "otlp_export_errors_total", "OTLP exporter setup failures", ["protocol"])
OTLP_EXPORT_STATUS = MetricBridge("gauge", "otlp_exporter_enabled", "OTLP span export active (1) or not", ["protocol"])


@contextmanager
def track_latency(histogram: MetricBridge, **labels: str) -> Generator[None, None, None]:
    """Observe the wall time of the ``with`` block, including when it raises."""
    start = time.perf_counter()
    try:
        yield
    finally:
        histogram.labels(**labels).observe(time.perf_counter() - start)


def get_metrics() -> bytes:
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
