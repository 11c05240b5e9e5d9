"""Observability module for OpenTelemetry-aligned tracing, metrics, and logging."""

from site_search.observability.context import bind_caller, get_request_context, start_request
from site_search.observability.logging import JsonFormatter, configure_log_exporter, configure_logging
from site_search.observability.metrics import (
    CACHE_ENTRIES,
    CACHE_LOOKUPS,
    ENRICHMENT_FALLBACKS,
    EXTERNAL_CALL_LATENCY,
    SEARCH_LATENCY,
    SEARCH_REQUESTS,
    get_metrics,
    get_metrics_content_type,
    init_metrics,
    track_latency,
)
from site_search.observability.tracing import configure_trace_exporter, create_span, get_tracer, init_tracing


__all__ = [
    "CACHE_ENTRIES",
    "CACHE_LOOKUPS",
    "ENRICHMENT_FALLBACKS",
    "EXTERNAL_CALL_LATENCY",
    "SEARCH_LATENCY",
    "SEARCH_REQUESTS",
    "JsonFormatter",
    "bind_caller",
    "configure_log_exporter",
    "configure_logging",
    "configure_trace_exporter",
    "create_span",
    "get_metrics",
    "get_metrics_content_type",
    "get_request_context",
    "get_tracer",
    "init_metrics",
    "init_tracing",
    "start_request",
    "track_latency",
]
