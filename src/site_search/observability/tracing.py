"""OpenTelemetry tracing for the search pipeline and its HTTP front door."""

from __future__ import annotations

from contextlib import contextmanager
import logging
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter as GrpcOTLPSpanExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter as HttpOTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import SpanKind, Status, StatusCode

from site_search.config import ObservabilityCollectorConfig
from site_search.observability.context import TRACE_HEADER, start_request, update_span_id
from site_search.observability.metrics import OTLP_EXPORT_ERRORS, OTLP_EXPORT_STATUS


if TYPE_CHECKING:
    from collections.abc import Generator

    from opentelemetry.trace import Span, Tracer
    from starlette.requests import Request
    from starlette.responses import Response

logger = logging.getLogger(__name__)

_tracer_holder: dict[str, Tracer | None] = {"tracer": None}

_TRACE_HEADER_BYTES = TRACE_HEADER.encode("latin-1")


def init_tracing(
    service_name: str = "site-search",
    resource_attributes: dict[str, str] | None = None,
) -> TracerProvider:
    """Install a tracer provider carrying the service resource."""
    provider = TracerProvider(resource=Resource.create({"service.name": service_name, **(resource_attributes or {})}))
    trace.set_tracer_provider(provider)
    _tracer_holder["tracer"] = trace.get_tracer(__name__)
    logger.info("Tracing initialized for service: %s", service_name)
    return provider


def configure_trace_exporter(
    config: ObservabilityCollectorConfig | None,
    provider: TracerProvider | None = None,
) -> None:
    """Attach an OTLP span exporter; a failing exporter leaves tracing local."""
    if not config or not config.enabled:
        return

    active_provider = provider or trace.get_tracer_provider()
    if not isinstance(active_provider, TracerProvider):
        active_provider = init_tracing()

    protocol = config.otlp_protocol
    endpoint = config.signal_endpoint("traces")
    OTLP_EXPORT_STATUS.labels(protocol=protocol).set(0)
    try:
        if protocol == "grpc":
            exporter = GrpcOTLPSpanExporter(
                endpoint=endpoint,
                headers=config.headers,
                timeout=config.timeout_seconds,
                insecure=config.grpc_insecure,
            )
        else:
            exporter = HttpOTLPSpanExporter(endpoint=endpoint, headers=config.headers, timeout=config.timeout_seconds)
    except Exception as exc:
        logger.error("Failed to configure OTLP span exporter: %s", exc, exc_info=True)
        OTLP_EXPORT_ERRORS.labels(protocol=protocol).inc()
        return

    active_provider.add_span_processor(BatchSpanProcessor(exporter))
    OTLP_EXPORT_STATUS.labels(protocol=protocol).set(1)
    logger.info("OTLP trace export enabled (%s) to %s", protocol, endpoint)


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
    """Open a span and point the request context's span id at it."""
    with get_tracer().start_as_current_span(name, kind=kind, attributes=attributes) as span:
        ctx = span.get_span_context()
        if ctx.is_valid:
            update_span_id(format(ctx.span_id, "016x"))

        try:
            yield span
        except Exception as exc:
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            span.record_exception(exc)
            raise


class TraceContextMiddleware:
    """ASGI middleware starting a request context and echoing its trace id.

    An inbound ``X-Trace-Id`` is reused so callers can correlate their own
    logs with ours; otherwise a fresh id is minted.
    """

    def __init__(self, app: Any) -> None:
        self.app = app

    async def __call__(self, scope: dict, receive: Any, send: Any) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        inbound = headers.get(_TRACE_HEADER_BYTES, b"").decode("latin-1") or None
        trace_id = start_request(inbound)["trace_id"]

        async def send_with_trace_id(message: dict) -> None:
            if message["type"] == "http.response.start":
                message["headers"] = [*message.get("headers", []), (_TRACE_HEADER_BYTES, trace_id.encode("latin-1"))]
            await send(message)

        await self.app(scope, receive, send_with_trace_id)


async def trace_request(request: Request, call_next: Any) -> Response:
    """Wrap each HTTP request in a server span.

    Only the path is recorded; query strings carry user queries and caller ids.
    """
    attributes = {"http.method": request.method, "http.route": request.url.path}
    with create_span("http.request", kind=SpanKind.SERVER, attributes=attributes) as span:
        response: Response = await call_next(request)
        span.set_attribute("http.status_code", response.status_code)
        if response.status_code >= 500:
            span.set_status(Status(StatusCode.ERROR, f"HTTP {response.status_code}"))
        return response
