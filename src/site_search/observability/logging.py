"""Structured JSON logging correlated with the request context."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import sys
from typing import Any

from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter as GrpcOTLPLogExporter
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter as HttpOTLPLogExporter
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import Resource
import orjson

from site_search.config import ObservabilityCollectorConfig
from site_search.observability.context import get_request_context


SERVICE_NAME = "site-search"

_RESERVED_RECORD_KEYS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime"}

# Libraries whose INFO output is per-request noise
_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


class JsonFormatter(logging.Formatter):
    """One JSON object per line with the request's trace and caller ids.

    Extra fields passed through ``extra=`` are copied onto the line. Keys that
    name pipeline credentials are masked, and raw user queries are cut short.
    """

    SECRET_SUFFIXES = ("api_key", "password", "token", "authorization")
    QUERY_KEYS = frozenset({"query", "q", "query_prefix"})
    MAX_MESSAGE_LEN = 2000
    MAX_QUERY_LEN = 200
    MAX_EXTRA_LEN = 500

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_request_context()
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": self._cut(record.getMessage(), self.MAX_MESSAGE_LEN),
            "trace_id": ctx.get("trace_id", ""),
            "span_id": ctx.get("span_id", ""),
        }
        if caller_id := ctx.get("caller_id"):
            entry["caller_id"] = caller_id
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS and not key.startswith("_"):
                entry[key] = self._scrub(key, value)

        return orjson.dumps(entry, default=self._json_default).decode("utf-8")

    @staticmethod
    def _cut(text: str, limit: int) -> str:
        return text if len(text) <= limit else text[:limit] + "..."

    def _scrub(self, key: str, value: Any) -> Any:
        lowered = key.lower()
        if lowered.endswith(self.SECRET_SUFFIXES):
            return "[REDACTED]"
        if not isinstance(value, str):
            return value
        if lowered in self.QUERY_KEYS:
            return self._cut(value, self.MAX_QUERY_LEN)
        return self._cut(value, self.MAX_EXTRA_LEN)

    def _json_default(self, value: Any) -> Any:
        if isinstance(value, (set, frozenset)):
            try:
                return sorted(value)
            except TypeError:
                return list(value)
        if isinstance(value, (bytes, bytearray)):
            return value.decode("utf-8", errors="replace")
        if isinstance(value, Exception):
            return str(value)
        return repr(value)


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    *,
    logger_levels: dict[str, str] | None = None,
) -> None:
    """Replace the root handlers with a single stdout handler.

    Args:
        level: Root log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Emit structured JSON logs when True
        logger_levels: Per-logger level overrides (logger name -> level string)
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    for logger_name, logger_level in (logger_levels or {}).items():
        logging.getLogger(logger_name).setLevel(getattr(logging, logger_level.upper(), logging.INFO))


_log_export_state: dict[str, LoggingHandler | None] = {"handler": None}


def configure_log_exporter(
    config: ObservabilityCollectorConfig | None,
    *,
    service_name: str = SERVICE_NAME,
    resource_attributes: dict[str, str] | None = None,
) -> LoggingHandler | None:
    """Ship INFO and above to the OTLP collector alongside stdout.

    Installs at most one export handler per process; later calls return it.
    """
    if not config or not config.enabled:
        return None
    if _log_export_state["handler"] is not None:
        return _log_export_state["handler"]

    endpoint = config.signal_endpoint("logs")
    if config.otlp_protocol == "grpc":
        exporter = GrpcOTLPLogExporter(
            endpoint=endpoint,
            headers=config.headers,
            timeout=config.timeout_seconds,
            insecure=config.grpc_insecure,
        )
    else:
        exporter = HttpOTLPLogExporter(
            endpoint=endpoint,
            headers=config.headers,
            timeout=config.timeout_seconds,
        )

    provider = LoggerProvider(resource=Resource.create({"service.name": service_name, **(resource_attributes or {})}))
    provider.add_log_record_processor(BatchLogRecordProcessor(exporter))
    set_logger_provider(provider)

    handler = LoggingHandler(level=logging.INFO, logger_provider=provider)
    logging.getLogger().addHandler(handler)
    _log_export_state["handler"] = handler
    return handler
