"""Per-request correlation state shared by logs and spans.

Each HTTP request gets a trace id (taken from ``X-Trace-Id`` when the caller
sends one) and, once known, the caller id used by the search log. The
JSON formatter reads both so every log line of a request can be grouped.
"""

from __future__ import annotations

from contextvars import ContextVar
from uuid import uuid4


TRACE_HEADER = "x-trace-id"

request_context: ContextVar[dict[str, str] | None] = ContextVar("request_context", default=None)


def new_trace_id() -> str:
    return uuid4().hex


def new_span_id() -> str:
    return uuid4().hex[:16]


def start_request(trace_id: str | None = None) -> dict[str, str]:
    """Reset the context for a new request, keeping an inbound trace id when valid."""
    if not trace_id or len(trace_id) > 64 or not trace_id.isalnum():
        trace_id = new_trace_id()
    ctx = {"trace_id": trace_id, "span_id": new_span_id()}
    request_context.set(ctx)
    return ctx


def get_request_context() -> dict[str, str]:
    """Current request context, starting a fresh one outside any request."""
    ctx = request_context.get()
    if ctx is None or not ctx.get("trace_id"):
        ctx = start_request()
    return ctx


def bind_caller(caller_id: str | None) -> None:
    """Attach the caller id to the current request for log correlation."""
    if not caller_id:
        return
    request_context.set({**get_request_context(), "caller_id": caller_id})


def update_span_id(span_id: str) -> None:
    """Point log lines at the active span while keeping the request's trace id."""
    request_context.set({**get_request_context(), "span_id": span_id})
