from __future__ import annotations

"""Prometheus metrics for the TaskStream runtime.

Counters cover stream events, extraction fallbacks and form validation; the
HTTP middleware records request latency per method/path/status.
"""

import time
from typing import Awaitable, Callable

from prometheus_client import Counter, Histogram
from starlette.requests import Request
from starlette.responses import Response

STREAM_EVENTS = Counter(
    "taskstream_stream_events_total",
    "Stream events applied to conversation sessions",
    labelnames=("kind",),
)

ARTIFACT_PARSE_FALLBACKS = Counter(
    "taskstream_artifact_parse_fallbacks_total",
    "Embedded blocks that degraded to plain text",
    labelnames=("reason",),
)

FORM_VALIDATION_FAILURES = Counter(
    "taskstream_form_validation_failures_total",
    "Form answers rejected by field validation",
    labelnames=("field",),
)

REQUEST_LATENCY = Histogram(
    "taskstream_request_latency_seconds",
    "HTTP request latency in seconds",
    labelnames=("method", "path", "status"),
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0),
)


def sanitize_path(path: str) -> str:
    """Reduce high-cardinality paths (e.g., /chat/sessions/{id}) to a coarse label."""
    if not path:
        return "/"
    segs = path.split("?")[0].split("/")
    if len(segs) > 1:
        return "/" + segs[1]
    return path


def metrics_middleware_factory() -> Callable[[Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]]:
    async def middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        if request.url.path.startswith("/metrics"):
            return await call_next(request)
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        REQUEST_LATENCY.labels(
            method=request.method,
            path=sanitize_path(request.url.path),
            status=str(response.status_code),
        ).observe(elapsed)
        return response

    return middleware
