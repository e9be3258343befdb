"""
Prometheus instrumentation for the back office API.

Exposes HTTP request counters and latency histograms plus a couple of
invoice workflow counters on ``/metrics``.
"""

from __future__ import annotations

import re
import time

from fastapi import Request, Response
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware


http_requests_total = Counter(
    "http_server_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_server_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

http_exceptions_total = Counter(
    "http_server_exceptions_total",
    "Total unhandled exceptions",
    ["method", "path", "exception_type"],
)

invoices_created_total = Counter(
    "invoices_created_total",
    "Invoices created",
)

invoice_number_conflicts_total = Counter(
    "invoice_number_conflicts_total",
    "Invoice creations retried after a numbering conflict",
)

invoice_emails_total = Counter(
    "invoice_emails_total",
    "Invoice emails by outcome",
    ["outcome"],
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware to collect Prometheus metrics for all requests."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        path = self._normalize_path(request.url.path)
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            http_exceptions_total.labels(method=method, path=path, exception_type=type(exc).__name__).inc()
            http_requests_total.labels(method=method, path=path, status=500).inc()
            http_request_duration_seconds.labels(method=method, path=path).observe(time.perf_counter() - start_time)
            raise

        http_requests_total.labels(method=method, path=path, status=response.status_code).inc()
        http_request_duration_seconds.labels(method=method, path=path).observe(time.perf_counter() - start_time)
        return response

    def _normalize_path(self, path: str) -> str:
        """Replace numeric IDs in path with placeholder to reduce cardinality."""
        normalized = re.sub(r"/\d+", "/{id}", path)
        return "/".join(normalized.split("/")[:5])


async def metrics_endpoint(request: Request) -> Response:
    return PlainTextResponse(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
