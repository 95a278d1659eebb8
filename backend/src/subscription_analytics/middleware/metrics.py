"""Prometheus metrics middleware for the HTTP API."""
import time

from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Action endpoints can wait on a full Stripe scan, hence the long tail
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    labelnames=["method", "route", "status_code"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
)

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "route", "status_code"],
)

http_errors_total = Counter(
    "http_errors_total",
    "Requests that raised an unhandled exception",
    labelnames=["method", "route", "error_type"],
)


def _route_label(request: Request) -> str:
    """Route template (e.g. ``/v1/analytics/actions/refresh-stats``), or "unmatched"."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class MetricsMiddleware(BaseHTTPMiddleware):
    """Record request count and latency per route template."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        # Skip the scrape endpoint itself
        if request.url.path.startswith("/metrics"):
            return await call_next(request)

        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            http_errors_total.labels(
                method=request.method,
                route=_route_label(request),
                error_type=type(exc).__name__,
            ).inc()
            raise

        route = _route_label(request)
        http_request_duration_seconds.labels(
            method=request.method,
            route=route,
            status_code=response.status_code,
        ).observe(time.perf_counter() - started)
        http_requests_total.labels(
            method=request.method,
            route=route,
            status_code=response.status_code,
        ).inc()

        return response
