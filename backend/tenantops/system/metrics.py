import time

from fastapi import Request
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    GCCollector,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

registry = CollectorRegistry()
ProcessCollector(registry=registry)
PlatformCollector(registry=registry)
GCCollector(registry=registry)

REQUEST_LABELS = ["method", "route", "status_code", "tenant_id"]

HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "Duration of HTTP requests in seconds",
    REQUEST_LABELS,
    registry=registry,
)
HTTP_REQUESTS = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    REQUEST_LABELS,
    registry=registry,
)
ACTIVE_TENANTS = Gauge(
    "active_tenants_total",
    "Total number of active tenants",
    registry=registry,
)


def _route_template(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


def _tenant_label(request: Request) -> str:
    return (
        request.scope.get("path_params", {}).get("tenant_id")
        or request.query_params.get("tenant_id")
        or "unknown"
    )


async def track_requests(request: Request, call_next):
    start = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        labels = {
            "method": request.method,
            "route": _route_template(request),
            "status_code": str(status_code),
            "tenant_id": _tenant_label(request),
        }
        HTTP_REQUEST_DURATION.labels(**labels).observe(time.perf_counter() - start)
        HTTP_REQUESTS.labels(**labels).inc()


def record_active_tenants(count: int) -> None:
    ACTIVE_TENANTS.set(count)


def render_latest() -> tuple[bytes, str]:
    return generate_latest(registry), CONTENT_TYPE_LATEST
