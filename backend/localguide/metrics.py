"""Prometheus metrics for the Local Guide API."""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from functools import lru_cache

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, Info, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from .settings import settings

app_info = Info("local_guide", "Local Guide API information")
app_info.info({"version": settings.APP_VERSION, "service": "local-guide-api"})

# --- HTTP ---

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

http_requests_in_progress = Gauge(
    "http_requests_in_progress",
    "HTTP requests currently in progress",
    ["method", "endpoint"],
)

# --- Circuit breakers and caches ---

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open, 2=half_open)",
    ["circuit_name"],
)

circuit_breaker_rejected_total = Counter(
    "circuit_breaker_rejected_total",
    "Calls rejected while a circuit was open",
    ["circuit_name"],
)

cache_hits_total = Counter("cache_hits_total", "Total cache hits", ["cache_name"])
cache_misses_total = Counter("cache_misses_total", "Total cache misses", ["cache_name"])
cache_size = Gauge("cache_size", "Current cache size (number of entries)", ["cache_name"])

# --- Domain ---

reviews_total = Counter(
    "reviews_total",
    "Review lifecycle events",
    ["event"],
)

businesses_total = Counter(
    "businesses_total",
    "Business lifecycle events",
    ["event"],
)

search_requests_total = Counter(
    "search_requests_total",
    "Search requests by kind",
    ["kind"],
)

ai_requests_total = Counter(
    "ai_requests_total",
    "AI enrichment calls",
    ["operation", "result"],
)

ai_request_duration_seconds = Histogram(
    "ai_request_duration_seconds",
    "AI enrichment latency in seconds",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0),
)

gamification_points_total = Counter(
    "gamification_points_total",
    "Experience points awarded",
    ["action"],
)

achievements_unlocked_total = Counter(
    "achievements_unlocked_total",
    "Achievements unlocked",
    ["achievement"],
)

webhook_events_total = Counter(
    "webhook_events_total",
    "Identity provider webhook events",
    ["event_type", "result"],
)

auth_token_validations_total = Counter(
    "auth_token_validations_total",
    "Total token validation attempts",
    ["result"],
)

rate_limit_hits_total = Counter(
    "rate_limit_hits_total",
    "Total rate limit hits (requests blocked)",
)


@lru_cache(maxsize=2048)
def normalize_endpoint(path: str) -> str:
    """
    Collapse identifiers in a path to keep label cardinality bounded.

    Examples:
        /v1/businesses/5f0c...-uuid -> /v1/businesses/{id}
        /v1/reviews/42 -> /v1/reviews/{id}
    """
    path = re.sub(
        r"/[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
        "/{id}",
        path,
        flags=re.IGNORECASE,
    )
    path = re.sub(r"/\d+", "/{id}", path)
    path = re.sub(r"/[a-zA-Z0-9_-]{20,}", "/{id}", path)
    return path


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Record request counts, latency and in-flight gauges."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        endpoint = normalize_endpoint(request.url.path)
        http_requests_in_progress.labels(method=method, endpoint=endpoint).inc()
        start_time = time.perf_counter()
        status = "500"
        try:
            response = await call_next(request)
            status = str(response.status_code)
            return response
        finally:
            http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(
                time.perf_counter() - start_time
            )
            http_requests_total.labels(method=method, endpoint=endpoint, status=status).inc()
            http_requests_in_progress.labels(method=method, endpoint=endpoint).dec()


def get_metrics() -> Response:
    """Generate Prometheus metrics response."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "PrometheusMiddleware",
    "achievements_unlocked_total",
    "ai_request_duration_seconds",
    "ai_requests_total",
    "auth_token_validations_total",
    "businesses_total",
    "cache_hits_total",
    "cache_misses_total",
    "cache_size",
    "circuit_breaker_rejected_total",
    "circuit_breaker_state",
    "gamification_points_total",
    "get_metrics",
    "http_request_duration_seconds",
    "http_requests_total",
    "normalize_endpoint",
    "rate_limit_hits_total",
    "reviews_total",
    "search_requests_total",
    "webhook_events_total",
]
