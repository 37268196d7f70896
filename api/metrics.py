"""Prometheus metrics for monitoring and observability."""

from __future__ import annotations

import re
import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware

# Request metrics
REQUEST_COUNT = Counter(
    "perfboard_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

REQUEST_LATENCY = Histogram(
    "perfboard_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

REQUEST_IN_PROGRESS = Gauge(
    "perfboard_http_requests_in_progress",
    "HTTP requests currently being processed",
    ["method", "endpoint"],
)

# Error metrics
ERROR_COUNT = Counter(
    "perfboard_errors_total",
    "Total application errors",
    ["error_type", "endpoint"],
)

# Business metrics
RATING_TRANSITIONS_TOTAL = Counter(
    "perfboard_rating_transitions_total",
    "Rating lifecycle transitions",
    ["transition"],
)

SCORE_COMPUTATIONS_TOTAL = Counter(
    "perfboard_score_computations_total",
    "Composite score computations",
    ["context"],
)

SCORE_COMPUTATION_TIME = Histogram(
    "perfboard_score_computation_seconds",
    "Time spent assembling and computing a leaderboard or user score",
    ["context"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

NOTIFICATIONS_TOTAL = Counter(
    "perfboard_notifications_total",
    "Lifecycle notifications delivered per sink",
    ["sink", "status"],
)

# Job metrics
JOB_PROCESSING_TIME = Histogram(
    "perfboard_job_processing_seconds",
    "Job processing time in seconds",
    ["job_type"],
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0],
)

_UUID_RE = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
    flags=re.IGNORECASE,
)
_NUMERIC_ID_RE = re.compile(r"/\d+(/|$)")


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    metrics: bytes = generate_latest()
    return metrics


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    content_type: str = CONTENT_TYPE_LATEST
    return content_type


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect request metrics."""

    # Paths to exclude from metrics
    EXCLUDE_PATHS = {"/metrics", "/api/health", "/api/ready", "/favicon.ico"}

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if request.url.path in self.EXCLUDE_PATHS:
            return await call_next(request)

        method = request.method
        endpoint = normalize_path(request.url.path)

        REQUEST_IN_PROGRESS.labels(method=method, endpoint=endpoint).inc()
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            REQUEST_COUNT.labels(
                method=method,
                endpoint=endpoint,
                status_code=str(response.status_code),
            ).inc()
            REQUEST_LATENCY.labels(method=method, endpoint=endpoint).observe(
                time.perf_counter() - start_time
            )
            return response

        except Exception as e:
            ERROR_COUNT.labels(error_type=type(e).__name__, endpoint=endpoint).inc()
            raise

        finally:
            REQUEST_IN_PROGRESS.labels(method=method, endpoint=endpoint).dec()


def normalize_path(path: str) -> str:
    """Replace UUIDs and numeric IDs with placeholders to bound label cardinality."""
    path = _UUID_RE.sub("{id}", path)
    return _NUMERIC_ID_RE.sub(r"/{id}\1", path)


# Helper functions for recording business metrics


def record_rating_transition(transition: str, count: int = 1) -> None:
    """Record a committed lifecycle transition (submitted, approved, ...)."""
    RATING_TRANSITIONS_TOTAL.labels(transition=transition).inc(count)


def record_score_computation(context: str, duration: float, count: int = 1) -> None:
    """Record composite scores computed for a user view or leaderboard."""
    SCORE_COMPUTATIONS_TOTAL.labels(context=context).inc(count)
    SCORE_COMPUTATION_TIME.labels(context=context).observe(duration)


def record_notification(sink: str, success: bool = True) -> None:
    """Record a notification delivery attempt."""
    NOTIFICATIONS_TOTAL.labels(sink=sink, status="success" if success else "failed").inc()


def record_job_duration(job_type: str, duration: float) -> None:
    """Record job processing duration."""
    JOB_PROCESSING_TIME.labels(job_type=job_type).observe(duration)
