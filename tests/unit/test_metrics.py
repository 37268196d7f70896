"""Tests for metrics module."""

from unittest.mock import MagicMock

import pytest

from api.metrics import (
    ERROR_COUNT,
    NOTIFICATIONS_TOTAL,
    RATING_TRANSITIONS_TOTAL,
    REQUEST_COUNT,
    REQUEST_IN_PROGRESS,
    REQUEST_LATENCY,
    SCORE_COMPUTATIONS_TOTAL,
    MetricsMiddleware,
    get_metrics,
    get_metrics_content_type,
    normalize_path,
    record_job_duration,
    record_notification,
    record_rating_transition,
    record_score_computation,
)


class TestMetricsOutput:
    """Tests for metrics output generation."""

    def test_get_metrics_returns_bytes(self):
        output = get_metrics()
        assert isinstance(output, bytes)

    def test_get_metrics_content_type(self):
        content_type = get_metrics_content_type()
        assert "text/plain" in content_type or "openmetrics" in content_type

    def test_get_metrics_contains_custom_metrics(self):
        output = get_metrics().decode("utf-8")
        assert "perfboard_http_requests_total" in output
        assert "perfboard_http_request_duration_seconds" in output


class TestNormalizePath:
    """Tests for endpoint label normalization."""

    def test_uuid(self):
        path = "/v1/ratings/550e8400-e29b-41d4-a716-446655440000/approve"
        assert normalize_path(path) == "/v1/ratings/{id}/approve"

    def test_numeric_id(self):
        assert normalize_path("/v1/goals/12345") == "/v1/goals/{id}"

    def test_no_id(self):
        assert normalize_path("/v1/leaderboard") == "/v1/leaderboard"

    def test_multiple_uuids(self):
        path = (
            "/v1/scores/users/550e8400-e29b-41d4-a716-446655440000"
            "/goals/660e8400-e29b-41d4-a716-446655440001"
        )
        assert normalize_path(path) == "/v1/scores/users/{id}/goals/{id}"


class TestMetricsMiddleware:
    """Tests for metrics middleware."""

    @pytest.fixture
    def middleware(self):
        app = MagicMock()
        return MetricsMiddleware(app)

    def test_exclude_paths(self, middleware):
        assert "/metrics" in middleware.EXCLUDE_PATHS
        assert "/api/health" in middleware.EXCLUDE_PATHS
        assert "/api/ready" in middleware.EXCLUDE_PATHS

    @pytest.mark.asyncio
    async def test_counts_request(self, middleware):
        request = MagicMock()
        request.method = "POST"
        request.url.path = "/v1/ratings/bulk"
        response = MagicMock(status_code=201)

        async def call_next(req):
            return response

        counter = REQUEST_COUNT.labels(method="POST", endpoint="/v1/ratings/bulk", status_code="201")
        before = counter._value.get()

        assert await middleware.dispatch(request, call_next) is response
        assert counter._value.get() == before + 1

    @pytest.mark.asyncio
    async def test_counts_errors(self, middleware):
        request = MagicMock()
        request.method = "GET"
        request.url.path = "/v1/leaderboard"

        async def call_next(req):
            raise RuntimeError("boom")

        counter = ERROR_COUNT.labels(error_type="RuntimeError", endpoint="/v1/leaderboard")
        before = counter._value.get()

        with pytest.raises(RuntimeError):
            await middleware.dispatch(request, call_next)
        assert counter._value.get() == before + 1


class TestBusinessMetrics:
    """Tests for business metric recording functions."""

    def test_record_rating_transition(self):
        counter = RATING_TRANSITIONS_TOTAL.labels(transition="submitted")
        before = counter._value.get()
        record_rating_transition("submitted", count=3)
        assert counter._value.get() == before + 3

    def test_record_score_computation(self):
        counter = SCORE_COMPUTATIONS_TOTAL.labels(context="leaderboard")
        before = counter._value.get()
        record_score_computation("leaderboard", 0.05, count=12)
        assert counter._value.get() == before + 12

    def test_record_notification_failure(self):
        counter = NOTIFICATIONS_TOTAL.labels(sink="webhook", status="failed")
        before = counter._value.get()
        record_notification("webhook", success=False)
        assert counter._value.get() == before + 1

    def test_record_job_duration(self):
        # Should not raise
        record_job_duration(job_type="weekly_summary", duration=15.5)


class TestMetricLabels:
    """Tests for metric label validation."""

    def test_request_count_labels(self):
        assert REQUEST_COUNT._labelnames == ("method", "endpoint", "status_code")

    def test_request_latency_labels(self):
        assert REQUEST_LATENCY._labelnames == ("method", "endpoint")

    def test_request_in_progress_labels(self):
        assert REQUEST_IN_PROGRESS._labelnames == ("method", "endpoint")

    def test_notification_labels(self):
        assert NOTIFICATIONS_TOTAL._labelnames == ("sink", "status")
