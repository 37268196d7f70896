"""Tests for the weekly summary and nightly insights scheduler."""

from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import pytest

from worker.scheduler import (
    WEEK_SECONDS,
    SummaryScheduler,
    calculate_next_weekly_run,
    ensure_insights_schedule,
    ensure_summary_schedule,
)
from worker.redis import QUEUE_LOW
from worker.tasks.insights import generate_nightly_insights_sync
from worker.tasks.summary import generate_weekly_summaries_sync


class TestCalculateNextWeeklyRun:
    """Tests for calculate_next_weekly_run."""

    def test_next_monday_from_sunday(self) -> None:
        """Next Monday from a Sunday."""
        from_time = datetime(2024, 1, 7, 10, 0, 0, tzinfo=UTC)  # Sunday
        next_run = calculate_next_weekly_run(0, 9, from_time=from_time)

        assert next_run == datetime(2024, 1, 8, 9, 0, 0, tzinfo=UTC)

    def test_same_day_before_hour(self) -> None:
        """Monday 8am schedules for Monday 9am."""
        from_time = datetime(2024, 1, 8, 8, 30, 0, tzinfo=UTC)
        next_run = calculate_next_weekly_run(0, 9, from_time=from_time)

        assert next_run == datetime(2024, 1, 8, 9, 0, 0, tzinfo=UTC)

    def test_same_day_after_hour(self) -> None:
        """Monday 10am schedules for next Monday."""
        from_time = datetime(2024, 1, 8, 10, 0, 0, tzinfo=UTC)
        next_run = calculate_next_weekly_run(0, 9, from_time=from_time)

        assert next_run == datetime(2024, 1, 15, 9, 0, 0, tzinfo=UTC)

    def test_later_in_week(self) -> None:
        """Friday target from a Tuesday."""
        from_time = datetime(2024, 1, 9, 12, 0, 0, tzinfo=UTC)
        next_run = calculate_next_weekly_run(4, 17, from_time=from_time)

        assert next_run == datetime(2024, 1, 12, 17, 0, 0, tzinfo=UTC)
        assert next_run.weekday() == 4

    def test_always_in_future(self) -> None:
        from_time = datetime(2024, 1, 10, 23, 59, 0, tzinfo=UTC)
        for day in range(7):
            assert calculate_next_weekly_run(day, 9, from_time=from_time) > from_time


class TestSummaryScheduler:
    """Tests for SummaryScheduler with a mocked rq-scheduler."""

    @pytest.fixture
    def rq_scheduler(self):
        scheduler = MagicMock()
        scheduler.get_jobs.return_value = []
        scheduler.schedule.return_value = MagicMock(id=SummaryScheduler.JOB_ID)
        return scheduler

    def test_schedules_repeating_job(self, rq_scheduler) -> None:
        service = SummaryScheduler(scheduler=rq_scheduler)
        from_time = datetime(2024, 1, 7, 10, 0, 0, tzinfo=UTC)

        job = service.schedule_weekly_summary(from_time=from_time)

        assert job.id == "weekly_summary"
        kwargs = rq_scheduler.schedule.call_args.kwargs
        assert kwargs["func"] is generate_weekly_summaries_sync
        assert kwargs["interval"] == WEEK_SECONDS
        assert kwargs["repeat"] is None
        assert kwargs["id"] == "weekly_summary"
        assert kwargs["scheduled_time"] == datetime(2024, 1, 8, 9, 0, 0, tzinfo=UTC)

    def test_reschedule_cancels_existing(self, rq_scheduler) -> None:
        existing = MagicMock(id="weekly_summary")
        rq_scheduler.get_jobs.return_value = [MagicMock(id="other"), existing]

        SummaryScheduler(scheduler=rq_scheduler).schedule_weekly_summary()

        rq_scheduler.cancel.assert_called_once_with(existing)

    def test_find_job_missing(self, rq_scheduler) -> None:
        assert SummaryScheduler(scheduler=rq_scheduler).find_job() is None

    def test_schedules_nightly_cron(self, rq_scheduler) -> None:
        rq_scheduler.cron.return_value = MagicMock(id="nightly_insights")
        rq_scheduler.get_jobs.return_value = [MagicMock(id="weekly_summary")]

        job = SummaryScheduler(scheduler=rq_scheduler).schedule_nightly_insights()

        assert job.id == "nightly_insights"
        rq_scheduler.cancel.assert_not_called()
        args, kwargs = rq_scheduler.cron.call_args
        assert args == ("0 2 * * *",)
        assert kwargs["func"] is generate_nightly_insights_sync
        assert kwargs["queue_name"] == QUEUE_LOW
        assert kwargs["id"] == "nightly_insights"

    def test_nightly_reschedule_cancels_only_its_job(self, rq_scheduler) -> None:
        weekly = MagicMock(id="weekly_summary")
        nightly = MagicMock(id="nightly_insights")
        rq_scheduler.get_jobs.return_value = [weekly, nightly]

        SummaryScheduler(scheduler=rq_scheduler).schedule_nightly_insights()

        rq_scheduler.cancel.assert_called_once_with(nightly)


class TestEnsureSummarySchedule:
    """Tests for ensure_summary_schedule."""

    def test_schedules_when_missing(self) -> None:
        service = MagicMock()
        service.find_job.return_value = None
        service.schedule_weekly_summary.return_value = MagicMock(id="weekly_summary")

        result = ensure_summary_schedule(scheduler=service)

        assert result == {"enabled": True, "scheduled": True, "job_id": "weekly_summary"}
        service.schedule_weekly_summary.assert_called_once()

    def test_keeps_existing(self) -> None:
        service = MagicMock()
        service.find_job.return_value = MagicMock(id="weekly_summary")

        result = ensure_summary_schedule(scheduler=service)

        assert result["scheduled"] is True
        service.schedule_weekly_summary.assert_not_called()

    def test_disabled(self) -> None:
        settings = MagicMock(weekly_summary_enabled=False)
        service = MagicMock()
        with patch("worker.scheduler.get_settings", return_value=settings):
            result = ensure_summary_schedule(scheduler=service)

        assert result == {"enabled": False, "scheduled": False}
        service.find_job.assert_not_called()


class TestEnsureInsightsSchedule:
    """Tests for ensure_insights_schedule."""

    def test_schedules_when_missing(self) -> None:
        service = MagicMock()
        service.find_job.return_value = None
        service.schedule_nightly_insights.return_value = MagicMock(id="nightly_insights")

        result = ensure_insights_schedule(scheduler=service)

        assert result == {"enabled": True, "scheduled": True, "job_id": "nightly_insights"}
        service.find_job.assert_called_once_with("nightly_insights")
        service.schedule_nightly_insights.assert_called_once()

    def test_keeps_existing(self) -> None:
        service = MagicMock()
        service.find_job.return_value = MagicMock(id="nightly_insights")

        result = ensure_insights_schedule(scheduler=service)

        assert result["scheduled"] is True
        service.schedule_nightly_insights.assert_not_called()

    def test_disabled(self) -> None:
        settings = MagicMock(nightly_insights_enabled=False)
        service = MagicMock()
        with patch("worker.scheduler.get_settings", return_value=settings):
            result = ensure_insights_schedule(scheduler=service)

        assert result == {"enabled": False, "scheduled": False}
        service.find_job.assert_not_called()
