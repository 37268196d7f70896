"""Periodic job scheduling using rq-scheduler.

Registers the weekly summary job so it repeats every seven days at a fixed
weekday and hour (UTC), and the nightly insights job as a daily cron entry.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog
from rq_scheduler import Scheduler

from api.config import get_settings
from worker.redis import JOB_RESULT_TTL, QUEUE_LOW, get_redis_connection_bytes
from worker.tasks.insights import generate_nightly_insights_sync
from worker.tasks.summary import generate_weekly_summaries_sync

if TYPE_CHECKING:
    from rq.job import Job

logger = structlog.get_logger(__name__)

WEEK_SECONDS = 7 * 24 * 60 * 60


def get_scheduler() -> Scheduler:
    """Get a scheduler instance connected to Redis."""
    conn = get_redis_connection_bytes()
    return Scheduler(queue_name=QUEUE_LOW, connection=conn)


def calculate_next_weekly_run(
    day_of_week: int,
    hour: int,
    from_time: datetime | None = None,
) -> datetime:
    """
    Calculate the next weekly run time.

    Args:
        day_of_week: Day of week (0=Monday, 6=Sunday)
        hour: Hour of day (UTC)
        from_time: Calculate from this time (defaults to now)

    Returns:
        The next scheduled run datetime (UTC)
    """
    now = from_time or datetime.now(UTC)

    days_ahead = day_of_week - now.weekday()
    if days_ahead < 0:  # Target day already happened this week
        days_ahead += 7
    elif days_ahead == 0 and now.hour >= hour:  # Today but already passed
        days_ahead = 7

    return now.replace(hour=hour, minute=0, second=0, microsecond=0) + timedelta(days=days_ahead)


class SummaryScheduler:
    """Service for managing the weekly summary and nightly insights schedules."""

    JOB_ID = "weekly_summary"
    INSIGHTS_JOB_ID = "nightly_insights"

    def __init__(self, scheduler: Scheduler | None = None) -> None:
        self._scheduler = scheduler or get_scheduler()
        self._settings = get_settings()

    @property
    def scheduler(self) -> Scheduler:
        """Get the underlying rq-scheduler instance."""
        return self._scheduler

    def find_job(self, job_id: str | None = None) -> Job | None:
        job_id = job_id or self.JOB_ID
        for job in self._scheduler.get_jobs():
            if job.id == job_id:
                return job
        return None

    def schedule_weekly_summary(self, from_time: datetime | None = None) -> Job:
        """(Re)schedule the weekly summary, replacing any existing schedule."""
        existing = self.find_job()
        if existing is not None:
            self._scheduler.cancel(existing)

        next_run = calculate_next_weekly_run(
            self._settings.weekly_summary_day_of_week,
            self._settings.weekly_summary_hour,
            from_time=from_time,
        )
        job = self._scheduler.schedule(
            scheduled_time=next_run,
            func=generate_weekly_summaries_sync,
            interval=WEEK_SECONDS,
            repeat=None,  # Repeat indefinitely
            id=self.JOB_ID,
            timeout=1800,
            result_ttl=JOB_RESULT_TTL,
            meta={"type": "weekly_summary", "scheduled_at": datetime.now(UTC).isoformat()},
        )

        logger.info("weekly_summary_scheduled", job_id=job.id, next_run=next_run.isoformat())
        return job

    def schedule_nightly_insights(self) -> Job:
        """(Re)schedule the nightly insights run, replacing any existing schedule."""
        existing = self.find_job(self.INSIGHTS_JOB_ID)
        if existing is not None:
            self._scheduler.cancel(existing)

        cron_string = f"0 {self._settings.nightly_insights_hour} * * *"
        job = self._scheduler.cron(
            cron_string,
            func=generate_nightly_insights_sync,
            repeat=None,
            queue_name=QUEUE_LOW,
            id=self.INSIGHTS_JOB_ID,
            timeout=1800,
            result_ttl=JOB_RESULT_TTL,
            meta={"type": "nightly_insights", "scheduled_at": datetime.now(UTC).isoformat()},
        )

        logger.info("nightly_insights_scheduled", job_id=job.id, cron=cron_string)
        return job


def ensure_summary_schedule(scheduler: SummaryScheduler | None = None) -> dict:
    """
    Make sure the weekly summary is scheduled when enabled.

    Call this at worker startup.
    """
    settings = get_settings()
    result: dict = {"enabled": settings.weekly_summary_enabled, "scheduled": False}
    if not settings.weekly_summary_enabled:
        logger.info("weekly_summary_schedule_skipped_disabled")
        return result

    scheduler = scheduler or SummaryScheduler()
    job = scheduler.find_job() or scheduler.schedule_weekly_summary()
    result["scheduled"] = True
    result["job_id"] = job.id

    logger.info("summary_schedule_ensured", **result)
    return result


def ensure_insights_schedule(scheduler: SummaryScheduler | None = None) -> dict:
    """Make sure the nightly insights run is scheduled when enabled."""
    settings = get_settings()
    result: dict = {"enabled": settings.nightly_insights_enabled, "scheduled": False}
    if not settings.nightly_insights_enabled:
        logger.info("nightly_insights_schedule_skipped_disabled")
        return result

    scheduler = scheduler or SummaryScheduler()
    job = scheduler.find_job(SummaryScheduler.INSIGHTS_JOB_ID) or scheduler.schedule_nightly_insights()
    result["scheduled"] = True
    result["job_id"] = job.id

    logger.info("insights_schedule_ensured", **result)
    return result
