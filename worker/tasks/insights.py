"""Nightly evidence insights background task.

For every active contributor outside their quiet hours, look for goals
that have gone quiet, recent evidence that lacks links or numbers, a
shifting rating trend, and goals rated above expectations. Each gap also
triggers a reminder when the user takes email.
"""

import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import select

from api.database import async_session_maker
from api.metrics import record_job_duration
from api.models.goal import GoalAssignment
from api.models.user import User, UserStatus
from api.permissions import Role
from api.services.score_service import ScoreService, build_goal_inputs
from worker.notifications.events import EventType, LifecycleEvent
from worker.notifications.providers import Notifier, build_notifier
from worker.scoring.evidence import as_utc, days_since, entry_has_metrics
from worker.scoring.rating_scale import Rating, rating_to_score
from worker.scoring.trend import TrendDirection, calculate_trend_adjustment
from worker.tasks.summary import is_within_quiet_hours

logger = structlog.get_logger(__name__)

EVIDENCE_GAP_DAYS = 14
RECENT_EVIDENCE_LIMIT = 10
# Nudge only when more than this many recent entries share the problem
QUALITY_NUDGE_THRESHOLD = 5


@dataclass
class EvidenceGap:
    """An active goal with no evidence for EVIDENCE_GAP_DAYS or more."""

    goal_title: str
    days_since_evidence: int | None  # None when nothing was ever logged

    @property
    def message(self) -> str:
        if self.days_since_evidence is None:
            return f'Evidence gap detected for "{self.goal_title}" (no evidence logged yet)'
        return (
            f'Evidence gap detected for "{self.goal_title}" '
            f"({self.days_since_evidence} days since last evidence)"
        )

    def to_dict(self) -> dict[str, Any]:
        return {"goal_title": self.goal_title, "days_since_evidence": self.days_since_evidence}


@dataclass
class UserInsights:
    user_id: uuid.UUID
    gaps: list[EvidenceGap] = field(default_factory=list)
    quality: list[str] = field(default_factory=list)
    trend: str | None = None
    appreciation: str | None = None

    @property
    def messages(self) -> list[str]:
        messages = [gap.message for gap in self.gaps] + self.quality
        if self.trend:
            messages.append(self.trend)
        if self.appreciation:
            messages.append(self.appreciation)
        return messages

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": str(self.user_id),
            "insights": self.messages,
            "evidence_gaps": len(self.gaps),
            "quality_issues": len(self.quality),
            "trends": 1 if self.trend else 0,
        }


def find_evidence_gaps(assignments: Sequence[GoalAssignment], now: datetime) -> list[EvidenceGap]:
    """Active goals whose latest evidence is EVIDENCE_GAP_DAYS old or missing."""
    goals, _ = build_goal_inputs(assignments)
    gaps = []
    for goal in goals:
        if goal.last_evidence_date is None:
            gaps.append(EvidenceGap(goal.goal_title, None))
            continue
        age = days_since(goal.last_evidence_date, now)
        if age >= EVIDENCE_GAP_DAYS:
            gaps.append(EvidenceGap(goal.goal_title, age))
    return gaps


def evidence_quality_nudges(assignments: Sequence[GoalAssignment]) -> list[str]:
    """Nudges about the most recent entries across all of a user's goals."""
    entries = sorted(
        (entry for assignment in assignments for entry in assignment.evidence),
        key=lambda entry: as_utc(entry.created_at),
        reverse=True,
    )[:RECENT_EVIDENCE_LIMIT]

    without_links = sum(1 for entry in entries if not entry.supporting_links)
    without_metrics = sum(1 for entry in entries if not entry_has_metrics(entry.text, entry.metrics))

    nudges = []
    if without_links > QUALITY_NUDGE_THRESHOLD:
        nudges.append(f"Evidence quality: {without_links} recent entries lack supporting links")
    if without_metrics > QUALITY_NUDGE_THRESHOLD:
        nudges.append(
            f"Evidence quality: {without_metrics} recent entries lack quantifiable metrics"
        )
    return nudges


def build_user_insights(
    user: User,
    assignments: Sequence[GoalAssignment],
    now: datetime,
) -> UserInsights:
    goals, history = build_goal_inputs(assignments)
    insights = UserInsights(
        user_id=user.id,
        gaps=find_evidence_gaps(assignments, now),
        quality=evidence_quality_nudges(assignments),
    )

    trend = calculate_trend_adjustment(history)
    if trend.direction == TrendDirection.IMPROVING:
        insights.trend = "Trend: Performance improving"
    elif trend.direction == TrendDirection.DECLINING:
        insights.trend = "Trend: Performance declining. Consider reviewing goals."

    exceeding = sum(
        1
        for goal in goals
        if goal.is_rated
        and rating_to_score(goal.rating) >= rating_to_score(Rating.EXCEEDS_EXPECTATIONS)
    )
    if exceeding:
        insights.appreciation = f"Great work! You're exceeding expectations on {exceeding} goal(s)"

    return insights


def generate_nightly_insights_sync() -> dict:
    """
    Synchronous wrapper for the nightly insights task.

    This is the entry point for RQ which requires sync functions.
    """
    import asyncio

    return asyncio.run(generate_nightly_insights())


async def generate_nightly_insights(
    now: datetime | None = None,
    notifier: Notifier | None = None,
) -> dict:
    """
    Publish evidence reminders and insights to active contributors.

    Users in their quiet hours are skipped entirely. Reminders go only to
    users with email enabled; insights are published either way. A failure
    for one user is logged and the run moves on.

    Returns:
        Dict with counts of processed, skipped and failed users and reminders sent
    """
    now = now or datetime.now(UTC)
    notifier = notifier or build_notifier()
    started = datetime.now(UTC)

    logger.info("nightly_insights_started")
    processed = skipped = failed = reminders = 0

    async with async_session_maker() as db:
        result = await db.execute(
            select(User).where(
                User.status == UserStatus.ACTIVE.value,
                User.role != Role.ADMIN.value,
            )
        )
        users = []
        for user in result.scalars().all():
            if is_within_quiet_hours(user.quiet_hours_start, user.quiet_hours_end, now.hour):
                logger.info("nightly_insights_skipped", user_id=str(user.id), reason="quiet_hours")
                skipped += 1
            else:
                users.append(user)

        assignments = await ScoreService(db).fetch_goal_assignments([u.id for u in users])

        for user in users:
            try:
                insights = build_user_insights(user, assignments.get(user.id, []), now)

                if user.email_enabled:
                    for gap in insights.gaps:
                        await notifier.notify(
                            LifecycleEvent(
                                type=EventType.EVIDENCE_REMINDER,
                                entity_type="user",
                                entity_id=str(user.id),
                                recipient_id=user.id,
                                after=gap.to_dict(),
                            )
                        )
                        reminders += 1

                if insights.messages:
                    await notifier.notify(
                        LifecycleEvent(
                            type=EventType.NIGHTLY_INSIGHTS,
                            entity_type="user",
                            entity_id=str(user.id),
                            recipient_id=user.id,
                            after=insights.to_dict(),
                        )
                    )
                processed += 1
            except Exception as e:
                logger.error("nightly_insights_failed", user_id=str(user.id), error=str(e))
                failed += 1

    record_job_duration("nightly_insights", (datetime.now(UTC) - started).total_seconds())
    logger.info(
        "nightly_insights_complete",
        processed=processed,
        skipped=skipped,
        failed=failed,
        reminders=reminders,
    )
    return {
        "status": "complete",
        "processed": processed,
        "skipped": skipped,
        "failed": failed,
        "reminders": reminders,
    }
