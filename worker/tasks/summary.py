"""Weekly performance summary background task."""

import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import select

from api.database import async_session_maker
from api.metrics import record_job_duration
from api.models.evidence import EvidenceLog
from api.models.goal import GoalAssignment
from api.models.user import User, UserStatus
from api.permissions import Role
from api.services.score_service import ScoreService
from worker.notifications.events import EventType, LifecycleEvent
from worker.notifications.providers import Notifier, build_notifier
from worker.scoring.evidence import as_utc
from worker.scoring.ranking import LeaderboardEntry, find_rank

logger = structlog.get_logger(__name__)

SUMMARY_WINDOW = timedelta(days=7)
TOP_ACHIEVEMENT_CHARS = 200


@dataclass
class WeeklySummary:
    """What one user gets told about their week."""

    user_id: uuid.UUID
    active_goals: int
    evidence_added: int
    current_rank: int | None
    total_users: int
    top_achievement: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": str(self.user_id),
            "active_goals": self.active_goals,
            "evidence_added": self.evidence_added,
            "current_rank": self.current_rank,
            "total_users": self.total_users,
            "top_achievement": self.top_achievement,
        }


def is_within_quiet_hours(start: int | None, end: int | None, hour: int) -> bool:
    """Whether ``hour`` falls in [start, end).

    A window with start >= end wraps midnight (22 -> 6 covers 22:00-05:59).
    No window configured means never quiet.
    """
    if start is None or end is None:
        return False
    if start < end:
        return start <= hour < end
    return hour >= start or hour < end


def _evidence_weight(entry: EvidenceLog) -> int:
    return len(entry.metrics or {}) + len(entry.supporting_links or [])


def top_achievement(entries: Iterable[EvidenceLog]) -> str | None:
    """Text of the entry with the most metrics plus links, truncated."""
    best: EvidenceLog | None = None
    for entry in entries:
        if best is None or _evidence_weight(entry) > _evidence_weight(best):
            best = entry
    if best is None:
        return None
    return best.text[:TOP_ACHIEVEMENT_CHARS]


def build_weekly_summary(
    user: User,
    assignments: Sequence[GoalAssignment],
    leaderboard: Sequence[LeaderboardEntry],
    now: datetime,
) -> WeeklySummary:
    """Summarize a user's active assignments for the week ending ``now``."""
    since = now - SUMMARY_WINDOW
    recent = [
        entry
        for assignment in assignments
        for entry in assignment.evidence
        if as_utc(entry.created_at) >= since
    ]
    return WeeklySummary(
        user_id=user.id,
        active_goals=len(assignments),
        evidence_added=len(recent),
        current_rank=find_rank(leaderboard, user.id),
        total_users=len(leaderboard),
        top_achievement=top_achievement(recent),
    )


def generate_weekly_summaries_sync() -> dict:
    """
    Synchronous wrapper for the weekly summary task.

    This is the entry point for RQ which requires sync functions.
    """
    import asyncio

    return asyncio.run(generate_weekly_summaries())


async def generate_weekly_summaries(
    now: datetime | None = None,
    notifier: Notifier | None = None,
) -> dict:
    """
    Publish a weekly summary to every eligible user.

    Eligible users are active, not admins, have email notifications on and
    are outside their quiet hours. A failure for one user is logged and the
    run moves on to the next.

    Returns:
        Dict with counts of sent, skipped and failed summaries
    """
    now = now or datetime.now(UTC)
    notifier = notifier or build_notifier()
    started = datetime.now(UTC)

    logger.info("weekly_summaries_started")
    sent = skipped = failed = 0

    async with async_session_maker() as db:
        result = await db.execute(
            select(User).where(
                User.status == UserStatus.ACTIVE.value,
                User.role != Role.ADMIN.value,
            )
        )
        users = list(result.scalars().all())

        eligible = []
        for user in users:
            if not user.email_enabled:
                logger.info("weekly_summary_skipped", user_id=str(user.id), reason="email_disabled")
                skipped += 1
            elif is_within_quiet_hours(user.quiet_hours_start, user.quiet_hours_end, now.hour):
                logger.info("weekly_summary_skipped", user_id=str(user.id), reason="quiet_hours")
                skipped += 1
            else:
                eligible.append(user)

        service = ScoreService(db)
        assignments = await service.fetch_goal_assignments([u.id for u in eligible])
        leaderboards: dict[str, list[LeaderboardEntry]] = {}

        for user in eligible:
            try:
                if user.role not in leaderboards:
                    leaderboards[user.role] = await service.cohort_leaderboard(user.role, now=now)

                summary = build_weekly_summary(
                    user,
                    assignments.get(user.id, []),
                    leaderboards[user.role],
                    now,
                )
                await notifier.notify(
                    LifecycleEvent(
                        type=EventType.WEEKLY_SUMMARY,
                        entity_type="user",
                        entity_id=str(user.id),
                        recipient_id=user.id,
                        after=summary.to_dict(),
                    )
                )
                sent += 1
            except Exception as e:
                logger.error("weekly_summary_failed", user_id=str(user.id), error=str(e))
                failed += 1

    record_job_duration("weekly_summary", (datetime.now(UTC) - started).total_seconds())
    logger.info("weekly_summaries_complete", sent=sent, skipped=skipped, failed=failed)
    return {"status": "complete", "sent": sent, "skipped": skipped, "failed": failed}
