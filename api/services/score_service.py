"""Assemble scoring inputs from storage and compute scores and leaderboards."""

from __future__ import annotations

import time
import uuid
from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from api.exceptions import NotFoundError
from api.metrics import record_score_computation
from api.models.goal import AssignmentStatus, GoalAssignment
from api.models.user import User, UserStatus
from api.permissions import Permission, Role, require_permission
from worker.scoring.composite import ScoreBreakdown, compute_user_score
from worker.scoring.evidence import summarize_evidence
from worker.scoring.goals import GoalWithRating
from worker.scoring.ranking import CohortMember, LeaderboardEntry, rank_cohort
from worker.scoring.trend import RatingHistoryEntry

logger = structlog.get_logger(__name__)


def build_goal_inputs(
    assignments: Iterable[GoalAssignment],
) -> tuple[list[GoalWithRating], list[RatingHistoryEntry]]:
    """Turn loaded assignments into scorer inputs.

    Each assignment contributes one goal, rated by its current (highest
    sequence) rating event, and all of its rating events to the history.
    """
    goals: list[GoalWithRating] = []
    history: list[RatingHistoryEntry] = []

    for assignment in assignments:
        ratings = sorted(assignment.ratings, key=lambda r: r.sequence, reverse=True)
        latest = ratings[0] if ratings else None
        summary = summarize_evidence(assignment.evidence)

        goals.append(
            GoalWithRating(
                goal_id=assignment.goal_id,
                goal_title=assignment.goal.title,
                weightage=assignment.weightage,
                rating=latest.rating if latest else None,
                last_evidence_date=summary.last_evidence_date,
                evidence_count=summary.evidence_count,
                has_metrics=summary.has_metrics,
                has_links=summary.has_links,
            )
        )
        history.extend(
            RatingHistoryEntry(rating=r.rating, created_at=r.created_at) for r in ratings
        )

    return goals, history


class ScoreService:
    """Service for score and leaderboard reads."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def fetch_goal_assignments(
        self, user_ids: Sequence[uuid.UUID]
    ) -> dict[uuid.UUID, list[GoalAssignment]]:
        """Active assignments with goal, ratings and evidence loaded, per user."""
        if not user_ids:
            return {}

        result = await self.db.execute(
            select(GoalAssignment)
            .options(
                selectinload(GoalAssignment.ratings),
                selectinload(GoalAssignment.evidence),
            )
            .where(
                GoalAssignment.user_id.in_(user_ids),
                GoalAssignment.status == AssignmentStatus.ACTIVE.value,
            )
        )
        by_user: dict[uuid.UUID, list[GoalAssignment]] = defaultdict(list)
        for assignment in result.unique().scalars().all():
            by_user[assignment.user_id].append(assignment)
        return by_user

    async def fetch_rating_history(self, user_id: uuid.UUID) -> list[RatingHistoryEntry]:
        """Every rating event on the user's active assignments."""
        assignments = await self.fetch_goal_assignments([user_id])
        _, history = build_goal_inputs(assignments.get(user_id, []))
        return history

    async def get_user(self, user_id: uuid.UUID) -> User:
        user = await self.db.get(User, user_id)
        if user is None or user.status == UserStatus.DELETED.value:
            raise NotFoundError("User", str(user_id))
        return user

    async def compute_user_score(
        self,
        viewer: User,
        user_id: uuid.UUID,
        now: datetime | None = None,
    ) -> tuple[User, ScoreBreakdown]:
        """Score breakdown for one user. Anyone may read their own."""
        if user_id != viewer.id:
            require_permission(viewer.role, Permission.SCORES_READ_ANY)

        start = time.perf_counter()
        user = await self.get_user(user_id)
        assignments = await self.fetch_goal_assignments([user_id])
        goals, history = build_goal_inputs(assignments.get(user_id, []))
        breakdown = compute_user_score(goals, history, now=now)

        record_score_computation("user", time.perf_counter() - start)
        return user, breakdown

    async def cohort_leaderboard(
        self,
        role: Role | str,
        now: datetime | None = None,
    ) -> list[LeaderboardEntry]:
        """Rank every active user holding ``role``."""
        start = time.perf_counter()

        result = await self.db.execute(
            select(User).where(
                User.role == str(role),
                User.status == UserStatus.ACTIVE.value,
            )
        )
        users = list(result.scalars().all())
        assignments = await self.fetch_goal_assignments([u.id for u in users])

        members = []
        for user in users:
            goals, history = build_goal_inputs(assignments.get(user.id, []))
            members.append(
                CohortMember(
                    user_id=user.id,
                    breakdown=compute_user_score(goals, history, now=now),
                    name=user.display_name,
                )
            )

        entries = rank_cohort(members)
        duration = time.perf_counter() - start
        record_score_computation("leaderboard", duration, count=len(members))
        logger.info(
            "leaderboard_computed",
            role=str(role),
            cohort_size=len(members),
            duration_ms=round(duration * 1000, 2),
        )
        return entries

    async def leaderboard(
        self,
        viewer: User,
        role: Role | None = None,
        now: datetime | None = None,
    ) -> list[LeaderboardEntry]:
        """Leaderboard for the viewer's own role cohort.

        Users who can read any score may ask for another role's cohort.
        """
        require_permission(viewer.role, Permission.LEADERBOARD_READ)
        cohort_role: Role | str = viewer.role
        if role is not None and role != viewer.role:
            require_permission(
                viewer.role,
                Permission.SCORES_READ_ANY,
                "Only managers can view another role's leaderboard",
            )
            cohort_role = role
        return await self.cohort_leaderboard(cohort_role, now=now)