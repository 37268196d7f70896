"""Tests for score assembly and the score service."""

import uuid
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from api.exceptions import AuthorizationError, NotFoundError
from api.models.user import UserStatus
from api.permissions import Role
from api.services.score_service import ScoreService, build_goal_inputs
from worker.scoring.composite import REASON_NO_RATINGS


def rating(value: str, created_at, sequence: int = 1):
    return SimpleNamespace(rating=value, created_at=created_at, sequence=sequence)


def evidence(created_at, text="Shipped it", links=None, metrics=None):
    return SimpleNamespace(
        created_at=created_at, text=text, supporting_links=links or [], metrics=metrics or {}
    )


def assignment(title="Latency", weightage=40, ratings=(), entries=(), user_id=None):
    return SimpleNamespace(
        goal_id=uuid.uuid4(),
        goal=SimpleNamespace(title=title),
        weightage=weightage,
        ratings=list(ratings),
        evidence=list(entries),
        user_id=user_id,
    )


def scalars_result(rows):
    result = MagicMock()
    result.scalars.return_value.all.return_value = rows
    result.unique.return_value.scalars.return_value.all.return_value = rows
    return result


class TestBuildGoalInputs:
    """Tests for build_goal_inputs."""

    def test_latest_rating_is_current(self, now):
        a = assignment(
            ratings=[
                rating("MEETS_EXPECTATIONS", now - timedelta(days=10), sequence=2),
                rating("OUTSTANDING", now - timedelta(days=1), sequence=3),
                rating("DOES_NOT_MEET", now - timedelta(days=20), sequence=1),
            ]
        )

        goals, history = build_goal_inputs([a])

        assert goals[0].rating == "OUTSTANDING"
        assert goals[0].goal_title == "Latency"
        assert goals[0].weightage == 40
        assert len(history) == 3

    def test_insertion_order_beats_skewed_timestamps(self, now):
        # Second submission came from a host whose clock runs a minute behind
        a = assignment(
            ratings=[
                rating("OUTSTANDING", now, sequence=1),
                rating("DOES_NOT_MEET", now - timedelta(minutes=1), sequence=2),
            ]
        )

        goals, _ = build_goal_inputs([a])

        assert goals[0].rating == "DOES_NOT_MEET"

    def test_unrated_assignment(self):
        goals, history = build_goal_inputs([assignment()])
        assert goals[0].rating is None
        assert goals[0].evidence_count == 0
        assert history == []

    def test_evidence_summary(self, now):
        a = assignment(
            ratings=[rating("MEETS_EXPECTATIONS", now)],
            entries=[
                evidence(now - timedelta(days=3), "Cut build time 40%"),
                evidence(now - timedelta(days=1), links=["https://ci.example.com/run/9"]),
            ],
        )

        goal = build_goal_inputs([a])[0][0]

        assert goal.evidence_count == 2
        assert goal.last_evidence_date == now - timedelta(days=1)
        assert goal.has_metrics
        assert goal.has_links

    def test_history_spans_assignments(self, now):
        a1 = assignment(ratings=[rating("OUTSTANDING", now)])
        a2 = assignment(
            ratings=[rating("MEETS_EXPECTATIONS", now, 2), rating("OUTSTANDING", now, 3)]
        )
        _, history = build_goal_inputs([a1, a2])
        assert len(history) == 3


class TestScoreService:
    """Tests for ScoreService with a mocked session."""

    @pytest.fixture
    def db(self):
        db = MagicMock()
        db.execute = AsyncMock()
        db.get = AsyncMock()
        return db

    @pytest.fixture
    def service(self, db):
        return ScoreService(db)

    async def test_own_score_needs_no_extra_permission(self, service, db, developer, now):
        db.get.return_value = developer
        db.execute.return_value = scalars_result(
            [assignment(ratings=[rating("OUTSTANDING", now)], user_id=developer.id)]
        )

        user, breakdown = await service.compute_user_score(developer, developer.id, now=now)

        assert user is developer
        assert breakdown.goal_score == pytest.approx(0.4)

    async def test_other_users_score_denied_for_contributor(self, service, developer):
        with pytest.raises(AuthorizationError):
            await service.compute_user_score(developer, uuid.uuid4())

    async def test_supervisor_reads_any_score(self, service, db, supervisor, developer, now):
        db.get.return_value = developer
        db.execute.return_value = scalars_result([])

        user, breakdown = await service.compute_user_score(supervisor, developer.id, now=now)

        assert user is developer
        assert breakdown.top_reason == REASON_NO_RATINGS

    async def test_deleted_user_not_found(self, service, db, make_user):
        db.get.return_value = make_user(status=UserStatus.DELETED.value)
        with pytest.raises(NotFoundError):
            await service.get_user(uuid.uuid4())

    async def test_missing_user_not_found(self, service, db):
        db.get.return_value = None
        with pytest.raises(NotFoundError):
            await service.get_user(uuid.uuid4())

    async def test_fetch_no_users_skips_query(self, service, db):
        assert await service.fetch_goal_assignments([]) == {}
        db.execute.assert_not_awaited()

    async def test_cohort_leaderboard_ranks_users(self, service, db, make_user, now):
        strong = make_user("WIS", name="Strong")
        weak = make_user("WIS", name="Weak")
        db.execute.side_effect = [
            scalars_result([weak, strong]),
            scalars_result(
                [
                    assignment(ratings=[rating("OUTSTANDING", now)], user_id=strong.id),
                    assignment(ratings=[rating("DOES_NOT_MEET", now)], user_id=weak.id),
                ]
            ),
        ]

        entries = await service.cohort_leaderboard(Role.WIS, now=now)

        assert [e.name for e in entries] == ["Strong", "Weak"]
        assert [e.rank for e in entries] == [1, 2]


class TestLeaderboardAccess:
    """Tests for leaderboard cohort selection."""

    @pytest.fixture
    def service(self):
        service = ScoreService(MagicMock())
        return service

    async def test_defaults_to_viewer_role(self, service, developer):
        with patch.object(service, "cohort_leaderboard", AsyncMock(return_value=[])) as cohort:
            await service.leaderboard(developer)
        assert cohort.await_args.args[0] == "WIS"

    async def test_contributor_cannot_view_other_role(self, service, developer):
        with pytest.raises(AuthorizationError):
            await service.leaderboard(developer, role=Role.QC)

    async def test_same_role_is_allowed(self, service, developer):
        with patch.object(service, "cohort_leaderboard", AsyncMock(return_value=[])) as cohort:
            await service.leaderboard(developer, role=Role.WIS)
        cohort.assert_awaited_once()

    async def test_supervisor_can_view_other_role(self, service, supervisor):
        with patch.object(service, "cohort_leaderboard", AsyncMock(return_value=[])) as cohort:
            await service.leaderboard(supervisor, role=Role.QC)
        assert cohort.await_args.args[0] == Role.QC
