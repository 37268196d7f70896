"""Tests for the rating lifecycle service."""

import uuid
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from api.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from api.models.rating import ChangeRequestStatus
from api.services.rating_service import MAX_BULK_RATINGS, RatingService, RatingSubmission
from tests.fixtures import InMemoryRatingRepository
from worker.notifications.events import EventType
from worker.scoring.rating_scale import Rating


@pytest.fixture
def repo():
    return InMemoryRatingRepository()


@pytest.fixture
def notifier():
    notifier = AsyncMock()
    notifier.notify = AsyncMock(return_value=[])
    return notifier


@pytest.fixture
def service(repo, notifier, ticking_clock):
    return RatingService(repo, notifier=notifier, clock=ticking_clock)


@pytest.fixture
def assignment(repo, developer):
    return repo.add_assignment(weightage=40, user_id=developer.id)


async def approved_rating(service, supervisor, assignment):
    event = await service.submit_rating(supervisor, assignment.id, Rating.MEETS_EXPECTATIONS)
    return await service.approve_rating(supervisor, event.id)


class TestSubmitRating:
    """Tests for submit_rating."""

    async def test_creates_unapproved_rating(self, service, repo, supervisor, assignment, notifier):
        event = await service.submit_rating(
            supervisor, assignment.id, "exceeds_expectations", notes="Strong quarter"
        )

        assert event.rating == "EXCEEDS_EXPECTATIONS"
        assert event.is_approved is False
        assert event.submitted_by_user_id == supervisor.id
        assert repo.ratings[event.id] is event
        assert repo.commits == 1

        published = notifier.notify.await_args.args[0]
        assert published.type == EventType.RATING_SUBMITTED
        assert published.after["rating"] == "EXCEEDS_EXPECTATIONS"

    async def test_admin_may_submit(self, service, admin, assignment):
        event = await service.submit_rating(admin, assignment.id, Rating.OUTSTANDING)
        assert event.submitted_by_user_id == admin.id

    async def test_developer_denied(self, service, repo, developer, assignment, notifier):
        with pytest.raises(AuthorizationError):
            await service.submit_rating(developer, assignment.id, Rating.OUTSTANDING)

        assert repo.ratings == {}
        notifier.notify.assert_not_awaited()

    async def test_unknown_rating_rejected(self, service, supervisor, assignment):
        with pytest.raises(ValidationError):
            await service.submit_rating(supervisor, assignment.id, "BELOW_EXPECTATIONS")

    async def test_missing_assignment(self, service, repo, supervisor):
        with pytest.raises(NotFoundError):
            await service.submit_rating(supervisor, uuid.uuid4(), Rating.OUTSTANDING)
        assert repo.rollbacks == 1

    async def test_new_submission_supersedes_unapproved(self, service, repo, supervisor, assignment):
        first = await service.submit_rating(supervisor, assignment.id, Rating.MEETS_EXPECTATIONS)
        second = await service.submit_rating(supervisor, assignment.id, Rating.OUTSTANDING)

        current = await repo.get_current_rating(assignment.id)
        assert current is second
        assert first.id in repo.ratings
        assert first.id in repo.locked

    async def test_approved_rating_is_locked(self, service, repo, supervisor, assignment):
        approved = await approved_rating(service, supervisor, assignment)

        with pytest.raises(ConflictError) as exc_info:
            await service.submit_rating(supervisor, assignment.id, Rating.OUTSTANDING)

        assert exc_info.value.details == {"rating_id": str(approved.id)}
        assert len(repo.ratings) == 1


class TestBulkSubmit:
    """Tests for bulk_submit_ratings."""

    async def test_submits_all(self, service, repo, supervisor, notifier):
        assignments = [repo.add_assignment() for _ in range(3)]
        items = [RatingSubmission(a.id, Rating.MEETS_EXPECTATIONS) for a in assignments]

        events = await service.bulk_submit_ratings(supervisor, items)

        assert len(events) == 3
        assert len(repo.ratings) == 3
        assert repo.commits == 1
        assert notifier.notify.await_count == 3

    async def test_one_failure_rejects_batch(self, service, repo, supervisor, notifier):
        good = repo.add_assignment()
        items = [
            RatingSubmission(good.id, Rating.OUTSTANDING),
            RatingSubmission(uuid.uuid4(), Rating.OUTSTANDING),
        ]

        with pytest.raises(NotFoundError):
            await service.bulk_submit_ratings(supervisor, items)

        assert repo.ratings == {}
        assert repo.rollbacks == 1
        notifier.notify.assert_not_awaited()

    async def test_locked_item_rejects_batch(self, service, repo, supervisor):
        locked = repo.add_assignment()
        await approved_rating(service, supervisor, locked)
        fresh = repo.add_assignment()

        with pytest.raises(ConflictError):
            await service.bulk_submit_ratings(
                supervisor,
                [
                    RatingSubmission(fresh.id, Rating.OUTSTANDING),
                    RatingSubmission(locked.id, Rating.OUTSTANDING),
                ],
            )

        assert len(repo.ratings) == 1

    async def test_invalid_rating_rejects_before_writing(self, service, repo, supervisor):
        a = repo.add_assignment()
        with pytest.raises(ValidationError):
            await service.bulk_submit_ratings(
                supervisor, [RatingSubmission(a.id, "OUTSTANDING"), RatingSubmission(uuid.uuid4(), "???")]
            )
        assert repo.commits == 0
        assert repo.ratings == {}

    async def test_empty_batch(self, service, supervisor):
        with pytest.raises(ValidationError):
            await service.bulk_submit_ratings(supervisor, [])

    async def test_too_many_items(self, service, supervisor):
        items = [RatingSubmission(uuid.uuid4(), "OUTSTANDING") for _ in range(MAX_BULK_RATINGS + 1)]
        with pytest.raises(ValidationError):
            await service.bulk_submit_ratings(supervisor, items)

    async def test_duplicate_assignment(self, service, repo, supervisor):
        a = repo.add_assignment()
        with pytest.raises(ValidationError, match="more than once"):
            await service.bulk_submit_ratings(
                supervisor, [RatingSubmission(a.id, "OUTSTANDING"), RatingSubmission(a.id, "OUTSTANDING")]
            )

    async def test_permission_checked(self, service, developer):
        with pytest.raises(AuthorizationError):
            await service.bulk_submit_ratings(developer, [])


class TestApproveRating:
    """Tests for approve_rating."""

    async def test_approve_locks(self, service, supervisor, assignment, notifier):
        event = await approved_rating(service, supervisor, assignment)

        assert event.is_approved is True
        assert event.is_locked
        assert event.approved_by_user_id == supervisor.id
        assert event.approved_at is not None

        published = notifier.notify.await_args.args[0]
        assert published.type == EventType.RATING_APPROVED
        assert published.before["is_approved"] is False
        assert published.after["is_approved"] is True

    async def test_approve_twice_conflicts(self, service, supervisor, assignment):
        event = await approved_rating(service, supervisor, assignment)
        with pytest.raises(ConflictError, match="already approved"):
            await service.approve_rating(supervisor, event.id)

    async def test_admin_cannot_approve(self, service, supervisor, admin, assignment):
        event = await service.submit_rating(supervisor, assignment.id, Rating.OUTSTANDING)
        with pytest.raises(AuthorizationError):
            await service.approve_rating(admin, event.id)

    async def test_missing_rating(self, service, supervisor):
        with pytest.raises(NotFoundError):
            await service.approve_rating(supervisor, uuid.uuid4())


class TestChangeRequests:
    """Tests for requesting and reviewing rating changes."""

    async def test_request_change(self, service, repo, supervisor, assignment, notifier):
        event = await approved_rating(service, supervisor, assignment)

        request = await service.request_rating_change(supervisor, event.id, "  Wrong goal rated  ")

        assert request.status == ChangeRequestStatus.PENDING.value
        assert request.reason == "Wrong goal rated"
        assert request.requested_by_user_id == supervisor.id
        assert event.id in repo.locked
        assert notifier.notify.await_args.args[0].type == EventType.CHANGE_REQUESTED

    async def test_reason_required(self, service, supervisor, assignment):
        event = await approved_rating(service, supervisor, assignment)
        with pytest.raises(ValidationError) as exc_info:
            await service.request_rating_change(supervisor, event.id, "   ")
        assert exc_info.value.details == {"field": "reason"}

    async def test_unapproved_rating_rejected(self, service, supervisor, assignment):
        event = await service.submit_rating(supervisor, assignment.id, Rating.OUTSTANDING)
        with pytest.raises(ConflictError, match="Only approved"):
            await service.request_rating_change(supervisor, event.id, "Typo")

    async def test_only_one_pending(self, service, repo, supervisor, assignment):
        event = await approved_rating(service, supervisor, assignment)
        first = await service.request_rating_change(supervisor, event.id, "Typo")

        with pytest.raises(ConflictError) as exc_info:
            await service.request_rating_change(supervisor, event.id, "Another typo")

        assert exc_info.value.details["change_request_id"] == str(first.id)
        assert len(repo.change_requests) == 1

    async def test_approve_request_unlocks_rating(self, service, supervisor, admin, assignment, notifier):
        event = await approved_rating(service, supervisor, assignment)
        request = await service.request_rating_change(supervisor, event.id, "Wrong goal")

        reviewed = await service.review_change_request(admin, request.id, approved=True, notes="OK")

        assert reviewed.status == ChangeRequestStatus.APPROVED.value
        assert reviewed.reviewed_by_user_id == admin.id
        assert reviewed.review_notes == "OK"
        assert event.is_approved is False
        assert event.approved_at is None
        assert event.approved_by_user_id is None

        published = notifier.notify.await_args.args[0]
        assert published.type == EventType.CHANGE_REQUEST_APPROVED
        assert published.recipient_id == supervisor.id

        # Unlocked rating can be superseded again
        replacement = await service.submit_rating(supervisor, assignment.id, Rating.OUTSTANDING)
        assert replacement.is_approved is False

    async def test_reject_keeps_rating_locked(self, service, supervisor, admin, assignment):
        event = await approved_rating(service, supervisor, assignment)
        request = await service.request_rating_change(supervisor, event.id, "Wrong goal")

        reviewed = await service.review_change_request(admin, request.id, approved=False)

        assert reviewed.status == ChangeRequestStatus.REJECTED.value
        assert event.is_approved is True
        with pytest.raises(ConflictError):
            await service.submit_rating(supervisor, assignment.id, Rating.OUTSTANDING)

    async def test_new_request_allowed_after_rejection(self, service, supervisor, admin, assignment):
        event = await approved_rating(service, supervisor, assignment)
        request = await service.request_rating_change(supervisor, event.id, "First")
        await service.review_change_request(admin, request.id, approved=False)

        second = await service.request_rating_change(supervisor, event.id, "Second")
        assert second.status == ChangeRequestStatus.PENDING.value

    async def test_review_twice_conflicts(self, service, supervisor, admin, assignment):
        event = await approved_rating(service, supervisor, assignment)
        request = await service.request_rating_change(supervisor, event.id, "Typo")
        await service.review_change_request(admin, request.id, approved=False)

        with pytest.raises(ConflictError, match="already rejected"):
            await service.review_change_request(admin, request.id, approved=True)

    async def test_supervisor_cannot_review(self, service, supervisor, assignment):
        event = await approved_rating(service, supervisor, assignment)
        request = await service.request_rating_change(supervisor, event.id, "Typo")
        with pytest.raises(AuthorizationError):
            await service.review_change_request(supervisor, request.id, approved=True)

    async def test_developer_cannot_request(self, service, supervisor, developer, assignment):
        event = await approved_rating(service, supervisor, assignment)
        with pytest.raises(AuthorizationError):
            await service.request_rating_change(developer, event.id, "Please")

    async def test_missing_request(self, service, admin):
        with pytest.raises(NotFoundError):
            await service.review_change_request(admin, uuid.uuid4(), approved=True)

    async def test_list_filters_by_status(self, service, supervisor, admin, repo):
        a1, a2 = repo.add_assignment(), repo.add_assignment()
        e1 = await approved_rating(service, supervisor, a1)
        e2 = await approved_rating(service, supervisor, a2)
        r1 = await service.request_rating_change(supervisor, e1.id, "One")
        await service.request_rating_change(supervisor, e2.id, "Two")
        await service.review_change_request(admin, r1.id, approved=False)

        pending = await service.list_change_requests(admin, ChangeRequestStatus.PENDING)
        everything = await service.list_change_requests(supervisor)

        assert [r.reason for r in pending] == ["Two"]
        assert len(everything) == 2

    async def test_list_denied_for_developer(self, service, developer):
        with pytest.raises(AuthorizationError):
            await service.list_change_requests(developer)


class TestAtomicity:
    """Request and rating writes commit together or not at all."""

    async def test_failed_review_write_rolls_back(
        self, service, repo, supervisor, admin, assignment, notifier
    ):
        event = await approved_rating(service, supervisor, assignment)
        request = await service.request_rating_change(supervisor, event.id, "Wrong goal")
        published = notifier.notify.await_count
        repo.persist_change_review = AsyncMock(side_effect=RuntimeError("connection lost"))

        with pytest.raises(RuntimeError):
            await service.review_change_request(admin, request.id, approved=True)

        assert repo.change_requests[request.id].status == ChangeRequestStatus.PENDING.value
        assert repo.change_requests[request.id].reviewed_by_user_id is None
        assert repo.ratings[event.id].is_approved is True
        assert repo.ratings[event.id].approved_by_user_id == supervisor.id
        assert repo.rollbacks == 1
        assert notifier.notify.await_count == published

    async def test_current_rating_follows_insertion_order(
        self, repo, supervisor, assignment, now
    ):
        # Second submission comes from a host whose clock runs behind
        stamps = iter([now, now - timedelta(minutes=5)])
        service = RatingService(repo, clock=lambda: next(stamps))

        await service.submit_rating(supervisor, assignment.id, Rating.OUTSTANDING)
        second = await service.submit_rating(supervisor, assignment.id, Rating.DOES_NOT_MEET)

        assert await repo.get_current_rating(assignment.id) is second


class TestNotificationFailures:
    """Notification failures never undo a committed transition."""

    async def test_failing_notifier_is_swallowed(self, repo, supervisor, assignment, ticking_clock):
        notifier = AsyncMock()
        notifier.notify = AsyncMock(side_effect=RuntimeError("webhook down"))
        service = RatingService(repo, notifier=notifier, clock=ticking_clock)

        event = await service.submit_rating(supervisor, assignment.id, Rating.OUTSTANDING)

        assert repo.ratings[event.id] is event
        assert repo.commits == 1

    async def test_no_notifier(self, repo, supervisor, assignment):
        service = RatingService(repo)
        event = await service.submit_rating(supervisor, assignment.id, Rating.OUTSTANDING)
        assert event.created_at is not None
