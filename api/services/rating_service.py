"""Rating lifecycle: submit, approve, request change, review.

State per rating event::

    Submitted --approve--> Approved --request change--> Approved + PENDING request
        PENDING --review(approved)--> Submitted (unlocked)
        PENDING --review(rejected)--> Approved

A new submission for the same assignment supersedes the current rating,
but only while the current rating is not approved. Every transition checks
permissions first, runs its reads and writes inside one repository
transaction, and publishes a lifecycle event only after that commits.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import structlog

from api.exceptions import ConflictError, NotFoundError, ValidationError
from api.metrics import record_rating_transition
from api.models.rating import ChangeRequestStatus, RatingChangeRequest, RatingEvent
from api.models.user import User
from api.permissions import Permission, require_permission
from api.repositories.rating_repository import RatingRepository
from worker.notifications.events import EventType, LifecycleEvent
from worker.notifications.providers import Notifier
from worker.scoring.rating_scale import Rating, parse_rating

logger = structlog.get_logger(__name__)

MAX_BULK_RATINGS = 100


@dataclass
class RatingSubmission:
    """One item of a bulk submission."""

    assignment_id: uuid.UUID
    rating: Rating | str
    notes: str | None = None


def _utcnow() -> datetime:
    return datetime.now(UTC)


def rating_snapshot(event: RatingEvent) -> dict[str, Any]:
    """JSON-safe view of a rating for audit before/after."""
    return {
        "id": str(event.id),
        "assignment_id": str(event.assignment_id),
        "rating": event.rating,
        "is_approved": bool(event.is_approved),
        "approved_at": event.approved_at.isoformat() if event.approved_at else None,
        "approved_by_user_id": (
            str(event.approved_by_user_id) if event.approved_by_user_id else None
        ),
    }


def change_request_snapshot(request: RatingChangeRequest) -> dict[str, Any]:
    return {
        "id": str(request.id),
        "rating_event_id": str(request.rating_event_id),
        "status": request.status,
        "reason": request.reason,
        "review_notes": request.review_notes,
    }


class RatingService:
    """Service for rating workflow transitions."""

    def __init__(
        self,
        repo: RatingRepository,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.repo = repo
        self.notifier = notifier
        self.clock = clock

    async def submit_rating(
        self,
        actor: User,
        assignment_id: uuid.UUID,
        rating: Rating | str,
        notes: str | None = None,
    ) -> RatingEvent:
        """Record a new rating for an assignment."""
        require_permission(actor.role, Permission.RATINGS_CREATE)
        value = parse_rating(rating)

        async with self.repo.transaction():
            event = await self._create_rating(actor, assignment_id, value, notes)

        logger.info(
            "rating_submitted",
            rating_id=str(event.id),
            assignment_id=str(assignment_id),
            rating=value.value,
        )
        record_rating_transition("submitted")
        await self._publish(
            LifecycleEvent(
                type=EventType.RATING_SUBMITTED,
                entity_type="rating_event",
                entity_id=str(event.id),
                actor_id=actor.id,
                after=rating_snapshot(event),
            )
        )
        return event

    async def bulk_submit_ratings(
        self,
        actor: User,
        items: list[RatingSubmission],
    ) -> list[RatingEvent]:
        """Submit several ratings atomically. Any failure rejects the whole batch."""
        require_permission(actor.role, Permission.RATINGS_CREATE)
        if not items:
            raise ValidationError("At least one rating is required", field="items")
        if len(items) > MAX_BULK_RATINGS:
            raise ValidationError(
                f"At most {MAX_BULK_RATINGS} ratings can be submitted at once",
                field="items",
            )

        seen: set[uuid.UUID] = set()
        for item in items:
            if item.assignment_id in seen:
                raise ValidationError(
                    f"Assignment '{item.assignment_id}' appears more than once",
                    field="items",
                )
            seen.add(item.assignment_id)
        parsed = [(item, parse_rating(item.rating)) for item in items]

        async with self.repo.transaction():
            events = [
                await self._create_rating(actor, item.assignment_id, value, item.notes)
                for item, value in parsed
            ]

        logger.info("ratings_bulk_submitted", count=len(events))
        record_rating_transition("submitted", count=len(events))
        for event in events:
            await self._publish(
                LifecycleEvent(
                    type=EventType.RATING_SUBMITTED,
                    entity_type="rating_event",
                    entity_id=str(event.id),
                    actor_id=actor.id,
                    after=rating_snapshot(event),
                )
            )
        return events

    async def _create_rating(
        self,
        actor: User,
        assignment_id: uuid.UUID,
        value: Rating,
        notes: str | None,
    ) -> RatingEvent:
        assignment = await self.repo.get_assignment(assignment_id)
        if assignment is None:
            raise NotFoundError("Goal assignment", str(assignment_id))

        current = await self.repo.get_current_rating(assignment_id, for_update=True)
        if current is not None and current.is_approved:
            raise ConflictError(
                "Current rating is approved and locked; request a change first",
                details={"rating_id": str(current.id)},
            )

        event = RatingEvent(
            id=uuid.uuid4(),
            assignment_id=assignment_id,
            rating=value.value,
            notes=notes,
            submitted_by_user_id=actor.id,
            is_approved=False,
            approved_at=None,
            approved_by_user_id=None,
            created_at=self.clock(),
        )
        return await self.repo.persist_rating_event(event)

    async def approve_rating(self, actor: User, rating_id: uuid.UUID) -> RatingEvent:
        """Approve and lock a rating."""
        require_permission(actor.role, Permission.RATINGS_APPROVE)

        async with self.repo.transaction():
            event = await self.repo.get_rating_event(rating_id, for_update=True)
            if event is None:
                raise NotFoundError("Rating", str(rating_id))
            if event.is_approved:
                raise ConflictError("Rating is already approved", details={"rating_id": str(rating_id)})

            before = rating_snapshot(event)
            event.is_approved = True
            event.approved_at = self.clock()
            event.approved_by_user_id = actor.id
            await self.repo.persist_approval(event)

        logger.info("rating_approved", rating_id=str(rating_id))
        record_rating_transition("approved")
        await self._publish(
            LifecycleEvent(
                type=EventType.RATING_APPROVED,
                entity_type="rating_event",
                entity_id=str(event.id),
                actor_id=actor.id,
                recipient_id=event.submitted_by_user_id,
                before=before,
                after=rating_snapshot(event),
            )
        )
        return event

    async def request_rating_change(
        self,
        actor: User,
        rating_id: uuid.UUID,
        reason: str,
    ) -> RatingChangeRequest:
        """Ask an admin to unlock an approved rating."""
        require_permission(actor.role, Permission.RATINGS_REQUEST_CHANGE)
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A reason is required", field="reason")

        async with self.repo.transaction():
            # Row lock serialises concurrent requests for the same rating
            event = await self.repo.get_rating_event(rating_id, for_update=True)
            if event is None:
                raise NotFoundError("Rating", str(rating_id))
            if not event.is_approved:
                raise ConflictError(
                    "Only approved ratings can have change requests",
                    details={"rating_id": str(rating_id)},
                )

            pending = await self.repo.find_pending_change_request(rating_id)
            if pending is not None:
                raise ConflictError(
                    "A change request is already pending for this rating",
                    details={"rating_id": str(rating_id), "change_request_id": str(pending.id)},
                )

            request = RatingChangeRequest(
                id=uuid.uuid4(),
                rating_event_id=rating_id,
                reason=reason,
                status=ChangeRequestStatus.PENDING.value,
                requested_by_user_id=actor.id,
                created_at=self.clock(),
            )
            await self.repo.persist_change_request(request)

        logger.info("change_requested", rating_id=str(rating_id), change_request_id=str(request.id))
        record_rating_transition("change_requested")
        await self._publish(
            LifecycleEvent(
                type=EventType.CHANGE_REQUESTED,
                entity_type="rating_change_request",
                entity_id=str(request.id),
                actor_id=actor.id,
                after=change_request_snapshot(request),
            )
        )
        return request

    async def review_change_request(
        self,
        actor: User,
        request_id: uuid.UUID,
        approved: bool,
        notes: str | None = None,
    ) -> RatingChangeRequest:
        """Approve (unlocking the rating) or reject a pending change request."""
        require_permission(actor.role, Permission.CHANGE_REQUESTS_REVIEW)

        async with self.repo.transaction():
            request = await self.repo.get_change_request(request_id, for_update=True)
            if request is None:
                raise NotFoundError("Change request", str(request_id))
            if request.status != ChangeRequestStatus.PENDING.value:
                raise ConflictError(
                    f"Change request is already {request.status.lower()}",
                    details={"change_request_id": str(request_id), "status": request.status},
                )

            before = change_request_snapshot(request)
            request.status = (
                ChangeRequestStatus.APPROVED.value if approved else ChangeRequestStatus.REJECTED.value
            )
            request.reviewed_by_user_id = actor.id
            request.reviewed_at = self.clock()
            request.review_notes = notes

            rating = None
            if approved:
                rating = await self.repo.get_rating_event(request.rating_event_id, for_update=True)
                if rating is not None:
                    # Unlock, never delete
                    rating.is_approved = False
                    rating.approved_at = None
                    rating.approved_by_user_id = None

            await self.repo.persist_change_review(request, rating)

        transition = "change_request_approved" if approved else "change_request_rejected"
        logger.info(transition, change_request_id=str(request_id))
        record_rating_transition(transition)
        await self._publish(
            LifecycleEvent(
                type=(
                    EventType.CHANGE_REQUEST_APPROVED if approved else EventType.CHANGE_REQUEST_REJECTED
                ),
                entity_type="rating_change_request",
                entity_id=str(request.id),
                actor_id=actor.id,
                recipient_id=request.requested_by_user_id,
                before=before,
                after=change_request_snapshot(request),
            )
        )
        return request

    async def list_change_requests(
        self,
        actor: User,
        status: ChangeRequestStatus | None = None,
    ) -> list[RatingChangeRequest]:
        require_permission(actor.role, Permission.CHANGE_REQUESTS_READ)
        return await self.repo.list_change_requests(status)

    async def _publish(self, event: LifecycleEvent) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.notify(event)
        except Exception as e:
            # The transition is already committed
            logger.error("notification_failed", event_type=event.type.value, error=str(e))
