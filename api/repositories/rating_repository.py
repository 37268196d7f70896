"""Storage port for the rating lifecycle.

``RatingService`` talks to storage only through ``RatingRepository``.
``SqlAlchemyRatingRepository`` is the production adapter; tests use an
in-memory implementation of the same interface.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from api.exceptions import ConflictError
from api.models.goal import GoalAssignment
from api.models.rating import ChangeRequestStatus, RatingChangeRequest, RatingEvent

logger = structlog.get_logger(__name__)


class RatingRepository(ABC):
    """Reads and writes the lifecycle touches."""

    @abstractmethod
    async def get_assignment(self, assignment_id: uuid.UUID) -> GoalAssignment | None:
        pass

    @abstractmethod
    async def get_current_rating(
        self, assignment_id: uuid.UUID, for_update: bool = False
    ) -> RatingEvent | None:
        """Most recent rating event for the assignment."""
        pass

    @abstractmethod
    async def get_rating_event(
        self, rating_id: uuid.UUID, for_update: bool = False
    ) -> RatingEvent | None:
        pass

    @abstractmethod
    async def get_change_request(
        self, request_id: uuid.UUID, for_update: bool = False
    ) -> RatingChangeRequest | None:
        pass

    @abstractmethod
    async def find_pending_change_request(
        self, rating_event_id: uuid.UUID
    ) -> RatingChangeRequest | None:
        pass

    @abstractmethod
    async def list_change_requests(
        self, status: ChangeRequestStatus | None = None
    ) -> list[RatingChangeRequest]:
        """Change requests, newest first."""
        pass

    @abstractmethod
    async def persist_rating_event(self, event: RatingEvent) -> RatingEvent:
        pass

    @abstractmethod
    async def persist_approval(self, event: RatingEvent) -> RatingEvent:
        pass

    @abstractmethod
    async def persist_change_request(self, request: RatingChangeRequest) -> RatingChangeRequest:
        """Store a new request. Raises ConflictError if one is already pending."""
        pass

    @abstractmethod
    async def persist_change_review(
        self, request: RatingChangeRequest, rating: RatingEvent | None = None
    ) -> RatingChangeRequest:
        """Store a reviewed request and, when given, the rating it unlocked."""
        pass

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Unit of work: everything inside commits together or not at all."""
        pass


class SqlAlchemyRatingRepository(RatingRepository):
    """RatingRepository over an AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_assignment(self, assignment_id: uuid.UUID) -> GoalAssignment | None:
        return await self.db.get(GoalAssignment, assignment_id)

    async def get_current_rating(
        self, assignment_id: uuid.UUID, for_update: bool = False
    ) -> RatingEvent | None:
        query = (
            select(RatingEvent)
            .where(RatingEvent.assignment_id == assignment_id)
            .order_by(RatingEvent.sequence.desc())
            .limit(1)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_rating_event(
        self, rating_id: uuid.UUID, for_update: bool = False
    ) -> RatingEvent | None:
        return await self.db.get(RatingEvent, rating_id, with_for_update=for_update)

    async def get_change_request(
        self, request_id: uuid.UUID, for_update: bool = False
    ) -> RatingChangeRequest | None:
        return await self.db.get(RatingChangeRequest, request_id, with_for_update=for_update)

    async def find_pending_change_request(
        self, rating_event_id: uuid.UUID
    ) -> RatingChangeRequest | None:
        result = await self.db.execute(
            select(RatingChangeRequest).where(
                RatingChangeRequest.rating_event_id == rating_event_id,
                RatingChangeRequest.status == ChangeRequestStatus.PENDING.value,
            )
        )
        return result.scalars().first()

    async def list_change_requests(
        self, status: ChangeRequestStatus | None = None
    ) -> list[RatingChangeRequest]:
        query = select(RatingChangeRequest).order_by(RatingChangeRequest.created_at.desc())
        if status is not None:
            query = query.where(RatingChangeRequest.status == status.value)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def persist_rating_event(self, event: RatingEvent) -> RatingEvent:
        self.db.add(event)
        await self.db.flush()
        return event

    async def persist_approval(self, event: RatingEvent) -> RatingEvent:
        self.db.add(event)
        await self.db.flush()
        return event

    async def persist_change_request(self, request: RatingChangeRequest) -> RatingChangeRequest:
        self.db.add(request)
        try:
            await self.db.flush()
        except IntegrityError as e:
            # Partial unique index caught a concurrent pending request
            logger.warning(
                "change_request_conflict",
                rating_event_id=str(request.rating_event_id),
                error=str(e.orig),
            )
            raise ConflictError(
                "A change request is already pending for this rating",
                details={"rating_id": str(request.rating_event_id)},
            ) from e
        return request

    async def persist_change_review(
        self, request: RatingChangeRequest, rating: RatingEvent | None = None
    ) -> RatingChangeRequest:
        self.db.add(request)
        if rating is not None:
            self.db.add(rating)
        await self.db.flush()
        return request

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self.db.in_transaction():
            # Request-scoped session already began; isolate in a savepoint
            async with self.db.begin_nested():
                yield
            await self.db.commit()
        else:
            async with self.db.begin():
                yield
