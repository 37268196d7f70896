"""Rating event and change request models."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Identity,
    Index,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from api.database import Base

if TYPE_CHECKING:
    from api.models.goal import GoalAssignment


class ChangeRequestStatus(StrEnum):
    """Review state of a change request."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class RatingEvent(Base):
    """A rating given to an assignment.

    Many per assignment; the one with the highest ``sequence`` is current.
    Once approved the rating is locked until an approved change request
    unlocks it.
    """

    __tablename__ = "rating_events"
    __table_args__ = (Index("ix_rating_events_assignment_sequence", "assignment_id", "sequence"),)
    # Load the database-assigned sequence on insert
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    assignment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("goal_assignments.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Insertion order from the database, independent of API host clocks
    sequence: Mapped[int] = mapped_column(BigInteger, Identity(), nullable=False, unique=True)

    rating: Mapped[str] = mapped_column(String(40), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    submitted_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Approval
    is_approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    assignment: Mapped[GoalAssignment] = relationship("GoalAssignment", back_populates="ratings")
    change_requests: Mapped[list[RatingChangeRequest]] = relationship(
        "RatingChangeRequest",
        back_populates="rating_event",
        cascade="all, delete-orphan",
    )

    @property
    def is_locked(self) -> bool:
        return self.is_approved


class RatingChangeRequest(Base):
    """Request to unlock an approved rating."""

    __tablename__ = "rating_change_requests"
    __table_args__ = (
        # At most one PENDING request per rating event
        Index(
            "uq_rating_change_requests_one_pending",
            "rating_event_id",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    rating_event_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("rating_events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=ChangeRequestStatus.PENDING.value,
        nullable=False,
        index=True,
    )

    requested_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    reviewed_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    rating_event: Mapped[RatingEvent] = relationship(
        "RatingEvent", back_populates="change_requests"
    )

    @property
    def is_pending(self) -> bool:
        return self.status == ChangeRequestStatus.PENDING.value
