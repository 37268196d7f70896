"""Goal and GoalAssignment models."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from api.database import Base

if TYPE_CHECKING:
    from api.models.evidence import EvidenceLog
    from api.models.rating import RatingEvent
    from api.models.user import User


class AssignmentStatus(StrEnum):
    """Lifecycle of a goal assignment."""

    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class Goal(Base):
    """A goal template with a weight in the 0-100 range."""

    __tablename__ = "goals"
    __table_args__ = (
        CheckConstraint("weightage >= 0 AND weightage <= 100", name="ck_goals_weightage_range"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    weightage: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    assignments: Mapped[list[GoalAssignment]] = relationship(
        "GoalAssignment", back_populates="goal"
    )


class GoalAssignment(Base):
    """A goal assigned to a user for a review cycle.

    Rows are immutable apart from ``status``; the weight is copied from the
    goal at assignment time so later goal edits do not rescore history.
    """

    __tablename__ = "goal_assignments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    goal_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("goals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    cycle: Mapped[str] = mapped_column(String(50), nullable=False)  # e.g. "2024-H1"
    weightage: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=AssignmentStatus.ACTIVE.value,
        nullable=False,
        index=True,
    )
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    # Relationships
    user: Mapped[User] = relationship("User", back_populates="assignments")
    goal: Mapped[Goal] = relationship("Goal", back_populates="assignments", lazy="joined")
    evidence: Mapped[list[EvidenceLog]] = relationship(
        "EvidenceLog",
        back_populates="assignment",
        order_by="EvidenceLog.created_at.desc()",
    )
    ratings: Mapped[list[RatingEvent]] = relationship(
        "RatingEvent",
        back_populates="assignment",
        order_by="RatingEvent.sequence.desc()",
    )
