"""Rating workflow API schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from api.models.rating import ChangeRequestStatus


class RatingCreate(BaseModel):
    """Request to submit a rating for a goal assignment."""

    assignment_id: UUID
    # Checked against the rating vocabulary by the service
    rating: str = Field(..., min_length=1, max_length=40)
    notes: str | None = Field(default=None, max_length=5000)


class RatingBulkCreate(BaseModel):
    """Several ratings submitted as one all-or-nothing batch."""

    items: list[RatingCreate] = Field(..., min_length=1)


class ChangeRequestCreate(BaseModel):
    """Request to unlock an approved rating."""

    reason: str = Field(..., max_length=2000)


class ChangeRequestReview(BaseModel):
    """Admin decision on a pending change request."""

    approved: bool
    notes: str | None = Field(default=None, max_length=2000)


class RatingResponse(BaseModel):
    """Rating event response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    assignment_id: UUID
    rating: str
    notes: str | None
    submitted_by_user_id: UUID | None
    is_approved: bool
    approved_at: datetime | None
    approved_by_user_id: UUID | None
    created_at: datetime


class ChangeRequestResponse(BaseModel):
    """Change request response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    rating_event_id: UUID
    reason: str
    status: ChangeRequestStatus
    requested_by_user_id: UUID | None
    reviewed_by_user_id: UUID | None
    review_notes: str | None
    created_at: datetime
    reviewed_at: datetime | None
