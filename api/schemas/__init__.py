"""Pydantic schemas package."""

from api.schemas.rating import (
    ChangeRequestCreate,
    ChangeRequestResponse,
    ChangeRequestReview,
    RatingBulkCreate,
    RatingCreate,
    RatingResponse,
)
from api.schemas.responses import ErrorDetail, ErrorResponse, SuccessResponse
from api.schemas.score import LeaderboardResponse, LeaderboardRow, UserScoreResponse

__all__ = [
    # Envelopes
    "ErrorDetail",
    "ErrorResponse",
    "SuccessResponse",
    # Ratings
    "RatingCreate",
    "RatingBulkCreate",
    "RatingResponse",
    "ChangeRequestCreate",
    "ChangeRequestReview",
    "ChangeRequestResponse",
    # Scores
    "UserScoreResponse",
    "LeaderboardRow",
    "LeaderboardResponse",
]
