"""Business logic services package."""

from api.services.rating_service import RatingService, RatingSubmission
from api.services.score_service import ScoreService, build_goal_inputs

__all__ = [
    "RatingService",
    "RatingSubmission",
    "ScoreService",
    "build_goal_inputs",
]
