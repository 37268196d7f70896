"""SQLAlchemy models package."""

from api.models.audit import AuditLog
from api.models.evidence import EvidenceLog
from api.models.goal import AssignmentStatus, Goal, GoalAssignment
from api.models.rating import ChangeRequestStatus, RatingChangeRequest, RatingEvent
from api.models.user import User, UserStatus

__all__ = [
    # User
    "User",
    "UserStatus",
    # Goals
    "Goal",
    "GoalAssignment",
    "AssignmentStatus",
    # Evidence
    "EvidenceLog",
    # Ratings
    "RatingEvent",
    "RatingChangeRequest",
    "ChangeRequestStatus",
    # Audit
    "AuditLog",
]
