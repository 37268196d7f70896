"""FastAPI dependencies for dependency injection."""

import uuid
from typing import Annotated

from fastapi import Depends, Request

from api.config import Settings, get_settings
from api.database import DbSession
from api.exceptions import AuthenticationError
from api.models.user import User, UserStatus
from api.repositories.rating_repository import SqlAlchemyRatingRepository
from api.sentry import set_user_context
from api.services.rating_service import RatingService
from api.services.score_service import ScoreService
from worker.notifications.providers import Notifier, build_notifier

# Re-export DbSession for convenience
__all__ = [
    "DbSession",
    "SettingsDep",
    "CurrentActor",
    "NotifierDep",
    "RatingServiceDep",
    "ScoreServiceDep",
]


# Settings dependency
SettingsDep = Annotated[Settings, Depends(get_settings)]


async def get_current_actor(request: Request, db: DbSession) -> User:
    """Load the acting user named by the upstream gateway."""
    raw_user_id = getattr(request.state, "user_id", None)
    if not raw_user_id:
        raise AuthenticationError()

    try:
        user_id = uuid.UUID(str(raw_user_id))
    except ValueError:
        raise AuthenticationError("Invalid user identity") from None

    user = await db.get(User, user_id)
    if user is None or user.status != UserStatus.ACTIVE.value:
        raise AuthenticationError("User is not active")

    set_user_context(str(user.id), user.role)
    return user


CurrentActor = Annotated[User, Depends(get_current_actor)]


def get_notifier(request: Request) -> Notifier:
    """Notifier built at startup; falls back to one from settings."""
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is None:
        notifier = build_notifier()
        request.app.state.notifier = notifier
    return notifier


NotifierDep = Annotated[Notifier, Depends(get_notifier)]


def get_rating_service(db: DbSession, notifier: NotifierDep) -> RatingService:
    return RatingService(SqlAlchemyRatingRepository(db), notifier)


def get_score_service(db: DbSession) -> ScoreService:
    return ScoreService(db)


RatingServiceDep = Annotated[RatingService, Depends(get_rating_service)]
ScoreServiceDep = Annotated[ScoreService, Depends(get_score_service)]
