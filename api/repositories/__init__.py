"""Storage ports and adapters."""

from api.repositories.rating_repository import RatingRepository, SqlAlchemyRatingRepository

__all__ = ["RatingRepository", "SqlAlchemyRatingRepository"]
