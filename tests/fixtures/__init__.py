"""Shared test doubles."""

from tests.fixtures.rating_repository import InMemoryRatingRepository

__all__ = ["InMemoryRatingRepository"]
