"""Rating vocabulary and the normalized scale used for all scoring.

A single five-point scale is used everywhere: goal scoring, trend
analysis and the labels shown in score breakdowns. Unknown values score 0.0 so that aggregation
degrades instead of failing.
"""

from enum import StrEnum

from api.exceptions import ValidationError


class Rating(StrEnum):
    """Performance rating given to a goal assignment."""

    DOES_NOT_MEET = "DOES_NOT_MEET"
    IMPROVEMENT_NEEDED = "IMPROVEMENT_NEEDED"
    MEETS_EXPECTATIONS = "MEETS_EXPECTATIONS"
    EXCEEDS_EXPECTATIONS = "EXCEEDS_EXPECTATIONS"
    OUTSTANDING = "OUTSTANDING"


# Sentinel for ratings outside the vocabulary
NO_SCORE = 0.0

MAX_RATING_SCORE = 1.0

RATING_SCORES: dict[Rating, float] = {
    Rating.DOES_NOT_MEET: 0.2,
    Rating.IMPROVEMENT_NEEDED: 0.4,
    Rating.MEETS_EXPECTATIONS: 0.6,
    Rating.EXCEEDS_EXPECTATIONS: 0.8,
    Rating.OUTSTANDING: 1.0,
}

RATING_LABELS: dict[Rating, str] = {
    Rating.DOES_NOT_MEET: "Does Not Meet Standards",
    Rating.IMPROVEMENT_NEEDED: "Improvement Needed",
    Rating.MEETS_EXPECTATIONS: "Meets Expectations",
    Rating.EXCEEDS_EXPECTATIONS: "Exceeds Expectations",
    Rating.OUTSTANDING: "Outstanding",
}


def _coerce(rating: Rating | str | None) -> Rating | None:
    if rating is None:
        return None
    if isinstance(rating, Rating):
        return rating
    try:
        return Rating(str(rating).strip().upper())
    except ValueError:
        return None


def rating_to_score(rating: Rating | str | None) -> float:
    """Map a rating to its normalized score; unknown values score 0.0."""
    coerced = _coerce(rating)
    if coerced is None:
        return NO_SCORE
    return RATING_SCORES[coerced]


def rating_label(rating: Rating | str | None) -> str:
    """Human-readable label, falling back to the raw value."""
    coerced = _coerce(rating)
    if coerced is None:
        return str(rating) if rating is not None else ""
    return RATING_LABELS[coerced]


def parse_rating(value: Rating | str | None) -> Rating:
    """Strictly parse a rating from input, raising ValidationError if unknown."""
    coerced = _coerce(value)
    if coerced is None:
        allowed = ", ".join(r.value for r in Rating)
        raise ValidationError(
            f"Unknown rating '{value}'. Expected one of: {allowed}",
            field="rating",
        )
    return coerced
