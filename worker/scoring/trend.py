"""Rating trend analysis.

Compares the mean rating of the older and newer halves of a user's
most recent ratings and turns the difference into a small, bounded
adjustment to the composite score.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum

from worker.scoring.rating_scale import Rating, rating_to_score

TREND_WINDOW = 5
TREND_THRESHOLD = 0.1
TREND_FACTOR = 0.1
MAX_ADJUSTMENT = 0.1


class TrendDirection(StrEnum):
    """Direction of a user's recent ratings."""

    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


@dataclass
class RatingHistoryEntry:
    """One rating in a user's history, across all goal assignments."""

    rating: Rating | str
    created_at: datetime


@dataclass
class TrendResult:
    direction: TrendDirection
    adjustment: float  # -0.1 to +0.1
    first_half_avg: float = 0.0
    second_half_avg: float = 0.0
    window_size: int = 0

    def to_dict(self) -> dict:
        return {
            "direction": self.direction.value,
            "adjustment": round(self.adjustment, 4),
            "first_half_avg": round(self.first_half_avg, 4),
            "second_half_avg": round(self.second_half_avg, 4),
            "window_size": self.window_size,
        }


def _sort_key(entry: RatingHistoryEntry) -> datetime:
    created = entry.created_at
    return created.replace(tzinfo=UTC) if created.tzinfo is None else created


def calculate_trend_adjustment(history: list[RatingHistoryEntry]) -> TrendResult:
    """Classify the trend of the last five ratings.

    History may arrive in any order. With fewer than two ratings the
    trend is stable with no adjustment.
    """
    if len(history) < 2:
        return TrendResult(direction=TrendDirection.STABLE, adjustment=0.0, window_size=len(history))

    recent = sorted(history, key=_sort_key)[-TREND_WINDOW:]
    scores = [rating_to_score(entry.rating) for entry in recent]

    midpoint = len(scores) // 2
    first_half = scores[:midpoint]
    second_half = scores[midpoint:]

    first_avg = sum(first_half) / len(first_half)
    second_avg = sum(second_half) / len(second_half)
    diff = second_avg - first_avg

    direction = TrendDirection.STABLE
    adjustment = 0.0

    if diff > TREND_THRESHOLD:
        direction = TrendDirection.IMPROVING
        adjustment = min(diff * TREND_FACTOR, MAX_ADJUSTMENT)
    elif diff < -TREND_THRESHOLD:
        direction = TrendDirection.DECLINING
        adjustment = max(diff * TREND_FACTOR, -MAX_ADJUSTMENT)

    return TrendResult(
        direction=direction,
        adjustment=adjustment,
        first_half_avg=first_avg,
        second_half_avg=second_avg,
        window_size=len(scores),
    )
