"""Leaderboard ranking for a cohort of users with the same role."""

from collections.abc import Sequence
from dataclasses import dataclass
from uuid import UUID

from worker.scoring.composite import ScoreBreakdown

# Scores equal to this many decimal places count as tied
SCORE_PRECISION = 9


@dataclass
class CohortMember:
    """A user and their computed score."""

    user_id: UUID | str
    breakdown: ScoreBreakdown
    name: str | None = None


@dataclass
class LeaderboardEntry:
    """A ranked position on the leaderboard."""

    user_id: UUID | str
    rank: int
    score: float
    breakdown: ScoreBreakdown
    name: str | None = None

    def to_dict(self) -> dict:
        return {
            "user_id": str(self.user_id),
            "name": self.name,
            "rank": self.rank,
            "score": round(self.score, 4),
            "trend": self.breakdown.trend_direction.value,
            "top_reason": self.breakdown.top_reason,
        }


def rank_cohort(members: Sequence[CohortMember]) -> list[LeaderboardEntry]:
    """Order a cohort by total score.

    Highest score first; scores equal to SCORE_PRECISION places are ordered
    by user id so the same cohort always produces the same ranking. Ranks run
    1..N with no gaps.
    """
    ordered = sorted(
        members,
        key=lambda m: (-round(m.breakdown.total_score, SCORE_PRECISION), str(m.user_id)),
    )
    return [
        LeaderboardEntry(
            user_id=member.user_id,
            rank=position,
            score=member.breakdown.total_score,
            breakdown=member.breakdown,
            name=member.name,
        )
        for position, member in enumerate(ordered, start=1)
    ]


def find_rank(entries: Sequence[LeaderboardEntry], user_id: UUID | str) -> int | None:
    """Rank of ``user_id`` in a ranked leaderboard, or None if absent."""
    target = str(user_id)
    for entry in entries:
        if str(entry.user_id) == target:
            return entry.rank
    return None
