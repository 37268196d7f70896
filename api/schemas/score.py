"""Score and leaderboard API schemas."""

from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from worker.scoring.composite import ScoreBreakdown
from worker.scoring.ranking import LeaderboardEntry


class UserScoreResponse(BaseModel):
    """A user's composite score with its full breakdown."""

    user_id: UUID
    name: str | None
    role: str
    total_score: float
    goal_score: float
    evidence_score: float
    trend_adjustment: float
    top_reason: str
    breakdown: dict[str, Any] = Field(..., description="Goal, evidence and trend details")
    explanation: str = Field(..., description="Plain-text walk through the calculation")

    @classmethod
    def from_breakdown(
        cls,
        user_id: UUID,
        name: str | None,
        role: str,
        breakdown: ScoreBreakdown,
    ) -> "UserScoreResponse":
        data = breakdown.to_dict()
        return cls(
            user_id=user_id,
            name=name,
            role=role,
            total_score=data["total_score"],
            goal_score=data["goal_score"],
            evidence_score=data["evidence_score"],
            trend_adjustment=data["trend_adjustment"],
            top_reason=breakdown.top_reason,
            breakdown=data["breakdown"],
            explanation=breakdown.show_the_math(),
        )


class LeaderboardRow(BaseModel):
    """One ranked row."""

    user_id: UUID
    name: str | None
    rank: int
    score: float
    trend: str
    top_reason: str

    @classmethod
    def from_entry(cls, entry: LeaderboardEntry) -> "LeaderboardRow":
        return cls(**entry.to_dict())


class LeaderboardResponse(BaseModel):
    """Leaderboard for one role cohort."""

    role: str
    entries: list[LeaderboardRow]
    viewer_rank: int | None = Field(None, description="Viewer's rank, if in this cohort")
