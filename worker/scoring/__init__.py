"""Scoring package for performance scores and leaderboard ranking."""

from worker.scoring.composite import ScoreBreakdown, compute_user_score
from worker.scoring.evidence import (
    EvidenceDetails,
    EvidenceSummary,
    calculate_evidence_score,
    summarize_evidence,
)
from worker.scoring.goals import GoalContribution, GoalWithRating, calculate_goal_score
from worker.scoring.ranking import CohortMember, LeaderboardEntry, find_rank, rank_cohort
from worker.scoring.rating_scale import Rating, parse_rating, rating_to_score
from worker.scoring.trend import (
    RatingHistoryEntry,
    TrendDirection,
    TrendResult,
    calculate_trend_adjustment,
)

__all__ = [
    # Rating scale
    "Rating",
    "rating_to_score",
    "parse_rating",
    # Goals
    "GoalWithRating",
    "GoalContribution",
    "calculate_goal_score",
    # Evidence
    "EvidenceDetails",
    "EvidenceSummary",
    "calculate_evidence_score",
    "summarize_evidence",
    # Trend
    "RatingHistoryEntry",
    "TrendDirection",
    "TrendResult",
    "calculate_trend_adjustment",
    # Composite
    "ScoreBreakdown",
    "compute_user_score",
    # Ranking
    "CohortMember",
    "LeaderboardEntry",
    "rank_cohort",
    "find_rank",
]
