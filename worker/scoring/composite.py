"""Composite user score with "Show the Math" explainability.

    total = goal_score + evidence_score + trend_adjustment

The breakdown keeps every sub-component so the leaderboard and coaching
views can explain where a score came from.
"""

from dataclasses import dataclass, field
from datetime import datetime

from worker.scoring.evidence import EvidenceDetails, calculate_evidence_score
from worker.scoring.goals import GoalContribution, GoalWithRating, calculate_goal_score
from worker.scoring.rating_scale import rating_label
from worker.scoring.trend import (
    RatingHistoryEntry,
    TrendDirection,
    TrendResult,
    calculate_trend_adjustment,
)

REASON_NO_RATINGS = "No ratings yet"
REASON_TREND_DECLINING = "Rating trend is declining"
REASON_EVIDENCE_MISSING = "Evidence is missing or outdated"
REASON_BELOW_EXPECTATIONS = "Current ratings are below expectations"
REASON_TREND_IMPROVING = "Rating trend is improving"
REASON_MEETING_EXPECTATIONS = "Performance is meeting expectations"

EVIDENCE_REASON_THRESHOLD = 0.1
GOAL_REASON_THRESHOLD = 0.5


@dataclass
class ScoreBreakdown:
    """Complete score breakdown for one user."""

    total_score: float
    goal_score: float
    evidence_score: float
    trend_adjustment: float

    goals: list[GoalContribution]
    evidence: EvidenceDetails
    trend: TrendResult

    top_reason: str
    metadata: dict = field(default_factory=dict)

    @property
    def trend_direction(self) -> TrendDirection:
        return self.trend.direction

    def to_dict(self) -> dict:
        return {
            "total_score": round(self.total_score, 4),
            "goal_score": round(self.goal_score, 4),
            "evidence_score": round(self.evidence_score, 4),
            "trend_adjustment": round(self.trend_adjustment, 4),
            "breakdown": {
                "goals": [g.to_dict() for g in self.goals],
                "evidence": self.evidence.to_dict(),
                "trend": {
                    "direction": self.trend.direction.value,
                    "adjustment": round(self.trend.adjustment, 4),
                },
            },
            "top_reason": self.top_reason,
            "metadata": self.metadata,
        }

    def show_the_math(self) -> str:
        """Generate human-readable calculation breakdown."""
        lines = [
            "=" * 60,
            "PERFORMANCE SCORE BREAKDOWN",
            "=" * 60,
            "",
            f"Total Score: {self.total_score:.2f}",
            f"Top reason: {self.top_reason}",
            "",
            "-" * 60,
            "GOALS (weightage / 100 x rating score)",
            "-" * 60,
        ]

        if not self.goals:
            lines.append("  No rated goals")
        for goal in self.goals:
            lines.append(
                f"  {goal.goal_title}: {goal.weightage:g}/100 x {goal.rating_score:.1f} "
                f"({rating_label(goal.rating)}) = {goal.contribution:.3f}"
            )
        lines.append(f"  Goal score: {self.goal_score:.3f}")

        lines.extend(
            [
                "",
                "-" * 60,
                "EVIDENCE (0.4 recency + 0.3 completeness + 0.3 quality) x 0.2",
                "-" * 60,
                f"  Recency: {self.evidence.recency_score:.2f}",
                f"  Completeness: {self.evidence.completeness_score:.2f}",
                f"  Quality: {self.evidence.quality_score:.2f}",
                f"  Evidence score: {self.evidence_score:.3f}",
                "",
                "-" * 60,
                "TREND",
                "-" * 60,
                f"  Direction: {self.trend.direction.value}",
                f"  Adjustment: {self.trend_adjustment:+.3f}",
                "",
                "=" * 60,
            ]
        )
        return "\n".join(lines)


def determine_top_reason(
    goals: list[GoalWithRating],
    goal_score: float,
    evidence_score: float,
    trend: TrendDirection,
) -> str:
    """Pick the single most relevant reason, first match wins."""
    if not any(g.is_rated for g in goals):
        return REASON_NO_RATINGS
    if trend == TrendDirection.DECLINING:
        return REASON_TREND_DECLINING
    if evidence_score < EVIDENCE_REASON_THRESHOLD:
        return REASON_EVIDENCE_MISSING
    if goal_score < GOAL_REASON_THRESHOLD:
        return REASON_BELOW_EXPECTATIONS
    if trend == TrendDirection.IMPROVING:
        return REASON_TREND_IMPROVING
    return REASON_MEETING_EXPECTATIONS


def compute_user_score(
    goals: list[GoalWithRating],
    rating_history: list[RatingHistoryEntry],
    now: datetime | None = None,
) -> ScoreBreakdown:
    """Compute the composite score and its breakdown.

    Pure function: identical inputs (including ``now``) always produce an
    identical breakdown.
    """
    goal_result = calculate_goal_score(goals)
    evidence_result = calculate_evidence_score(goals, now=now)
    trend_result = calculate_trend_adjustment(rating_history)

    total = goal_result.score + evidence_result.score + trend_result.adjustment

    return ScoreBreakdown(
        total_score=total,
        goal_score=goal_result.score,
        evidence_score=evidence_result.score,
        trend_adjustment=trend_result.adjustment,
        goals=goal_result.details,
        evidence=evidence_result.details,
        trend=trend_result,
        top_reason=determine_top_reason(
            goals,
            goal_result.score,
            evidence_result.score,
            trend_result.direction,
        ),
        metadata={
            "goals_total": len(goals),
            "goals_rated": len(goal_result.details),
            "ratings_in_history": len(rating_history),
        },
    )
