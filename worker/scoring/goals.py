"""Goal score: weighted aggregation of current ratings.

Each rated goal contributes ``weightage / 100 * rating_score``. Unrated
goals contribute nothing and the total is not renormalized to the rated
subset, so missing ratings lower the score.
"""

from dataclasses import dataclass
from datetime import datetime

from worker.scoring.rating_scale import Rating, rating_label, rating_to_score


@dataclass
class GoalWithRating:
    """One goal assignment as seen by the scorers."""

    goal_id: str
    goal_title: str
    weightage: float  # 0-100
    rating: Rating | str | None = None

    # Evidence summary
    last_evidence_date: datetime | None = None
    evidence_count: int = 0
    has_metrics: bool = False
    has_links: bool = False

    @property
    def is_rated(self) -> bool:
        return self.rating is not None


@dataclass
class GoalContribution:
    """How much a single rated goal adds to the goal score."""

    goal_id: str
    goal_title: str
    weightage: float
    rating: str
    rating_score: float
    contribution: float

    def to_dict(self) -> dict:
        return {
            "goal_id": str(self.goal_id),
            "goal_title": self.goal_title,
            "weightage": self.weightage,
            "rating": self.rating,
            "rating_label": rating_label(self.rating),
            "rating_score": round(self.rating_score, 4),
            "contribution": round(self.contribution, 4),
        }


@dataclass
class GoalScoreResult:
    score: float
    details: list[GoalContribution]


def goal_contribution(weightage: float, rating: Rating | str | None) -> float:
    """Contribution of one goal; 0.0 when the goal has no rating."""
    if rating is None:
        return 0.0
    return (weightage / 100) * rating_to_score(rating)


def calculate_goal_score(goals: list[GoalWithRating]) -> GoalScoreResult:
    """Sum weighted contributions over rated goals only."""
    total = 0.0
    details: list[GoalContribution] = []

    for goal in goals:
        if not goal.is_rated:
            continue

        score = rating_to_score(goal.rating)
        contribution = goal_contribution(goal.weightage, goal.rating)
        total += contribution

        details.append(
            GoalContribution(
                goal_id=goal.goal_id,
                goal_title=goal.goal_title,
                weightage=goal.weightage,
                rating=str(goal.rating),
                rating_score=score,
                contribution=contribution,
            )
        )

    return GoalScoreResult(score=total, details=details)
