"""Evidence quality scoring.

Evidence is scored on three axes per rated goal, averaged over rated
goals, then blended and scaled so it contributes at most 0.2 to the
composite score:

    weighted = recency * 0.4 + completeness * 0.3 + quality * 0.3
    evidence_score = weighted * 0.2
"""

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from worker.scoring.goals import GoalWithRating

RECENCY_WEIGHT = 0.4
COMPLETENESS_WEIGHT = 0.3
QUALITY_WEIGHT = 0.3

# Evidence never contributes more than this to the total
EVIDENCE_SCALE = 0.2

# (max age in days, score), checked in order
RECENCY_BANDS: list[tuple[int, float]] = [
    (0, 1.0),
    (7, 0.8),
    (14, 0.6),
    (21, 0.4),
    (30, 0.2),
]

QUALITY_BASE = 0.5
QUALITY_METRICS_BONUS = 0.25
QUALITY_LINKS_BONUS = 0.25

# Free-text patterns that count as a quantified result
METRIC_PATTERN = re.compile(r"\d+%|\d+x|\d+ (users|requests|ms|seconds|minutes)")


@dataclass
class EvidenceDetails:
    """Averaged sub-scores, each 0.0-1.0."""

    recency_score: float = 0.0
    completeness_score: float = 0.0
    quality_score: float = 0.0

    def to_dict(self) -> dict:
        return {
            "recency_score": round(self.recency_score, 4),
            "completeness_score": round(self.completeness_score, 4),
            "quality_score": round(self.quality_score, 4),
        }


@dataclass
class EvidenceScoreResult:
    score: float  # 0.0-0.2
    weighted_average: float  # 0.0-1.0
    details: EvidenceDetails


@dataclass
class EvidenceSummary:
    """What the scorers need to know about a goal's evidence log."""

    last_evidence_date: datetime | None = None
    evidence_count: int = 0
    has_metrics: bool = False
    has_links: bool = False


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def days_since(when: datetime, now: datetime | None = None) -> int:
    """Whole days elapsed since ``when``. Future timestamps count as today."""
    now = as_utc(now or datetime.now(UTC))
    return max(0, (now - as_utc(when)).days)


def recency_score(last_evidence_date: datetime | None, now: datetime | None = None) -> float:
    if last_evidence_date is None:
        return 0.0
    age = days_since(last_evidence_date, now)
    for max_days, score in RECENCY_BANDS:
        if age <= max_days:
            return score
    return 0.0


def completeness_score(evidence_count: int) -> float:
    if evidence_count <= 0:
        return 0.0
    if evidence_count >= 5:
        return 1.0
    if evidence_count >= 3:
        return 0.8
    if evidence_count >= 2:
        return 0.6
    return 0.4


def quality_score(has_metrics: bool, has_links: bool) -> float:
    score = QUALITY_BASE
    if has_metrics:
        score += QUALITY_METRICS_BONUS
    if has_links:
        score += QUALITY_LINKS_BONUS
    return min(score, 1.0)


def calculate_evidence_score(
    goals: Sequence[GoalWithRating],
    now: datetime | None = None,
) -> EvidenceScoreResult:
    """Score evidence for rated goals only.

    Unrated goals are left out of every average. With no rated goals the
    score and all sub-scores are 0.
    """
    rated = [g for g in goals if g.is_rated]
    if not rated:
        return EvidenceScoreResult(score=0.0, weighted_average=0.0, details=EvidenceDetails())

    now = now or datetime.now(UTC)
    count = len(rated)

    recency = sum(recency_score(g.last_evidence_date, now) for g in rated) / count
    completeness = sum(completeness_score(g.evidence_count) for g in rated) / count
    quality = sum(quality_score(g.has_metrics, g.has_links) for g in rated) / count

    weighted = (
        recency * RECENCY_WEIGHT
        + completeness * COMPLETENESS_WEIGHT
        + quality * QUALITY_WEIGHT
    )

    return EvidenceScoreResult(
        score=weighted * EVIDENCE_SCALE,
        weighted_average=weighted,
        details=EvidenceDetails(
            recency_score=recency,
            completeness_score=completeness,
            quality_score=quality,
        ),
    )


def entry_has_metrics(text: str | None, metrics: Mapping[str, Any] | None) -> bool:
    """An entry is quantified if it carries metrics or states a measurable result."""
    if metrics:
        return True
    return bool(text and METRIC_PATTERN.search(text))


def summarize_evidence(entries: Iterable[Any]) -> EvidenceSummary:
    """Summarize evidence log entries for one goal assignment.

    Entries are any objects exposing ``created_at``, ``text``,
    ``supporting_links`` and ``metrics`` (ORM rows or plain records).
    """
    summary = EvidenceSummary()
    for entry in entries:
        summary.evidence_count += 1

        created_at = getattr(entry, "created_at", None)
        if created_at is not None and (
            summary.last_evidence_date is None
            or as_utc(created_at) > as_utc(summary.last_evidence_date)
        ):
            summary.last_evidence_date = created_at

        if not summary.has_metrics and entry_has_metrics(
            getattr(entry, "text", None), getattr(entry, "metrics", None)
        ):
            summary.has_metrics = True

        if getattr(entry, "supporting_links", None):
            summary.has_links = True

    return summary
