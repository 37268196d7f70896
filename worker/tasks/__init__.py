"""Background task definitions."""

from worker.tasks.insights import generate_nightly_insights, generate_nightly_insights_sync
from worker.tasks.summary import generate_weekly_summaries, generate_weekly_summaries_sync

__all__ = [
    "generate_nightly_insights",
    "generate_nightly_insights_sync",
    "generate_weekly_summaries",
    "generate_weekly_summaries_sync",
]
