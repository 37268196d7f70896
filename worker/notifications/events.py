"""Lifecycle events published after a workflow change commits."""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class EventType(StrEnum):
    """Things that happened worth telling someone about."""

    RATING_SUBMITTED = "rating_submitted"
    RATING_APPROVED = "rating_approved"
    CHANGE_REQUESTED = "change_requested"
    CHANGE_REQUEST_APPROVED = "change_request_approved"
    CHANGE_REQUEST_REJECTED = "change_request_rejected"
    WEEKLY_SUMMARY = "weekly_summary"
    EVIDENCE_REMINDER = "evidence_reminder"
    NIGHTLY_INSIGHTS = "nightly_insights"


EVENT_TITLES: dict[EventType, str] = {
    EventType.RATING_SUBMITTED: "New rating submitted",
    EventType.RATING_APPROVED: "Rating approved",
    EventType.CHANGE_REQUESTED: "Rating change requested",
    EventType.CHANGE_REQUEST_APPROVED: "Rating change request approved",
    EventType.CHANGE_REQUEST_REJECTED: "Rating change request rejected",
    EventType.WEEKLY_SUMMARY: "Your weekly performance summary",
    EventType.EVIDENCE_REMINDER: "Time to log evidence",
    EventType.NIGHTLY_INSIGHTS: "Your performance insights",
}


@dataclass
class LifecycleEvent:
    """A committed change, addressed to the audit trail and any listeners."""

    type: EventType
    entity_type: str
    entity_id: str
    actor_id: uuid.UUID | None = None
    recipient_id: uuid.UUID | None = None
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def title(self) -> str:
        return EVENT_TITLES[self.type]

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "title": self.title,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_id": str(self.actor_id) if self.actor_id else None,
            "recipient_id": str(self.recipient_id) if self.recipient_id else None,
            "before": self.before,
            "after": self.after,
            "occurred_at": self.occurred_at.isoformat(),
        }
