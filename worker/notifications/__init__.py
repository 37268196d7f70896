"""Lifecycle notifications."""

from worker.notifications.events import EventType, LifecycleEvent
from worker.notifications.providers import (
    AuditLogSink,
    LoggingSink,
    NotificationResult,
    NotificationSink,
    Notifier,
    WebhookSink,
    build_notifier,
)

__all__ = [
    "EventType",
    "LifecycleEvent",
    "NotificationResult",
    "NotificationSink",
    "LoggingSink",
    "AuditLogSink",
    "WebhookSink",
    "Notifier",
    "build_notifier",
]
