"""Notification sinks for lifecycle events.

Delivery is best-effort: a sink failure is logged and reported in its
``NotificationResult`` but never raised back into the workflow that
produced the event.
"""

from __future__ import annotations

import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from api.config import Settings, get_settings
from api.metrics import record_notification
from worker.notifications.events import LifecycleEvent

logger = structlog.get_logger(__name__)


@dataclass
class NotificationResult:
    """Result of a notification delivery attempt."""

    success: bool
    channel: str
    error: str | None = None
    response_data: dict | None = None
    response_time_ms: int | None = None


class NotificationSink(ABC):
    """Base class for notification sinks."""

    @property
    @abstractmethod
    def channel(self) -> str:
        """Return the channel name."""
        pass

    @abstractmethod
    async def send(self, event: LifecycleEvent) -> NotificationResult:
        """Deliver one event."""
        pass


class LoggingSink(NotificationSink):
    """Writes every event to the structured log."""

    @property
    def channel(self) -> str:
        return "log"

    async def send(self, event: LifecycleEvent) -> NotificationResult:
        logger.info(
            "lifecycle_event",
            event_type=event.type.value,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            actor_id=str(event.actor_id) if event.actor_id else None,
            recipient_id=str(event.recipient_id) if event.recipient_id else None,
        )
        return NotificationResult(success=True, channel=self.channel)


class AuditLogSink(NotificationSink):
    """Appends an AuditLog row in its own session.

    Runs after the workflow transaction has committed, so a failed audit
    write cannot undo the change it describes.
    """

    def __init__(self, session_factory: Callable[[], AsyncSession] | None = None):
        if session_factory is None:
            from api.database import async_session_maker

            session_factory = async_session_maker
        self.session_factory = session_factory

    @property
    def channel(self) -> str:
        return "audit"

    async def send(self, event: LifecycleEvent) -> NotificationResult:
        from api.models.audit import AuditLog

        entry = AuditLog(
            id=uuid.uuid4(),
            actor_id=event.actor_id,
            action=event.type.value,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            before=event.before,
            after=event.after,
            created_at=event.occurred_at,
        )
        try:
            async with self.session_factory() as session:
                session.add(entry)
                await session.commit()
        except Exception as e:
            logger.error("audit_log_write_failed", action=entry.action, error=str(e))
            return NotificationResult(success=False, channel=self.channel, error=str(e))

        return NotificationResult(
            success=True,
            channel=self.channel,
            response_data={"audit_log_id": str(entry.id)},
        )


class WebhookSink(NotificationSink):
    """POSTs events as JSON to a configured URL."""

    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout

    @property
    def channel(self) -> str:
        return "webhook"

    async def send(self, event: LifecycleEvent) -> NotificationResult:
        payload = {
            "event": f"perfboard.{event.type.value}",
            "timestamp": datetime.now(UTC).isoformat(),
            "data": event.to_dict(),
        }

        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.url,
                    json=payload,
                    headers={"User-Agent": "Perfboard-Notifications/1.0"},
                )
        except httpx.TimeoutException:
            logger.error("webhook_timeout", url=self.url[:50])
            return NotificationResult(
                success=False,
                channel=self.channel,
                error="Request timeout",
                response_time_ms=_elapsed_ms(start),
            )
        except httpx.HTTPError as e:
            logger.error("webhook_error", url=self.url[:50], error=str(e))
            return NotificationResult(success=False, channel=self.channel, error=str(e))

        elapsed_ms = _elapsed_ms(start)
        if not response.is_success:
            logger.warning(
                "webhook_notification_failed",
                url=self.url[:50],
                status_code=response.status_code,
            )
            return NotificationResult(
                success=False,
                channel=self.channel,
                error=f"HTTP {response.status_code}",
                response_time_ms=elapsed_ms,
            )

        logger.info(
            "webhook_notification_sent",
            url=self.url[:50],
            status_code=response.status_code,
            elapsed_ms=elapsed_ms,
        )
        return NotificationResult(
            success=True,
            channel=self.channel,
            response_data={"status_code": response.status_code},
            response_time_ms=elapsed_ms,
        )


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class Notifier:
    """Fans an event out to every sink; one failing sink never stops the rest."""

    def __init__(self, sinks: list[NotificationSink]):
        self.sinks = sinks

    async def notify(self, event: LifecycleEvent) -> dict[str, NotificationResult]:
        results: dict[str, NotificationResult] = {}
        for sink in self.sinks:
            try:
                result = await sink.send(event)
            except Exception as e:
                logger.error(
                    "notification_failed",
                    channel=sink.channel,
                    event_type=event.type.value,
                    error=str(e),
                )
                result = NotificationResult(success=False, channel=sink.channel, error=str(e))
            record_notification(sink.channel, result.success)
            results[sink.channel] = result
        return results


def build_notifier(settings: Settings | None = None) -> Notifier:
    """Notifier with the sinks enabled in settings."""
    settings = settings or get_settings()
    sinks: list[NotificationSink] = [LoggingSink()]
    if settings.audit_log_enabled:
        sinks.append(AuditLogSink())
    if settings.notification_webhook_url:
        sinks.append(
            WebhookSink(
                settings.notification_webhook_url,
                timeout=settings.notification_timeout_seconds,
            )
        )
    return Notifier(sinks)
