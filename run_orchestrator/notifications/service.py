"""
Notification Service

Fire-and-forget milestone notifications (run started, finished, stopped,
cleanup failed). ``notify`` schedules delivery on the running loop and returns
immediately; delivery failures are logged and never reach the caller.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

from run_orchestrator.config import settings

logger = structlog.get_logger(__name__)

# Delivers one notification to the desktop (or any other) channel
NotificationDelivery = Callable[["MilestoneNotification"], Awaitable[None]]


@dataclass(frozen=True)
class MilestoneNotification:
    """A single notification as handed to the delivery channel."""

    title: str
    body: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class NotificationService:
    """
    Best-effort notification sink.

    Keeps a bounded history of sent notifications and tracks the delivery
    tasks it spawned so they can be awaited at shutdown.

    Example:
        >>> service = NotificationService(delivery=desktop_notify)
        >>> service.notify("Pipeline started", "Pipeline p1 started on consortia c1")
    """

    DEFAULT_MAX_HISTORY_SIZE = 200

    def __init__(
        self,
        delivery: NotificationDelivery | None = None,
        enabled: bool | None = None,
        max_history_size: int = DEFAULT_MAX_HISTORY_SIZE,
    ) -> None:
        """
        Initialize notification service.

        Args:
            delivery: Coroutine function delivering a notification (optional)
            enabled: When False, notifications are recorded but not delivered
                (defaults to settings.notifications_enabled)
            max_history_size: Maximum number of notifications kept in history
        """
        self._delivery = delivery
        self._enabled = settings.notifications_enabled if enabled is None else enabled
        self._max_history_size = max_history_size
        self._history: list[MilestoneNotification] = []
        self._pending: set[asyncio.Task[None]] = set()
        self._failure_count = 0

    def notify(self, title: str, body: str) -> None:
        """
        Record and schedule delivery of a notification.

        Never blocks and never raises for delivery problems.

        Args:
            title: Notification title
            body: Notification body
        """
        notification = MilestoneNotification(title=title, body=body)
        self._history.append(notification)
        if len(self._history) > self._max_history_size:
            self._history = self._history[-self._max_history_size :]

        logger.info("notification_sent", title=title, body=body)

        if not self._enabled or self._delivery is None:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("notification_no_event_loop", title=title)
            return

        task = loop.create_task(self._deliver(notification))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, notification: MilestoneNotification) -> None:
        try:
            await self._delivery(notification)  # type: ignore[misc]
        except Exception as e:
            self._failure_count += 1
            logger.warning(
                "notification_delivery_failed",
                title=notification.title,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    @property
    def history(self) -> list[MilestoneNotification]:
        """Copy of the notification history, oldest first."""
        return list(self._history)

    @property
    def failure_count(self) -> int:
        """Number of failed deliveries."""
        return self._failure_count
