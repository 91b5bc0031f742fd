"""
Ordered event channel for observer fan-out.

Single producer, many consumers. Each subscriber owns an unbounded asyncio
queue so ``publish`` never waits on a slow observer; events reach every
subscriber in publish order. ``close`` ends every subscription after the
events already queued.
"""

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import structlog

from run_orchestrator.orchestrator.events import Event

logger = structlog.get_logger(__name__)

_CLOSED = object()


class Subscription:
    """
    One consumer's view of an EventChannel.

    Iterate it with ``async for``; iteration ends when the channel closes or
    the subscription itself is closed.

    Example:
        >>> subscription = channel.subscribe()
        >>> async for event in subscription:
        ...     print(event.event_type)
    """

    def __init__(self, channel: "EventChannel") -> None:
        self._channel = channel
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._finished = False

    def _deliver(self, item: Any) -> None:
        self._queue.put_nowait(item)

    def __aiter__(self) -> AsyncIterator[Event]:
        return self

    async def __anext__(self) -> Event:
        if self._finished:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._finished = True
            raise StopAsyncIteration
        return item

    def drain_nowait(self) -> list[Event]:
        """Return every event queued so far without waiting."""
        events: list[Event] = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is _CLOSED:
                self._finished = True
                break
            events.append(item)
        return events

    def close(self) -> None:
        """Detach from the channel; iteration stops after queued events."""
        if self._channel.detach(self):
            self._deliver(_CLOSED)


class EventChannel:
    """
    Ordered, non-blocking publish/subscribe channel.

    Features:
    - Events delivered to every subscriber in publish order
    - ``publish`` is synchronous and never blocks the producer
    - Explicit close signalling ends all subscriptions
    - Metrics tracking for monitoring

    Example:
        >>> channel = EventChannel(name="run-42")
        >>> subscription = channel.subscribe()
        >>> channel.publish(StateUpdateEvent(run_id="42", controller_state="running"))
        >>> channel.close()
    """

    def __init__(self, name: str = "events") -> None:
        self.name = name
        self._subscribers: list[Subscription] = []
        self._event_count: int = 0
        self._dropped_count: int = 0
        self._closed = False

    def subscribe(self) -> Subscription:
        """
        Attach a new subscriber.

        Subscribing to a closed channel yields a subscription that ends
        immediately.
        """
        subscription = Subscription(self)
        if self._closed:
            subscription._deliver(_CLOSED)
            return subscription
        self._subscribers.append(subscription)
        logger.debug(
            "channel_subscribed",
            channel=self.name,
            total_subscribers=len(self._subscribers),
        )
        return subscription

    def detach(self, subscription: Subscription) -> bool:
        """Remove a subscriber. Returns False if it was not attached."""
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)
            return True
        return False

    def publish(self, event: Event) -> bool:
        """
        Push an event to every subscriber.

        Args:
            event: Event to deliver

        Returns:
            False if the channel is closed and the event was dropped
        """
        if self._closed:
            self._dropped_count += 1
            logger.debug(
                "channel_publish_after_close",
                channel=self.name,
                event_type=event.event_type,
                run_id=event.run_id,
            )
            return False

        self._event_count += 1
        for subscription in self._subscribers:
            subscription._deliver(event)
        return True

    def close(self) -> None:
        """Signal end of stream to every subscriber. Idempotent."""
        if self._closed:
            return
        self._closed = True
        for subscription in self._subscribers:
            subscription._deliver(_CLOSED)
        self._subscribers.clear()
        logger.debug("channel_closed", channel=self.name, event_count=self._event_count)

    @property
    def closed(self) -> bool:
        """Whether close() has been called."""
        return self._closed

    @property
    def subscriber_count(self) -> int:
        """Number of attached subscribers."""
        return len(self._subscribers)

    @property
    def event_count(self) -> int:
        """Total number of events published."""
        return self._event_count

    def get_metrics(self) -> dict[str, Any]:
        """
        Get channel metrics for monitoring.

        Returns:
            Dictionary with event_count, dropped_count, subscriber_count, closed
        """
        return {
            "event_count": self._event_count,
            "dropped_count": self._dropped_count,
            "subscriber_count": len(self._subscribers),
            "closed": self._closed,
        }
