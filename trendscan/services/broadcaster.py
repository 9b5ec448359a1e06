"""
Event Broadcaster - single producer, many viewers.

Each viewer owns a private bounded queue. The scheduler offers every event
to a snapshot of the current subscriber set without awaiting anyone:
- a full queue drops that event for that viewer only
- a closed or failing subscriber is skipped silently

Subscribers are added/removed by the transport layer (WebSocket / SSE
handlers) as connections open and close.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import AsyncIterator, Protocol

from trendscan.core.events import ScanEvent

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 256


class Subscriber(Protocol):
    """Anything that can accept a pushed event without blocking."""

    def offer(self, event: ScanEvent) -> None:
        ...


class SubscriptionClosed(Exception):
    """Raised when offering to a subscription that has been closed."""

    pass


class Subscription:
    """
    Queue-backed viewer subscription.

    Iterate with `async for line in subscription` to receive JSON lines.
    """

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE):
        self._queue: asyncio.Queue[ScanEvent] = asyncio.Queue(maxsize=queue_size)
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, event: ScanEvent) -> None:
        if self._closed:
            raise SubscriptionClosed("subscription closed")
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            raise

    async def get(self) -> ScanEvent:
        return await self._queue.get()

    def get_nowait(self) -> ScanEvent:
        return self._queue.get_nowait()

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        self._closed = True

    def __aiter__(self) -> AsyncIterator[str]:
        return self._lines()

    async def _lines(self) -> AsyncIterator[str]:
        while True:
            event = await self._queue.get()
            yield event.to_json()


class EventBroadcaster:
    """Fans out scan events to every currently subscribed viewer."""

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE):
        self.queue_size = queue_size
        self._subscribers: set[Subscriber] = set()
        self._lock = threading.Lock()

        # Stats
        self._events_broadcast = 0
        self._deliveries_dropped = 0

    def subscribe(self, hello: ScanEvent | None = None) -> Subscription:
        """Create a queue-backed subscription; `hello` is queued before any live event."""
        subscription = Subscription(queue_size=self.queue_size)
        self.attach(subscription, hello)
        return subscription

    def attach(self, subscriber: Subscriber, hello: ScanEvent | None = None) -> None:
        """Register a subscriber, delivering `hello` to it first."""
        with self._lock:
            if hello is not None:
                subscriber.offer(hello)
            self._subscribers.add(subscriber)
        logger.info(f"Viewer subscribed. Total: {self.subscriber_count}")

    def unsubscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            self._subscribers.discard(subscriber)
        if isinstance(subscriber, Subscription):
            subscriber.close()
        logger.info(f"Viewer unsubscribed. Total: {self.subscriber_count}")

    def broadcast(self, event: ScanEvent) -> int:
        """
        Offer an event to all subscribers.

        Returns:
            Number of subscribers the event was delivered to
        """
        with self._lock:
            targets = list(self._subscribers)

        delivered = 0
        for subscriber in targets:
            try:
                subscriber.offer(event)
                delivered += 1
            except Exception as e:
                self._deliveries_dropped += 1
                logger.debug(f"Dropped {event.kind.value} event for a viewer: {e!r}")

        self._events_broadcast += 1
        return delivered

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def get_stats(self) -> dict[str, int]:
        return {
            "subscribers": self.subscriber_count,
            "events_broadcast": self._events_broadcast,
            "deliveries_dropped": self._deliveries_dropped,
        }
