"""
Real-time notification bus for queue displays.

In-process pub/sub backed by one bounded asyncio queue per subscriber.
Events are bare names: subscribers re-fetch the ranked queue when they
receive one. Delivery is best-effort; a subscriber that fails is dropped
without affecting the others.
"""

import asyncio
import threading
from collections.abc import AsyncIterator
from uuid import uuid4

from clinic_queue.config.logging_config import get_logger
from clinic_queue.services.errors import SubscriberLimitError

logger = get_logger(__name__)

QUEUE_UPDATED = "QueueUpdated"


class SubscriberDisconnectedError(Exception):
    """The subscriber was closed and can no longer receive events."""


class Subscription:
    """
    Handle for one connected subscriber.

    When its buffer is full, new signals are coalesced into the pending
    ones: the subscriber only needs to know the queue changed, not how many
    times.
    """

    def __init__(self, buffer_size: int = 8):
        self.id = uuid4().hex
        self._events: asyncio.Queue[str | None] = asyncio.Queue(maxsize=buffer_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._events.qsize()

    def deliver(self, event_name: str) -> bool:
        """
        Queue an event without blocking.

        Returns:
            False when the event was coalesced into already pending ones.

        Raises:
            SubscriberDisconnectedError: the subscriber is closed.
        """
        if self._closed:
            raise SubscriberDisconnectedError(self.id)
        try:
            self._events.put_nowait(event_name)
        except asyncio.QueueFull:
            return False
        return True

    def close(self) -> None:
        """Mark the subscriber disconnected and wake any pending reader."""
        if self._closed:
            return
        self._closed = True
        try:
            self._events.put_nowait(None)
        except asyncio.QueueFull:
            # Reader sees the closed flag once the buffer drains
            pass

    async def get(self, timeout: float | None = None) -> str | None:
        """
        Wait for the next event.

        Returns:
            The event name, or None if `timeout` elapsed first.

        Raises:
            SubscriberDisconnectedError: the subscriber was closed.
        """
        if self._closed and self._events.empty():
            raise SubscriberDisconnectedError(self.id)
        try:
            event = await asyncio.wait_for(self._events.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None
        if event is None:
            raise SubscriberDisconnectedError(self.id)
        return event

    async def events(self) -> AsyncIterator[str]:
        """Iterate over events until the subscriber is closed."""
        while True:
            try:
                yield await self.get()
            except SubscriberDisconnectedError:
                return


class QueueNotificationBus:
    """
    Bounded set of subscribers receiving queue change signals.

    Attributes:
        max_subscribers: Subscribe fails once this many are connected.
        buffer_size: Pending events held per subscriber.
    """

    def __init__(self, max_subscribers: int = 500, buffer_size: int = 8):
        self.max_subscribers = max_subscribers
        self.buffer_size = buffer_size
        self._subscribers: dict[str, Subscription] = {}
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self) -> Subscription:
        """
        Register a new subscriber.

        Raises:
            SubscriberLimitError: the bus is at capacity.
        """
        subscription = Subscription(self.buffer_size)
        with self._lock:
            if len(self._subscribers) >= self.max_subscribers:
                raise SubscriberLimitError(
                    "Too many queue subscribers connected",
                    {"max_subscribers": self.max_subscribers},
                )
            self._subscribers[subscription.id] = subscription
            count = len(self._subscribers)
        logger.info("Subscriber connected", subscriber_id=subscription.id, subscribers=count)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscriber. Unknown or already removed handles are ignored."""
        with self._lock:
            removed = self._subscribers.pop(subscription.id, None)
            count = len(self._subscribers)
        if removed is None:
            return
        removed.close()
        logger.info("Subscriber disconnected", subscriber_id=subscription.id, subscribers=count)

    def broadcast(self, event_name: str = QUEUE_UPDATED) -> int:
        """
        Send an event to every active subscriber.

        Failed subscribers are logged and removed; the failure never
        propagates to the caller.

        Returns:
            Number of subscribers the event reached.
        """
        with self._lock:
            subscribers = list(self._subscribers.values())

        reached = 0
        for subscription in subscribers:
            try:
                if not subscription.deliver(event_name):
                    logger.debug(
                        "Event coalesced",
                        subscriber_id=subscription.id,
                        event_name=event_name,
                    )
                reached += 1
            except Exception as e:
                logger.warning(
                    "Dropping subscriber after failed delivery",
                    subscriber_id=subscription.id,
                    event_name=event_name,
                    error=str(e) or type(e).__name__,
                )
                self.unsubscribe(subscription)

        logger.info(
            "Broadcast sent",
            event_name=event_name,
            reached=reached,
            subscribers=len(subscribers),
        )
        return reached

    def close_all(self) -> None:
        """Disconnect every subscriber, used at shutdown."""
        with self._lock:
            subscribers = list(self._subscribers.values())
            self._subscribers.clear()
        for subscription in subscribers:
            subscription.close()
        if subscribers:
            logger.info("All subscribers disconnected", count=len(subscribers))
