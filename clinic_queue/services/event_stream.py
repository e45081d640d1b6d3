"""
Server-Sent Events transport for queue subscribers.

Each connected display gets one subscription on the notification bus; its
events are written as SSE frames, with comment heartbeats in between so
dead connections are noticed.
"""

from collections.abc import AsyncGenerator, Awaitable, Callable

from clinic_queue.config.logging_config import get_logger
from clinic_queue.services.notification_bus import (
    QueueNotificationBus,
    SubscriberDisconnectedError,
    Subscription,
)

logger = get_logger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(event: str) -> str:
    """Frame an event name as an SSE message; the name is also the data."""
    return f"event: {event}\ndata: {event}\n\n"


async def queue_event_stream(
    bus: QueueNotificationBus,
    subscription: Subscription,
    heartbeat_seconds: float,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
) -> AsyncGenerator[str, None]:
    """
    Stream a subscription's events as SSE frames.

    The subscription is removed from the bus when the stream ends, whether
    the client went away or the bus closed it.

    Args:
        bus: Bus the subscription belongs to.
        subscription: Handle returned by `bus.subscribe()`.
        heartbeat_seconds: Idle time before a keep-alive comment is sent.
        is_disconnected: Optional check for a closed client connection.

    Yields:
        SSE formatted strings.
    """
    logger.info("Queue event stream opened", subscriber_id=subscription.id)
    try:
        yield ": connected\n\n"
        while True:
            if is_disconnected is not None and await is_disconnected():
                break
            event = await subscription.get(timeout=heartbeat_seconds)
            if event is None:
                yield ": heartbeat\n\n"
                continue
            yield format_sse(event)
    except SubscriberDisconnectedError:
        pass
    finally:
        bus.unsubscribe(subscription)
        logger.info("Queue event stream closed", subscriber_id=subscription.id)
