"""
In-process fan-out of crawl events to any number of subscribers.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Set

Message = Dict[str, Any]


class Subscription:
    """
    One subscriber's view of the event stream.

    Iterate with `async for`; iteration ends once the subscription is closed
    and every queued message has been delivered.
    """

    def __init__(self, broadcaster: 'ProgressBroadcaster', maxsize: int):
        self._broadcaster = broadcaster
        self._queue: asyncio.Queue[Optional[Message]] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0
        self.closed = False

    def deliver(self, message: Message):
        if self.closed:
            return
        if self._queue.full():
            # Slow subscriber: drop the oldest message to keep the newest
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(message)

    def close(self):
        if self.closed:
            return
        self.closed = True
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(None)  # sentinel

    async def get(self) -> Optional[Message]:
        """Next message, or None once the subscription is closed."""
        return await self._queue.get()

    def __aiter__(self):
        return self

    async def __anext__(self) -> Message:
        message = await self._queue.get()
        if message is None:
            raise StopAsyncIteration
        return message

    async def __aenter__(self) -> 'Subscription':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self._broadcaster.unsubscribe(self)


class ProgressBroadcaster:
    """Publishes {"type": event_type, **payload} messages to every subscriber."""

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscribers: Set[Subscription] = set()
        self.logger = logging.getLogger(__name__)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        subscription = Subscription(self, self.queue_size)
        self._subscribers.add(subscription)
        self.logger.debug(f"Subscriber added ({len(self._subscribers)} active)")
        return subscription

    def unsubscribe(self, subscription: Subscription):
        self._subscribers.discard(subscription)
        subscription.close()

    def publish(self, event_type: str, payload: Optional[Dict[str, Any]] = None) -> int:
        """Deliver an event to every subscriber; returns the number reached."""
        message = {'type': event_type, **(payload or {})}
        for subscription in list(self._subscribers):
            subscription.deliver(message)
        return len(self._subscribers)

    def close(self):
        """Close every subscription so their iterators finish."""
        for subscription in list(self._subscribers):
            self.unsubscribe(subscription)
