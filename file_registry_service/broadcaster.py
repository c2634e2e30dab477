import asyncio
import itertools
from typing import Dict

from file_registry_service.logging_config import get_logger
from file_registry_service.schemas import FileEvent

logger = get_logger(__name__)

_subscription_ids = itertools.count(1)

class Subscription:
    def __init__(self, maxsize: int):
        self.id = next(_subscription_ids)
        self.queue: "asyncio.Queue[FileEvent]" = asyncio.Queue(maxsize=maxsize)

    async def get(self) -> FileEvent:
        return await self.queue.get()

class Broadcaster:
    """Fans registry events out to every connected viewer.

    Fire-and-forget: there is no replay for late subscribers and a viewer
    whose queue is full misses the event. ``publish`` never suspends, so
    events leave in the order their callers invoked it.
    """

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscribers: Dict[int, Subscription] = {}

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        subscription = Subscription(self.queue_size)
        self._subscribers[subscription.id] = subscription
        logger.info(f"Viewer {subscription.id} subscribed ({self.subscriber_count} connected)")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if self._subscribers.pop(subscription.id, None) is not None:
            logger.info(f"Viewer {subscription.id} unsubscribed ({self.subscriber_count} connected)")

    def publish(self, event: FileEvent) -> int:
        delivered = 0
        for subscription in list(self._subscribers.values()):
            try:
                subscription.queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(f"Viewer {subscription.id} is not keeping up, dropped {event.event} for {event.id}")
        logger.debug(f"Published {event.event} for {event.id} to {delivered} viewer(s)")
        return delivered
