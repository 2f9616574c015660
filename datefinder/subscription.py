"""Live event snapshots.

``subscribe`` hands the current event to ``on_snapshot`` straight away and
then every snapshot published on the event's channel, until the returned
``unsubscribe`` coroutine is awaited. ``None`` is delivered when the event
does not exist or a snapshot cannot be read. ``subscription`` wraps the
pair in an async context manager so the Redis subscription is always
released.
"""

import asyncio
import inspect
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from datefinder.bus import EventBus
from datefinder.models.event import EventData
from datefinder.store import EventStore

logger = logging.getLogger("datefinder.subscription")

SnapshotCallback = Callable[[EventData | None], Awaitable[None] | None]
Unsubscribe = Callable[[], Awaitable[None]]


def parse_snapshot(data: Any, event_id: str) -> EventData | None:
    try:
        return EventData.from_document(json.loads(data), event_id)
    except Exception:
        logger.warning("Unreadable snapshot for event %s", event_id, exc_info=True)
        return None


class EventSubscription:
    def __init__(
        self,
        store: EventStore,
        bus: EventBus,
        event_id: str,
        on_snapshot: SnapshotCallback,
    ) -> None:
        self.store = store
        self.bus = bus
        self.event_id = event_id
        self.on_snapshot = on_snapshot
        self.channel = bus.event_channel(event_id)
        self._pubsub = None
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        # Subscribe before reading so no write between the two is missed.
        self._pubsub = self.bus.redis_client.pubsub()
        await self._pubsub.subscribe(self.channel)
        try:
            current = await self.store.get_event(self.event_id)
        except Exception:
            await self.close()
            raise
        await self._deliver(current)
        self._task = asyncio.create_task(self._listen())

    async def _deliver(self, event: EventData | None) -> None:
        result = self.on_snapshot(event)
        if inspect.isawaitable(result):
            await result

    async def _listen(self) -> None:
        try:
            async for message in self._pubsub.listen():
                if message["type"] != "message":
                    continue
                await self._deliver(parse_snapshot(message["data"], self.event_id))
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Subscription to %s failed", self.channel)
            await self._deliver(None)

    async def close(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._pubsub is not None:
            pubsub, self._pubsub = self._pubsub, None
            await pubsub.unsubscribe(self.channel)
            if hasattr(pubsub, "aclose"):
                await pubsub.aclose()
            else:
                await pubsub.close()


async def subscribe(
    store: EventStore,
    bus: EventBus,
    event_id: str,
    on_snapshot: SnapshotCallback,
) -> Unsubscribe:
    sub = EventSubscription(store, bus, event_id, on_snapshot)
    await sub.start()
    return sub.close


@asynccontextmanager
async def subscription(
    store: EventStore,
    bus: EventBus,
    event_id: str,
    on_snapshot: SnapshotCallback,
) -> AsyncIterator[None]:
    unsubscribe = await subscribe(store, bus, event_id, on_snapshot)
    try:
        yield
    finally:
        await unsubscribe()
