"""
Event bus for DateFinder, backed by Redis pub/sub.

Every write to an event is followed by a publish of the complete event
document on that event's channel; subscribers never receive deltas.
"""
import json
from typing import Final

import redis.asyncio as redis

from datefinder.models.event import EventData

CHANNEL_EVENT_PREFIX: Final[str] = "event:"


class EventBus:
    def __init__(self, redis_client: redis.Redis, prefix: str = "df"):
        self.redis_client = redis_client
        self.prefix = prefix

    def event_channel(self, event_id: str) -> str:
        return f"{self.prefix}:{CHANNEL_EVENT_PREFIX}{event_id}"

    async def publish_snapshot(self, event: EventData) -> None:
        await self.redis_client.publish(self.event_channel(event.id), json.dumps(event.to_document()))
