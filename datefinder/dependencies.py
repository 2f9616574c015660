"""Dependency injection for FastAPI endpoints.

Controllers receive Redis, the event bus, the event store and the
caller's identity store through these dependencies instead of reading
global state directly.

Usage in controllers:
    from datefinder.dependencies import Store

    @router.get("/events/{event_id}")
    async def get_event(event_id: str, store: Store):
        ...
"""

from typing import Annotated

import redis.asyncio as redis
from fastapi import Depends, Header

from datefinder import state
from datefinder.bus import EventBus
from datefinder.config import get_settings
from datefinder.errors import ServiceUnavailableError
from datefinder.identity import RedisIdentityStore
from datefinder.store import EventStore


def get_redis() -> redis.Redis:
    """Get the Redis client.

    Raises:
        ServiceUnavailableError: If Redis is not connected.
    """
    if state.redis_client is None:
        raise ServiceUnavailableError(detail="Redis not connected")
    return state.redis_client


def get_optional_event_bus() -> EventBus | None:
    """Get the EventBus if available, or None."""
    return state.event_bus


def get_event_store() -> EventStore:
    """Get the configured event store.

    Raises:
        ServiceUnavailableError: If no store has been initialized.
    """
    if state.event_store is None:
        raise ServiceUnavailableError(detail="Event store not initialized")
    return state.event_store


def get_identity_store(
    event_id: str,
    redis_client: Annotated[redis.Redis, Depends(get_redis)],
    x_device_id: Annotated[str, Header(min_length=1, max_length=128)],
) -> RedisIdentityStore:
    """Identity store of the calling device, scoped to one event's pending prompt."""
    settings = get_settings().events
    return RedisIdentityStore(
        redis_client,
        x_device_id,
        event_id=event_id,
        prefix=settings.key_prefix,
        pending_ttl=settings.identity_pending_ttl_sec,
    )


Redis = Annotated[redis.Redis, Depends(get_redis)]
OptionalBus = Annotated[EventBus | None, Depends(get_optional_event_bus)]
Store = Annotated[EventStore, Depends(get_event_store)]
DeviceIdentity = Annotated[RedisIdentityStore, Depends(get_identity_store)]
