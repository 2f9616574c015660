"""Application startup and shutdown.

Connects Redis, builds the event bus, picks the event store backend and
publishes them through ``datefinder.state`` for the dependencies module.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import redis.asyncio as redis
from fastapi import FastAPI
from redis.asyncio import BlockingConnectionPool as RedisConnectionPool

from datefinder import db, state
from datefinder.bus import EventBus
from datefinder.config import get_settings
from datefinder.store import EventStore, PostgresEventStore, RedisEventStore

logger = logging.getLogger(__name__)


@dataclass
class LifespanResources:
    """Container for resources initialized during lifespan."""

    redis_client: redis.Redis | None = None
    event_bus: EventBus | None = None
    event_store: EventStore | None = None
    db_enabled: bool = False


async def init_redis() -> redis.Redis:
    """Initialize Redis connection with connection pool.

    Returns:
        Configured Redis client.
    """
    settings = get_settings()

    redis_pool = RedisConnectionPool(
        host=settings.redis.host,
        port=settings.redis.port,
        password=settings.redis.password if settings.redis.password else None,
        max_connections=settings.redis.max_connections,
        timeout=settings.redis.pool_timeout_sec,
        health_check_interval=settings.redis.health_check_interval,
        socket_timeout=settings.redis.socket_timeout,
        socket_connect_timeout=settings.redis.socket_connect_timeout,
        retry_on_timeout=settings.redis.retry_on_timeout,
        decode_responses=True,
    )

    candidate_client = redis.Redis(connection_pool=redis_pool, decode_responses=True)
    if hasattr(candidate_client, "__await__"):
        return await candidate_client
    return candidate_client


async def init_database() -> bool:
    """Open the Postgres pool when the database backend is enabled.

    Returns:
        True if the database is ready, False if disabled or unreachable.
    """
    if not get_settings().features.event_db:
        return False
    try:
        await db.init_pool()
        return True
    except Exception as e:
        logger.warning("Failed to initialize database, falling back to Redis store: %s", e)
        return False


async def setup_resources() -> LifespanResources:
    """Set up all shared resources."""
    settings = get_settings()
    resources = LifespanResources()

    resources.redis_client = await init_redis()
    resources.event_bus = EventBus(resources.redis_client, prefix=settings.events.key_prefix)

    resources.db_enabled = await init_database()
    if resources.db_enabled:
        resources.event_store = PostgresEventStore(id_length=settings.events.event_id_length)
    else:
        resources.event_store = RedisEventStore(
            resources.redis_client,
            prefix=settings.events.key_prefix,
            id_length=settings.events.event_id_length,
        )
    logger.info("Event store backend: %s", type(resources.event_store).__name__)

    state.redis_client = resources.redis_client
    state.event_bus = resources.event_bus
    state.event_store = resources.event_store
    return resources


async def cleanup_resources(resources: LifespanResources) -> None:
    """Clean up all resources on shutdown."""
    if resources.db_enabled:
        try:
            await db.close_pool()
        except Exception:
            logger.warning("Error closing database pool", exc_info=True)

    if resources.redis_client:
        aclose = getattr(resources.redis_client, "aclose", None)
        if callable(aclose):
            await aclose()
        else:
            close = getattr(resources.redis_client, "close", None)
            if callable(close):
                await close()

    state.redis_client = None
    state.event_bus = None
    state.event_store = None


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    resources = await setup_resources()
    try:
        yield
    finally:
        await cleanup_resources(resources)
