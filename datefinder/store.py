"""Event persistence.

Two interchangeable backends implement ``EventStore``:

* ``RedisEventStore`` keeps the event document in one key and the
  participants in a hash (one field per participant id), so replacing one
  participant's dates never touches anyone else's entry.
* ``PostgresEventStore`` keeps events and participants in two tables and
  upserts participant rows.

Both replace a participant's whole entry on every write; concurrent writes
resolve as last-write-wins in the backend. Backend failures surface as
``PersistenceError``.
"""

import json
import logging
import time
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, Protocol

import psycopg
import redis.asyncio as redis
from psycopg import errors as pg_errors
from redis.exceptions import RedisError

from datefinder import db
from datefinder.dates import DateWindow
from datefinder.errors import InvalidRangeError, NotFoundError, PersistenceError
from datefinder.identity import generate_id
from datefinder.models.event import EventData

logger = logging.getLogger("datefinder.store")

ID_ATTEMPTS = 10


class EventStore(Protocol):
    async def create_event(
        self, name: str, window: DateWindow, creator_name: str, creator_id: str
    ) -> str: ...

    async def get_event(self, event_id: str) -> EventData | None: ...

    async def replace_participant_dates(
        self, event_id: str, participant_id: str, participant_name: str, dates: Iterable[str]
    ) -> None: ...

    async def ping(self) -> bool: ...


@contextmanager
def backend_errors(operation: str, event_id: str | None = None) -> Iterator[None]:
    try:
        yield
    except (RedisError, psycopg.Error, OSError) as e:
        logger.exception("Store %s failed event=%s", operation, event_id)
        raise PersistenceError(
            detail=f"Could not {operation}; changes are not saved",
            operation=operation,
            event_id=event_id,
            unsynced=True,
        ) from e


class RedisEventStore:
    def __init__(self, redis_client: redis.Redis, prefix: str = "df", id_length: int = 10) -> None:
        self.redis_client = redis_client
        self.prefix = prefix
        self.id_length = id_length

    def _event_key(self, event_id: str) -> str:
        return f"{self.prefix}:event:{event_id}"

    def _participants_key(self, event_id: str) -> str:
        return f"{self.prefix}:event:{event_id}:participants"

    async def create_event(
        self, name: str, window: DateWindow, creator_name: str, creator_id: str
    ) -> str:
        created_at = int(time.time() * 1000)
        with backend_errors("create event"):
            for _ in range(ID_ATTEMPTS):
                event_id = generate_id(self.id_length)
                meta = {
                    "id": event_id,
                    "name": name,
                    "window": window.to_document(),
                    "created_at": created_at,
                }
                created = await self.redis_client.set(
                    self._event_key(event_id), json.dumps(meta), nx=True
                )
                if not created:
                    continue
                try:
                    await self.redis_client.hset(
                        self._participants_key(event_id),
                        creator_id,
                        json.dumps({"name": creator_name, "dates": []}),
                    )
                except RedisError:
                    # an event without its creator must not survive a failed create
                    await self._discard_event(event_id)
                    raise
                return event_id
        raise PersistenceError(detail="Failed to generate unique event ID")

    async def _discard_event(self, event_id: str) -> None:
        try:
            await self.redis_client.delete(self._event_key(event_id), self._participants_key(event_id))
        except RedisError:
            logger.warning("Could not remove partially created event %s", event_id, exc_info=True)

    async def get_event(self, event_id: str) -> EventData | None:
        with backend_errors("read event", event_id):
            raw = await self.redis_client.get(self._event_key(event_id))
            if raw is None:
                return None
            entries = await self.redis_client.hgetall(self._participants_key(event_id))
        try:
            doc = json.loads(raw)
            doc["participants"] = {
                _text(pid): _loads_or_none(value) for pid, value in entries.items()
            }
            return EventData.from_document(doc, event_id)
        except (ValueError, KeyError, TypeError, InvalidRangeError):
            logger.warning("Event %s is unreadable", event_id, exc_info=True)
            return None

    async def replace_participant_dates(
        self, event_id: str, participant_id: str, participant_name: str, dates: Iterable[str]
    ) -> None:
        entry = json.dumps({"name": participant_name, "dates": sorted(set(dates))})
        with backend_errors("save dates", event_id):
            if not await self.redis_client.exists(self._event_key(event_id)):
                raise NotFoundError(event_id=event_id)
            await self.redis_client.hset(self._participants_key(event_id), participant_id, entry)

    async def ping(self) -> bool:
        try:
            await self.redis_client.ping()
            return True
        except RedisError:
            return False


class PostgresEventStore:
    def __init__(self, id_length: int = 10) -> None:
        self.id_length = id_length

    async def create_event(
        self, name: str, window: DateWindow, creator_name: str, creator_id: str
    ) -> str:
        now = datetime.now(UTC)
        with backend_errors("create event"):
            for _ in range(ID_ATTEMPTS):
                event_id = generate_id(self.id_length)
                try:
                    await db.df_insert_event(
                        event_id, name, window.start, window.end, now, creator_id, creator_name
                    )
                    return event_id
                except pg_errors.UniqueViolation:
                    continue
        raise PersistenceError(detail="Failed to generate unique event ID")

    async def get_event(self, event_id: str) -> EventData | None:
        with backend_errors("read event", event_id):
            doc = await db.df_fetch_event(event_id)
        if doc is None:
            return None
        try:
            return EventData.from_document(doc, event_id)
        except (ValueError, KeyError, TypeError, InvalidRangeError):
            logger.warning("Event %s is unreadable", event_id, exc_info=True)
            return None

    async def replace_participant_dates(
        self, event_id: str, participant_id: str, participant_name: str, dates: Iterable[str]
    ) -> None:
        with backend_errors("save dates", event_id):
            saved = await db.df_upsert_participant(
                event_id, participant_id, participant_name, sorted(set(dates))
            )
        if not saved:
            raise NotFoundError(event_id=event_id)

    async def ping(self) -> bool:
        return db.get_pool() is not None


def _text(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


def _loads_or_none(value: Any) -> Any:
    try:
        return json.loads(value)
    except (ValueError, TypeError):
        return None
