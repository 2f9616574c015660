"""Tests for the Redis and Postgres event stores."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from psycopg import errors as pg_errors
from redis.exceptions import ConnectionError as RedisConnectionError

from datefinder.dates import DateWindow
from datefinder.errors import NotFoundError, PersistenceError
from datefinder.identity import ID_ALPHABET
from datefinder.store import PostgresEventStore, RedisEventStore

WINDOW = DateWindow.normalize("2026-01-05", "2026-01-20")


class TestRedisEventStore:
    @pytest.mark.asyncio
    async def test_create_and_read(self, redis_store):
        event_id = await redis_store.create_event("Dinner", WINDOW, "Alice", "p1")

        assert len(event_id) == 10
        assert set(event_id) <= set(ID_ALPHABET)
        event = await redis_store.get_event(event_id)
        assert event.name == "Dinner"
        assert event.window == WINDOW
        assert event.participants["p1"].name == "Alice"
        assert event.participants["p1"].dates == frozenset()
        assert event.created_at > 0

    @pytest.mark.asyncio
    async def test_missing_event(self, redis_store):
        assert await redis_store.get_event("nope") is None

    @pytest.mark.asyncio
    async def test_replace_touches_only_one_participant(self, redis_store):
        event_id = await redis_store.create_event("Dinner", WINDOW, "Alice", "p1")
        await redis_store.replace_participant_dates(event_id, "p1", "Alice", ["2026-01-12"])
        await redis_store.replace_participant_dates(event_id, "p2", "Bob", ["2026-01-13", "2026-01-12"])
        await redis_store.replace_participant_dates(event_id, "p1", "Alice", ["2026-01-14"])

        event = await redis_store.get_event(event_id)

        assert event.participants["p1"].dates == frozenset({"2026-01-14"})
        assert event.participants["p2"].dates == frozenset({"2026-01-12", "2026-01-13"})

    @pytest.mark.asyncio
    async def test_replace_unknown_event(self, redis_store):
        with pytest.raises(NotFoundError):
            await redis_store.replace_participant_dates("missing", "p1", "Alice", [])

    @pytest.mark.asyncio
    async def test_id_collision_retries(self, redis_store):
        with patch("datefinder.store.generate_id", side_effect=["aaaaaaaaaa", "aaaaaaaaaa", "bbbbbbbbbb"]):
            first = await redis_store.create_event("One", WINDOW, "Alice", "p1")
            second = await redis_store.create_event("Two", WINDOW, "Bob", "p2")
        assert first == "aaaaaaaaaa"
        assert second == "bbbbbbbbbb"
        assert (await redis_store.get_event(first)).name == "One"

    @pytest.mark.asyncio
    async def test_failed_creator_write_leaves_no_event(self, redis_store, fake_redis):
        failing_hset = AsyncMock(side_effect=RedisConnectionError("down"))
        with patch("datefinder.store.generate_id", return_value="halfmade01"), \
             patch.object(fake_redis, "hset", failing_hset):
            with pytest.raises(PersistenceError) as exc_info:
                await redis_store.create_event("Dinner", WINDOW, "Alice", "p1")

        assert exc_info.value.context["operation"] == "create event"
        assert await fake_redis.exists(redis_store._event_key("halfmade01")) == 0
        assert await redis_store.get_event("halfmade01") is None

    @pytest.mark.asyncio
    async def test_malformed_participant_is_coerced(self, redis_store, fake_redis):
        event_id = await redis_store.create_event("Dinner", WINDOW, "Alice", "p1")
        key = redis_store._participants_key(event_id)
        await fake_redis.hset(key, "p2", "not json")
        await fake_redis.hset(key, "p3", json.dumps({"name": "", "dates": ["bad", "2026-01-10"]}))

        event = await redis_store.get_event(event_id)

        assert set(event.participants) == {"p1", "p3"}
        assert event.participants["p3"].name == "Аноним"
        assert event.participants["p3"].dates == frozenset({"2026-01-10"})

    @pytest.mark.asyncio
    async def test_unreadable_event_document(self, redis_store, fake_redis):
        await fake_redis.set(redis_store._event_key("broken"), "{not json")
        assert await redis_store.get_event("broken") is None

    @pytest.mark.asyncio
    async def test_backend_failure_is_persistence_error(self):
        client = MagicMock()
        client.exists = AsyncMock(side_effect=RedisConnectionError("down"))
        store = RedisEventStore(client)

        with pytest.raises(PersistenceError) as exc_info:
            await store.replace_participant_dates("evt", "p1", "Alice", ["2026-01-10"])

        assert exc_info.value.status_code == 503
        assert exc_info.value.context["unsynced"] is True
        assert exc_info.value.context["event_id"] == "evt"

    @pytest.mark.asyncio
    async def test_ping(self, redis_store):
        assert await redis_store.ping() is True


class TestPostgresEventStore:
    @pytest.mark.asyncio
    async def test_create_retries_on_unique_violation(self):
        insert = AsyncMock(side_effect=[pg_errors.UniqueViolation(), None])
        with patch("datefinder.store.db.df_insert_event", insert):
            event_id = await PostgresEventStore().create_event("Dinner", WINDOW, "Alice", "p1")

        assert len(event_id) == 10
        assert insert.await_count == 2
        args = insert.await_args.args
        assert args[0] == event_id
        assert args[2:4] == (WINDOW.start, WINDOW.end)
        assert args[5:] == ("p1", "Alice")

    @pytest.mark.asyncio
    async def test_get_event_builds_from_rows(self):
        doc = {
            "id": "evt1234567",
            "name": "Dinner",
            "window": {"start": "2026-01-05", "end": "2026-01-20"},
            "participants": {"p1": {"name": "Alice", "dates": ["2026-01-10"]}},
            "created_at": 1767600000000,
        }
        with patch("datefinder.store.db.df_fetch_event", AsyncMock(return_value=doc)):
            event = await PostgresEventStore().get_event("evt1234567")
        assert event.participants["p1"].dates == frozenset({"2026-01-10"})

    @pytest.mark.asyncio
    async def test_get_missing_event(self):
        with patch("datefinder.store.db.df_fetch_event", AsyncMock(return_value=None)):
            assert await PostgresEventStore().get_event("nope") is None

    @pytest.mark.asyncio
    async def test_replace_sends_sorted_unique_dates(self):
        upsert = AsyncMock(return_value=True)
        with patch("datefinder.store.db.df_upsert_participant", upsert):
            await PostgresEventStore().replace_participant_dates(
                "evt", "p1", "Alice", ["2026-01-12", "2026-01-10", "2026-01-12"]
            )
        upsert.assert_awaited_once_with("evt", "p1", "Alice", ["2026-01-10", "2026-01-12"])

    @pytest.mark.asyncio
    async def test_replace_unknown_event(self):
        with patch("datefinder.store.db.df_upsert_participant", AsyncMock(return_value=False)):
            with pytest.raises(NotFoundError):
                await PostgresEventStore().replace_participant_dates("evt", "p1", "Alice", [])

    @pytest.mark.asyncio
    async def test_unreadable_row_reads_as_missing(self):
        doc = {
            "id": "evt1234567",
            "name": "Dinner",
            "window": {"start": "2026-02-01", "end": "2026-01-01"},
            "participants": {},
            "created_at": 0,
        }
        with patch("datefinder.store.db.df_fetch_event", AsyncMock(return_value=doc)):
            assert await PostgresEventStore().get_event("evt1234567") is None

    @pytest.mark.asyncio
    async def test_database_error_is_persistence_error(self):
        failing = AsyncMock(side_effect=pg_errors.OperationalError("connection refused"))
        with patch("datefinder.store.db.df_fetch_event", failing):
            with pytest.raises(PersistenceError):
                await PostgresEventStore().get_event("evt")
