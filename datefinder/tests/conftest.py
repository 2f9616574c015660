import os
import sys
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
import fakeredis.aioredis as fakeredis

import datefinder.lifespan as lifespan
import datefinder.main as main
from datefinder.models.event import Participant
from datefinder.store import RedisEventStore


class _AwaitableRedis:
    def __init__(self, client):
        self._client = client

    def __await__(self):
        async def _coro():
            return self._client

        return _coro().__await__()


@pytest.fixture
def client(monkeypatch):
    def fake_redis_constructor(*_args, **_kwargs):
        fake = fakeredis.FakeRedis(decode_responses=True)
        return _AwaitableRedis(fake)

    monkeypatch.setattr(lifespan.redis, "Redis", fake_redis_constructor)

    with TestClient(main.app) as c:
        yield c


@pytest_asyncio.fixture
async def fake_redis():
    fake = fakeredis.FakeRedis(decode_responses=True)
    yield fake
    await fake.flushall()
    await fake.aclose()


@pytest_asyncio.fixture
async def redis_store(fake_redis):
    return RedisEventStore(fake_redis)


@pytest.fixture
def make_participants():
    """Build ``id -> Participant`` from ``id=(name, [dates])`` keyword pairs."""

    def _make(**entries):
        return {
            pid: Participant(id=pid, name=name, dates=frozenset(dates))
            for pid, (name, dates) in entries.items()
        }

    return _make
