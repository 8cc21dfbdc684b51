"""
Shared fixtures for the Bulletin test suite.
"""

from datetime import datetime, timedelta, timezone

import fakeredis
import pytest
import pytest_asyncio

from bulletin.announce_server.config import AnnouncementConfig, RedisConfig
from bulletin.announce_server.registry import VersionRegistry
from bulletin.announce_server.store.memory import InMemoryKeyValueStore
from bulletin.announce_server.store.redis import RedisKeyValueStore


class FakeClock:
    """Controllable clock returning timezone-aware datetimes."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)

    def seconds(self) -> int:
        return int(self.now.timestamp())


@pytest.fixture
def clock():
    """Clock frozen at 2026-10-19 10:00 UTC."""
    return FakeClock(datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc))


@pytest_asyncio.fixture
async def store():
    """Connected in-memory store."""
    kv = InMemoryKeyValueStore()
    await kv.connect()
    yield kv
    await kv.close()


@pytest.fixture
def registry(store, clock):
    """Registry over the in-memory store with a one hour lifetime."""
    return VersionRegistry(store, expire_seconds=3600, clock=clock)


@pytest.fixture
def announce_config():
    """Small, fast configuration for service tests."""
    return AnnouncementConfig(
        capacity=30,
        expire_seconds=3600,
        timer_poll_seconds=0.01,
        timer_retry_seconds=0.01,
    )


@pytest.fixture
def redis_server():
    """In-process fake Redis server shared by every client of a test."""
    return fakeredis.FakeServer()


def make_redis_store(server) -> RedisKeyValueStore:
    """Redis store whose clients talk to the given fake server."""
    return RedisKeyValueStore(
        RedisConfig(),
        client_factory=lambda: fakeredis.FakeAsyncRedis(server=server, decode_responses=True),
    )


@pytest.fixture
def redis_store_factory(redis_server):
    """Build unconnected Redis stores over the fake server."""
    return lambda: make_redis_store(redis_server)


@pytest_asyncio.fixture
async def redis_store(redis_server):
    """Connected Redis store over the fake server."""
    kv = make_redis_store(redis_server)
    await kv.connect()
    yield kv
    await kv.close()


@pytest.fixture(params=["memory", "redis"])
def store_factory(request, redis_server):
    """Build stores that all see the same data, on each backend.

    The memory backend hands out one shared instance; the Redis backend
    builds a new store (own connection pool) over the shared fake server.
    Stores are returned unconnected.
    """
    if request.param == "memory":
        shared = InMemoryKeyValueStore()
        return lambda: shared
    return lambda: make_redis_store(redis_server)
