"""
polycache - Redis Live Server Tests

Requires Redis server running on localhost:6379 (or TEST_REDIS_URL env var).
Database 15 is used and flushed around every test.
"""

import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from redis.asyncio import Redis

from polycache.cache import Cache
from tests.conftest import redis_available

pytestmark = redis_available


@pytest_asyncio.fixture
async def redis_client() -> AsyncGenerator[Redis, None]:
    """Redis client on the isolated test database."""
    client = Redis.from_url(os.environ.get("TEST_REDIS_URL", "redis://localhost:6379/15"))
    await client.flushdb()
    yield client
    await client.flushdb()
    await client.aclose()


class TestRedisLive:
    async def test_round_trip(self, redis_client: Redis) -> None:
        cache = Cache("redis", redis_client, {"namespace": "test"})

        await cache.set("key", {"nested": [1, 2]})

        assert await cache.get("key") == {"nested": [1, 2]}
        assert await redis_client.exists("test:key") == 1

    async def test_add_is_exclusive(self, redis_client: Redis) -> None:
        cache = Cache("redis", redis_client)

        assert await cache.add("key", "first", ttl=60) is True
        assert await cache.add("key", "second", ttl=60) is False
        assert await cache.get("key") == "first"
        assert 0 < await redis_client.ttl("key") <= 60

    async def test_namespaced_clear_keeps_other_keys(self, redis_client: Redis) -> None:
        await redis_client.set("other", b"keep")
        cache = Cache("redis", redis_client, {"namespace": "test"})
        await cache.set("a", 1)
        await cache.set("b", 2)

        assert await cache.clear() is True

        assert await cache.get("a") is None
        assert await redis_client.get("other") == b"keep"
