"""
polycache - Redis Backend Tests

Uses a mocked redis.asyncio client. Live-server coverage is in
tests/integration/test_redis_live.py.
"""

from collections.abc import AsyncIterator
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from polycache.cache import Cache
from polycache.cache.backends.redis import RedisCacheBackend
from polycache.errors import BackendError
from tests.conftest import FakeClock


@pytest.fixture
def client() -> MagicMock:
    mock = MagicMock()
    mock.get = AsyncMock(return_value=None)
    mock.set = AsyncMock(return_value=True)
    mock.delete = AsyncMock(return_value=1)
    mock.flushdb = AsyncMock(return_value=True)
    mock.aclose = AsyncMock()
    return mock


@pytest.fixture
def cache(client: MagicMock, clock: FakeClock) -> Cache:
    return Cache("redis", client, {"clock": clock, "serializer": "json"})


class TestOperations:
    async def test_get(self, cache: Cache, client: MagicMock) -> None:
        client.get.return_value = b"[1,2]"
        assert await cache.get("key") == [1, 2]
        client.get.assert_awaited_once_with("key")

    async def test_get_miss(self, cache: Cache, client: MagicMock) -> None:
        assert await cache.get("key", "default") == "default"

    async def test_set_without_ttl(self, cache: Cache, client: MagicMock) -> None:
        assert await cache.set("key", "v") is True
        client.set.assert_awaited_once_with("key", b'"v"', ex=None)

    async def test_set_with_ttl(self, cache: Cache, client: MagicMock) -> None:
        await cache.set("key", "v", ttl=90 * 86400)
        client.set.assert_awaited_once_with("key", b'"v"', ex=90 * 86400)

    async def test_add_is_single_set_nx(self, cache: Cache, client: MagicMock) -> None:
        assert await cache.add("key", "v", ttl=30) is True
        client.set.assert_awaited_once_with("key", b'"v"', ex=30, nx=True)

        client.set.return_value = None
        assert await cache.add("key", "v") is False

    async def test_delete_absent_is_success(self, cache: Cache, client: MagicMock) -> None:
        client.delete.return_value = 0
        assert await cache.delete("key") is True

    async def test_clear_without_namespace_flushes_db(self, cache: Cache, client: MagicMock) -> None:
        assert await cache.clear() is True
        client.flushdb.assert_awaited_once()

    async def test_clear_with_namespace_scans_prefix(self, client: MagicMock) -> None:
        keys = [f"app:{i}".encode() for i in range(3)]

        async def scan_iter(match: str, count: int) -> AsyncIterator[bytes]:
            assert match == "app:*"
            for key in keys:
                yield key

        client.scan_iter = scan_iter
        cache = Cache("redis", client, {"namespace": "app"})

        assert await cache.clear() is True
        client.delete.assert_awaited_once_with(*keys)
        client.flushdb.assert_not_awaited()

    async def test_namespace_prefix(self, client: MagicMock) -> None:
        cache = Cache("redis", client, {"namespace": "app"})
        await cache.set("key", "v")
        assert client.set.await_args.args[0] == "app:key"

    async def test_connection_error(self, cache: Cache, client: MagicMock) -> None:
        client.get.side_effect = RedisConnectionError("connection refused")
        with pytest.raises(BackendError, match="connection refused"):
            await cache.get("key")

    async def test_prebuilt_client_not_closed(self, cache: Cache, client: MagicMock) -> None:
        await cache.close()
        client.aclose.assert_not_awaited()


async def test_owned_client_closed_on_shutdown() -> None:
    backend = RedisCacheBackend(host="localhost", port=6390, timeout=0.5)
    backend._client.aclose = AsyncMock()

    await backend.close()

    backend._client.aclose.assert_awaited_once()
