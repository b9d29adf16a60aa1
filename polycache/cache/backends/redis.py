"""
polycache - Redis Cache Backend

Asynchronous Redis backend with:
- Native key expiration (SET ... EX)
- Atomic add through a single SET ... NX [EX] command
- Optional namespace prefixing; without one, clear() flushes the whole DB

Requires: redis>=5.0 with asyncio support

Example:
    backend = RedisCacheBackend(host="localhost", port=6379, namespace="app")
    await backend.raw_set("greeting", b"hello", expire_at=None)
"""

from __future__ import annotations

import logging
from typing import Any

from ...errors import BackendError
from ..interface import CacheEntry, Clock, StorageBackend

logger = logging.getLogger(__name__)

try:
    # redis-py asyncio client (v4+)
    from redis.asyncio import Redis
    from redis.exceptions import RedisError
except ImportError as e:  # pragma: no cover
    raise ImportError(
        "Redis async client is required but not installed. "
        "Install with: pip install 'redis>=5.0.0' or add 'redis' to your dependencies."
    ) from e

DEFAULT_PORT = 6379


class RedisCacheBackend(StorageBackend):
    """
    Redis cache backend.

    Notes:
    - Values are stored as raw bytes; the facade owns serialization.
    - TTL is applied via Redis EX seconds; no expiry means a plain SET.
    - Expired keys are removed by the server, so nothing is enumerated.
    """

    kind = "redis"

    def __init__(
        self,
        client: Any | None = None,
        host: str = "127.0.0.1",
        port: int | None = None,
        timeout: float = 2.5,
        namespace: str | None = None,
        clock: Clock | None = None,
    ) -> None:
        """
        Initialize Redis cache backend.

        Args:
            client: Pre-built redis.asyncio.Redis client (built from host/port if None)
            host: Server host
            port: Server port (6379 if None)
            timeout: Socket and connect timeout in seconds
            namespace: Prefix for all keys; limits clear() to prefixed keys
            clock: Time source used to turn absolute expirations into TTLs
        """
        super().__init__(clock)
        self.namespace = namespace
        self._owns_client = client is None

        # Lazy connection; connects on first command
        self._client = client or Redis(
            host=host,
            port=port or DEFAULT_PORT,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
            decode_responses=False,
        )

    # ------------ Helpers ------------

    def _make_key(self, key: str) -> str:
        """Create namespaced key."""
        return f"{self.namespace}:{key}" if self.namespace else key

    def _ttl_seconds(self, expire_at: int | None) -> int | None:
        """Relative TTL for an absolute expiration (None -> no expiry)."""
        if expire_at is None:
            return None
        return max(1, expire_at - self.now())

    def _failed(self, operation: str, key: str | None, error: Exception) -> BackendError:
        logger.error(
            f"Redis {operation} failed: {error}",
            extra={"key": key, "namespace": self.namespace, "operation": operation, "error": str(error)},
        )
        return BackendError("redis", operation, str(error), details={"key": key})

    # ------------ Core Interface ------------

    async def raw_get(self, key: str) -> CacheEntry | None:
        try:
            data = await self._client.get(self._make_key(key))
        except RedisError as e:
            raise self._failed("get", key, e) from e
        if data is None:
            return None
        if isinstance(data, str):
            data = data.encode("utf-8")
        return CacheEntry(data)

    async def raw_set(self, key: str, data: bytes, expire_at: int | None) -> bool:
        try:
            # redis-py returns True or 'OK' depending on decode_responses
            result = await self._client.set(self._make_key(key), data, ex=self._ttl_seconds(expire_at))
        except RedisError as e:
            raise self._failed("set", key, e) from e
        return bool(result)

    async def raw_add(self, key: str, data: bytes, expire_at: int | None) -> bool:
        try:
            result = await self._client.set(self._make_key(key), data, ex=self._ttl_seconds(expire_at), nx=True)
        except RedisError as e:
            raise self._failed("add", key, e) from e
        return bool(result)

    async def raw_delete(self, key: str) -> bool:
        try:
            await self._client.delete(self._make_key(key))
        except RedisError as e:
            raise self._failed("delete", key, e) from e
        return True

    async def raw_clear(self) -> bool:
        """
        Clear all entries under the namespace, or the whole DB without one.

        Namespaced implementation: SCAN match "<namespace>:*" and DEL in batches.
        """
        try:
            if not self.namespace:
                result = await self._client.flushdb()
                logger.warning("Flushed the selected Redis database")
                return bool(result)

            total_deleted = 0
            batch: list[Any] = []
            async for ns_key in self._client.scan_iter(match=f"{self.namespace}:*", count=1000):
                batch.append(ns_key)
                if len(batch) >= 1000:
                    total_deleted += await self._client.delete(*batch)
                    batch = []
            if batch:
                total_deleted += await self._client.delete(*batch)
        except RedisError as e:
            raise self._failed("clear", None, e) from e

        logger.info(f"Cleared {total_deleted} keys from namespace '{self.namespace}'")
        return True

    async def close(self) -> None:
        """Close the Redis client if this backend created it."""
        if not self._owns_client:
            return
        try:
            await self._client.aclose()
            logger.info("Closed Redis cache backend", extra={"namespace": self.namespace})
        except RedisError as e:
            logger.warning(f"Error closing Redis client: {e}", extra={"namespace": self.namespace, "error": str(e)})
