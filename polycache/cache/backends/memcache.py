"""
polycache - Memcache Cache Backend

Delegates to a memcached server through pymemcache. The client is
synchronous, so every call runs in a worker thread.

Memcached reads any expiration above 30 days as an absolute Unix time,
so longer TTLs are capped to an absolute timestamp 30 days from now.

Requires: pymemcache>=4.0
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ...errors import BackendError, InvalidKeyError
from ..interface import CacheEntry, Clock, StorageBackend

logger = logging.getLogger(__name__)

try:
    from pymemcache.client.base import Client
    from pymemcache.exceptions import MemcacheError
except ImportError as e:  # pragma: no cover
    raise ImportError(
        "pymemcache is required but not installed. Install with: pip install 'pymemcache>=4.0'"
    ) from e

DEFAULT_PORT = 11211
MAX_RELATIVE_TTL = 2592000  # 30 days
MAX_KEY_BYTES = 250


class MemcacheCacheBackend(StorageBackend):
    """
    Memcached backend.

    Notes:
    - add() maps to the protocol's atomic add command
    - clear() flushes the whole server, not just this cache's keys
    - Entries expire on the server; nothing can be enumerated
    """

    kind = "memcache"

    def __init__(
        self,
        client: Any | None = None,
        host: str = "127.0.0.1",
        port: int | None = None,
        timeout: float = 2.5,
        namespace: str | None = None,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(clock)
        self.namespace = namespace
        self._owns_client = client is None
        self._client = client or Client(
            (host, port or DEFAULT_PORT),
            connect_timeout=timeout,
            timeout=timeout,
            allow_unicode_keys=True,
        )

    def _make_key(self, key: str) -> bytes:
        """Namespaced key as UTF-8 bytes, which any client accepts regardless of its unicode setting."""
        full_key = f"{self.namespace}:{key}" if self.namespace else key
        if any(c.isspace() or ord(c) < 32 or ord(c) == 127 for c in full_key):
            raise InvalidKeyError(key, "memcache keys cannot contain whitespace or control characters")
        encoded = full_key.encode("utf-8")
        if len(encoded) > MAX_KEY_BYTES:
            raise InvalidKeyError(key, f"longer than {MAX_KEY_BYTES} bytes once namespaced and UTF-8 encoded")
        return encoded

    def expire_for(self, expire_at: int | None) -> int:
        """
        Convert an absolute expiration into memcached's expire argument.

        Relative TTLs up to 30 days are sent as-is; longer ones become the
        absolute timestamp now + 30 days.
        """
        if expire_at is None:
            return 0
        now = self.now()
        ttl = max(1, expire_at - now)
        if ttl > MAX_RELATIVE_TTL:
            return now + MAX_RELATIVE_TTL
        return ttl

    async def _call(self, operation: str, method: str, *args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(getattr(self._client, method), *args, **kwargs)
        except (MemcacheError, OSError) as e:
            logger.error(
                f"Memcache {operation} failed: {e}",
                extra={"operation": operation, "namespace": self.namespace, "error": str(e)},
            )
            raise BackendError("memcache", operation, str(e)) from e

    async def raw_get(self, key: str) -> CacheEntry | None:
        data = await self._call("get", "get", self._make_key(key))
        if data is None:
            return None
        return CacheEntry(bytes(data))

    async def raw_set(self, key: str, data: bytes, expire_at: int | None) -> bool:
        result = await self._call("set", "set", self._make_key(key), data, expire=self.expire_for(expire_at), noreply=False)
        return bool(result)

    async def raw_add(self, key: str, data: bytes, expire_at: int | None) -> bool:
        result = await self._call("add", "add", self._make_key(key), data, expire=self.expire_for(expire_at), noreply=False)
        return bool(result)

    async def raw_delete(self, key: str) -> bool:
        # False only means the key was absent
        await self._call("delete", "delete", self._make_key(key), noreply=False)
        return True

    async def raw_clear(self) -> bool:
        result = await self._call("clear", "flush_all", noreply=False)
        logger.warning("Flushed all keys on the memcached server")
        return bool(result)

    async def close(self) -> None:
        if not self._owns_client:
            return
        try:
            await asyncio.to_thread(self._client.close)
        except (MemcacheError, OSError) as e:
            logger.warning(f"Error closing memcache client: {e}", extra={"error": str(e)})
