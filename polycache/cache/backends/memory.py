"""
polycache - Memory Cache Backend

Process-local key/value store with native TTL support. Entries live only
as long as the process; nothing is persisted.
"""

import logging
from collections.abc import AsyncIterator

from ..interface import CacheEntry, Clock, StorageBackend

logger = logging.getLogger(__name__)


class MemoryCacheBackend(StorageBackend):
    """
    In-memory cache backend.

    Features:
    - Per-key absolute expiration, checked on read
    - Expired entries are dropped lazily on access or by purge
    - O(1) get/set/delete operations
    """

    kind = "memory"
    enumerable = True

    def __init__(self, clock: Clock | None = None) -> None:
        super().__init__(clock)
        # Cache storage: key -> entry
        self._cache: dict[str, CacheEntry] = {}

    def _live(self, key: str) -> CacheEntry | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        if entry.is_expired(self.now()):
            del self._cache[key]
            return None
        return entry

    async def raw_get(self, key: str) -> CacheEntry | None:
        return self._live(key)

    async def raw_set(self, key: str, data: bytes, expire_at: int | None) -> bool:
        self._cache[key] = CacheEntry(data, expire_at)
        return True

    async def raw_add(self, key: str, data: bytes, expire_at: int | None) -> bool:
        if self._live(key) is not None:
            return False
        self._cache[key] = CacheEntry(data, expire_at)
        return True

    async def raw_delete(self, key: str) -> bool:
        self._cache.pop(key, None)
        return True

    async def raw_clear(self) -> bool:
        size = len(self._cache)
        self._cache.clear()
        logger.info(f"Cleared {size} entries from memory cache")
        return True

    async def raw_enumerate(self) -> AsyncIterator[tuple[str, int | None]]:
        for key, entry in list(self._cache.items()):
            yield key, entry.expire_at

    def __len__(self) -> int:
        return len(self._cache)
