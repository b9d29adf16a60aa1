"""
polycache - Storage Backend Interface

Defines the primitive capability set every storage backend implements.
Backends only ever see serialized bytes and absolute expiration timestamps;
TTL arithmetic and serialization live in the facade.
"""

import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass

Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry:
    """A stored value and its absolute expiration (None = never expires)."""

    value: bytes
    expire_at: int | None = None

    def is_expired(self, now: int) -> bool:
        """An entry stays live through the second it expires in."""
        return self.expire_at is not None and self.expire_at < now


class StorageBackend(ABC):
    """
    Abstract base class for storage backends.

    Enumerable backends hold a local entry set and support raw_enumerate();
    the others expire entries on their own and raise NotImplementedError.
    """

    kind: str = "abstract"
    enumerable: bool = False

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or time.time

    def now(self) -> int:
        """Current time in whole seconds."""
        return int(self._clock())

    @abstractmethod
    async def raw_get(self, key: str) -> CacheEntry | None:
        """
        Fetch the stored entry for a key.

        Returns:
            The entry (possibly expired for backends without native TTL),
            or None if nothing is stored
        """

    @abstractmethod
    async def raw_set(self, key: str, data: bytes, expire_at: int | None) -> bool:
        """
        Insert or replace an entry.

        Returns:
            True if the backend confirmed the write
        """

    @abstractmethod
    async def raw_add(self, key: str, data: bytes, expire_at: int | None) -> bool:
        """
        Store an entry only if no live entry exists for the key.

        Returns:
            True if stored, False if a live entry was already present
        """

    @abstractmethod
    async def raw_delete(self, key: str) -> bool:
        """
        Remove an entry; removing an absent key succeeds.

        Returns:
            True unless the backend reported a failure
        """

    @abstractmethod
    async def raw_clear(self) -> bool:
        """
        Remove every entry in the backend's namespace.

        Returns:
            True if everything was removed
        """

    async def raw_enumerate(self) -> AsyncIterator[tuple[str, int | None]]:
        """Yield (key, expire_at) for every stored entry."""
        raise NotImplementedError(f"{self.kind} backend cannot enumerate its entries")
        yield  # pragma: no cover

    async def raw_purge_expired(self) -> int:
        """
        Remove entries whose expiration has passed.

        Default implementation enumerates and deletes; non-enumerable
        backends expire entries themselves and purge nothing.

        Returns:
            Number of entries removed
        """
        if not self.enumerable:
            return 0

        now = self.now()
        expired = [key async for key, expire_at in self.raw_enumerate() if expire_at is not None and expire_at < now]
        for key in expired:
            await self.raw_delete(key)
        return len(expired)

    async def flush(self, force: bool = False) -> bool:
        """
        Persist buffered state. Only backends that buffer writes in memory
        override this.

        Returns:
            True if a durable write happened
        """
        return False

    async def close(self) -> None:  # noqa: B027
        """Release backend resources. Should be called during graceful shutdown."""
