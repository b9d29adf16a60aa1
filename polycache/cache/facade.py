"""
polycache - Cache Facade

The public entry point. A Cache resolves to exactly one storage backend at
construction and never switches afterward. It validates keys, turns TTLs
into absolute expirations, applies the serializer pair around every value
and treats expired entries as absent.

Usage:
    async with Cache("directory", "/var/cache/app") as cache:
        await cache.set("user:1", {"name": "Ada"}, ttl=300)
        user = await cache.get("user:1")
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from types import TracebackType
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..config.schemas import CacheKind, CacheOptions
from ..errors import BackendError, CacheEnvironmentError, ConfigurationError, InvalidKeyError, ValidationError
from .backends.directory import DirectoryCacheBackend
from .backends.file import FileCacheBackend
from .backends.memory import MemoryCacheBackend
from .interface import StorageBackend
from .serialization import Serializer, resolve_serializer

logger = logging.getLogger(__name__)

MAX_KEY_LENGTH = 250

_MISSING_PACKAGES = {
    CacheKind.MEMCACHE: "pymemcache>=4.0",
    CacheKind.REDIS: "redis>=5.0.0",
    CacheKind.DATABASE: "sqlalchemy[asyncio]>=2.0",
}


def _require_path(kind: CacheKind, data_store: Any) -> Any:
    if data_store is None:
        raise CacheEnvironmentError(
            f"A path is required for the {kind.value} cache",
            details={"backend": kind.value},
        )
    return data_store


def _build_file(data_store: Any, options: CacheOptions) -> StorageBackend:
    return FileCacheBackend(
        _require_path(CacheKind.FILE, data_store),
        clock=options.clock,
        clean_probability=options.clean_probability,
        seed=options.seed,
    )


def _build_directory(data_store: Any, options: CacheOptions) -> StorageBackend:
    return DirectoryCacheBackend(_require_path(CacheKind.DIRECTORY, data_store), clock=options.clock)


def _build_memory(data_store: Any, options: CacheOptions) -> StorageBackend:
    return MemoryCacheBackend(clock=options.clock)


def _build_memcache(data_store: Any, options: CacheOptions) -> StorageBackend:
    from .backends.memcache import MemcacheCacheBackend

    return MemcacheCacheBackend(
        client=data_store,
        host=options.host,
        port=options.port,
        timeout=options.timeout,
        namespace=options.namespace,
        clock=options.clock,
    )


def _build_redis(data_store: Any, options: CacheOptions) -> StorageBackend:
    from .backends.redis import RedisCacheBackend

    return RedisCacheBackend(
        client=data_store,
        host=options.host,
        port=options.port,
        timeout=options.timeout,
        namespace=options.namespace,
        clock=options.clock,
    )


def _build_database(data_store: Any, options: CacheOptions) -> StorageBackend:
    missing = [name for name in ("table", "key_column", "value_column", "ttl_column") if not getattr(options, name)]
    if data_store is None:
        missing.insert(0, "data_store (engine or URL)")
    if missing:
        raise ConfigurationError(
            f"The database cache requires: {', '.join(missing)}",
            details={"backend": "database", "missing": missing},
        )

    from .backends.database import DatabaseCacheBackend

    return DatabaseCacheBackend(
        data_store,
        table_name=options.table,  # type: ignore[arg-type]
        key_column=options.key_column,  # type: ignore[arg-type]
        value_column=options.value_column,  # type: ignore[arg-type]
        ttl_column=options.ttl_column,  # type: ignore[arg-type]
        value_data_type=options.value_data_type,
        clock=options.clock,
    )


_BUILDERS: dict[CacheKind, Callable[[Any, CacheOptions], StorageBackend]] = {
    CacheKind.FILE: _build_file,
    CacheKind.DIRECTORY: _build_directory,
    CacheKind.MEMORY: _build_memory,
    CacheKind.MEMCACHE: _build_memcache,
    CacheKind.REDIS: _build_redis,
    CacheKind.DATABASE: _build_database,
}


class Cache:
    """
    Backend-agnostic key/value cache.

    Args:
        kind: Backend kind ('file', 'directory', 'memory', 'memcache', 'redis', 'database')
        data_store: Path for file/directory caches, a pre-built client for
            memcache/redis, an AsyncEngine or URL for database, unused for memory
        options: Options mapping, see CacheOptions

    Raises:
        ConfigurationError: Unknown kind or malformed options
        CacheEnvironmentError: Unusable path or missing client library
    """

    def __init__(
        self,
        kind: CacheKind | str,
        data_store: Any = None,
        options: Mapping[str, Any] | CacheOptions | None = None,
    ) -> None:
        try:
            self.kind = CacheKind(kind)
        except ValueError as e:
            raise ConfigurationError(
                f"The type specified, {kind}, is not a valid cache type. "
                f"Must be one of: {', '.join(k.value for k in CacheKind)}",
                details={"backend": str(kind), "supported": [k.value for k in CacheKind]},
            ) from e

        try:
            self.options = options if isinstance(options, CacheOptions) else CacheOptions(**(options or {}))
        except PydanticValidationError as e:
            raise ConfigurationError(
                f"Invalid cache options: {e}",
                details={"validation_errors": e.errors(include_url=False, include_context=False, include_input=False)},
            ) from e

        self.serializer: Serializer = resolve_serializer(self.options.serializer, self.options.deserializer)

        try:
            self.backend: StorageBackend = _BUILDERS[self.kind](data_store, self.options)
        except ImportError as e:
            package = _MISSING_PACKAGES.get(self.kind, str(e.name))
            logger.error(
                f"{self.kind.value} backend selected but its client library is not installed",
                extra={"package": package, "error": str(e)},
            )
            raise CacheEnvironmentError(
                f"The {self.kind.value} cache requires '{package}'. Install with: pip install '{package}'",
                details={"backend": self.kind.value, "package": package, "error": str(e)},
            ) from e

        self._closed = False
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._adds = 0
        self._deletes = 0

        logger.debug(
            f"Created {self.kind.value} cache",
            extra={"backend": self.kind.value, "serializer": self.serializer.name},
        )

    # ------------ Helpers ------------

    @staticmethod
    def _check_key(key: Any) -> str:
        if not isinstance(key, str):
            raise InvalidKeyError(key, "keys must be strings")
        if not key:
            raise InvalidKeyError(key, "keys must not be empty")
        if len(key) > MAX_KEY_LENGTH:
            raise InvalidKeyError(key, f"keys must be at most {MAX_KEY_LENGTH} characters")
        return key

    def _expire_at(self, ttl: int) -> int | None:
        if isinstance(ttl, bool) or not isinstance(ttl, int):
            raise ValidationError(f"ttl must be an integer number of seconds, got {ttl!r}", {"ttl": repr(ttl)})
        if ttl < 0:
            raise ValidationError(f"ttl must not be negative, got {ttl}", {"ttl": ttl})
        return self.backend.now() + ttl if ttl else None

    def _dumps(self, key: str, value: Any) -> bytes:
        try:
            return self.serializer.dumps(value)
        except Exception as e:
            raise ValidationError(
                f"Failed to serialize value for key '{key}' with {self.serializer.name}: {e}",
                {"key": key, "value_type": type(value).__name__, "serializer": self.serializer.name},
            ) from e

    def _loads(self, key: str, data: bytes) -> Any:
        try:
            return self.serializer.loads(data)
        except Exception as e:
            raise BackendError(
                self.kind.value,
                "get",
                f"stored value for key '{key}' could not be deserialized: {e}",
                details={"key": key, "serializer": self.serializer.name},
            ) from e

    # ------------ Operations ------------

    async def get(self, key: str, default: Any = None) -> Any:
        """
        Return the stored value, or default if the key is absent or expired.

        For the file cache, reading an expired entry removes it.
        """
        key = self._check_key(key)
        entry = await self.backend.raw_get(key)
        if entry is None or entry.is_expired(self.backend.now()):
            self._misses += 1
            return default
        self._hits += 1
        return self._loads(key, entry.value)

    async def set(self, key: str, value: Any, ttl: int = 0) -> bool:
        """
        Store a value, replacing any existing entry.

        Args:
            key: Cache key
            value: Value to store
            ttl: Seconds until expiration (0 = never expires)

        Returns:
            True if the backend confirmed the write
        """
        key = self._check_key(key)
        expire_at = self._expire_at(ttl)
        stored = await self.backend.raw_set(key, self._dumps(key, value), expire_at)
        if stored:
            self._sets += 1
        return stored

    async def add(self, key: str, value: Any, ttl: int = 0) -> bool:
        """
        Store a value only if the key has no live entry.

        Returns:
            True if stored, False if a non-expired entry already exists
        """
        key = self._check_key(key)
        expire_at = self._expire_at(ttl)
        added = await self.backend.raw_add(key, self._dumps(key, value), expire_at)
        if added:
            self._adds += 1
        return added

    async def delete(self, key: str) -> bool:
        """Remove a key. Deleting an absent key is not an error."""
        key = self._check_key(key)
        deleted = await self.backend.raw_delete(key)
        self._deletes += 1
        return deleted

    async def clear(self) -> bool:
        """
        Remove every entry, expired or not.

        Warning: memcache flushes the whole server, and redis without a
        namespace flushes the whole selected database.
        """
        cleared = await self.backend.raw_clear()
        logger.info(f"Cleared {self.kind.value} cache", extra={"backend": self.kind.value})
        return cleared

    async def clean(self) -> None:
        """Purge expired entries; backends that expire entries themselves do nothing."""
        removed = await self.backend.raw_purge_expired()
        if removed:
            logger.debug(f"Removed {removed} expired entries", extra={"backend": self.kind.value})

    async def save(self) -> None:
        """Flush buffered state now (file cache only)."""
        await self.backend.flush()

    async def close(self) -> None:
        """
        Shut the cache down: maybe purge expired entries, flush buffered
        state, release owned connections. Safe to call more than once.
        """
        if self._closed:
            return
        await self.backend.close()
        self._closed = True
        logger.debug(f"Closed {self.kind.value} cache", extra={"backend": self.kind.value})

    def get_stats(self) -> dict[str, Any]:
        """Get operation counters for this cache."""
        total_requests = self._hits + self._misses
        hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0.0
        return {
            "backend": self.kind.value,
            "serializer": self.serializer.name,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(hit_rate, 2),
            "sets": self._sets,
            "adds": self._adds,
            "deletes": self._deletes,
        }

    async def __aenter__(self) -> Cache:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
