"""
polycache - Single-File Cache Backend

Holds every entry in a process-local mapping loaded from one durable file.
Operations only touch the mapping; the LazyPersistence controller writes
it back at shutdown or on an explicit save.

Durable format: a pickled dict of key -> {"value": bytes, "expire": int},
where expire 0 means the entry never expires. Not suitable for a large
number of keys since the whole file is rewritten on every flush.
"""

import logging
import os
import pickle
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

from ...errors import CacheEnvironmentError
from ..interface import CacheEntry, Clock, StorageBackend
from ..persistence import DEFAULT_CLEAN_PROBABILITY, LazyPersistence

logger = logging.getLogger(__name__)


class FileCacheBackend(StorageBackend):
    """In-memory map with deferred flush to a single file."""

    kind = "file"
    enumerable = True

    def __init__(
        self,
        path: str | os.PathLike[str],
        clock: Clock | None = None,
        clean_probability: float = DEFAULT_CLEAN_PROBABILITY,
        seed: int | None = None,
    ) -> None:
        super().__init__(clock)
        self.path = Path(path)
        self._validate_path()
        self._store: dict[str, CacheEntry] = self._load() if self.path.exists() else {}
        self.persistence = LazyPersistence(
            self.path,
            snapshot=self._snapshot,
            clean=self.raw_purge_expired,
            clean_probability=clean_probability,
            seed=seed,
        )

    def _validate_path(self) -> None:
        path = self.path
        if path.exists():
            if not path.is_file():
                raise CacheEnvironmentError(
                    f"The path specified, {path}, is not a regular file",
                    details={"path": str(path)},
                )
            if not os.access(path, os.W_OK):
                raise CacheEnvironmentError(
                    f"The file specified, {path}, is not writable",
                    details={"path": str(path)},
                )
            return

        parent = path.parent
        if not parent.is_dir() or not os.access(parent, os.W_OK):
            raise CacheEnvironmentError(
                f"The file specified, {path}, does not exist and its directory is not writable",
                details={"path": str(path), "directory": str(parent)},
            )

    def _load(self) -> dict[str, CacheEntry]:
        try:
            raw = pickle.loads(self.path.read_bytes()) if self.path.stat().st_size else {}
        except (OSError, pickle.UnpicklingError, EOFError, ValueError) as e:
            raise CacheEnvironmentError(
                f"The file specified, {self.path}, could not be read as a cache file: {e}",
                details={"path": str(self.path), "error": str(e)},
            ) from e

        try:
            store = {key: CacheEntry(item["value"], item["expire"] or None) for key, item in raw.items()}
        except (AttributeError, KeyError, TypeError) as e:
            raise CacheEnvironmentError(
                f"The file specified, {self.path}, does not contain a cache mapping",
                details={"path": str(self.path), "type": type(raw).__name__},
            ) from e
        logger.debug(f"Loaded {len(store)} entries from {self.path}")
        return store

    def _snapshot(self) -> dict[str, dict[str, Any]]:
        return {key: {"value": entry.value, "expire": entry.expire_at or 0} for key, entry in self._store.items()}

    async def raw_get(self, key: str) -> CacheEntry | None:
        entry = self._store.get(key)
        if entry is not None and entry.is_expired(self.now()):
            # A read that finds an expired entry drops it
            del self._store[key]
            self.persistence.mark_dirty()
            return None
        return entry

    async def raw_set(self, key: str, data: bytes, expire_at: int | None) -> bool:
        self._store[key] = CacheEntry(data, expire_at)
        self.persistence.mark_dirty()
        return True

    async def raw_add(self, key: str, data: bytes, expire_at: int | None) -> bool:
        entry = self._store.get(key)
        if entry is not None and not entry.is_expired(self.now()):
            return False
        return await self.raw_set(key, data, expire_at)

    async def raw_delete(self, key: str) -> bool:
        if self._store.pop(key, None) is not None:
            self.persistence.mark_dirty()
        return True

    async def raw_clear(self) -> bool:
        self._store.clear()
        self.persistence.mark_dirty()
        return True

    async def raw_enumerate(self) -> AsyncIterator[tuple[str, int | None]]:
        for key, entry in list(self._store.items()):
            yield key, entry.expire_at

    async def flush(self, force: bool = False) -> bool:
        return await self.persistence.flush(force=force)

    async def close(self) -> None:
        await self.persistence.shutdown()

    def __len__(self) -> int:
        return len(self._store)
