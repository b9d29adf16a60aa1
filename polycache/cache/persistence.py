"""
polycache - Lazy Persistence Controller

Tracks whether an in-memory store differs from its durable file and flushes
it at shutdown (or on an explicit save). Expired entries are purged at
shutdown with a small, seedable probability so cleanup cost is amortized
without a scheduled job.
"""

from __future__ import annotations

import asyncio
import logging
import os
import pickle
import random
import tempfile
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from ..errors import BackendError

logger = logging.getLogger(__name__)

DEFAULT_CLEAN_PROBABILITY = 0.01


class LazyPersistence:
    """
    Dirty-flag persistence for a single durable file.

    The durable write is all-or-nothing: data goes to a temporary file in
    the same directory which then replaces the target, so a failed flush
    leaves the previous file as the committed state.
    """

    def __init__(
        self,
        path: Path,
        snapshot: Callable[[], Any],
        clean: Callable[[], Awaitable[Any]],
        clean_probability: float = DEFAULT_CLEAN_PROBABILITY,
        seed: int | None = None,
    ) -> None:
        """
        Args:
            path: Durable file to write
            snapshot: Returns the object to pickle on flush
            clean: Coroutine function purging expired entries
            clean_probability: Chance of running clean at shutdown (0 disables, 1 forces)
            seed: Seed for the clean draw
        """
        self.path = path
        self.clean_probability = clean_probability
        self._snapshot = snapshot
        self._clean = clean
        self._rng = random.Random(seed)
        self.dirty = False

    def mark_dirty(self) -> None:
        self.dirty = True

    def should_clean(self) -> bool:
        """Draw whether this shutdown purges expired entries."""
        return self._rng.random() < self.clean_probability

    async def flush(self, force: bool = False) -> bool:
        """
        Write the snapshot to the durable file if dirty (or forced).

        Returns:
            True if a write happened

        Raises:
            BackendError: If the write fails; the previous file is kept
        """
        if not self.dirty and not force:
            return False

        payload = pickle.dumps(self._snapshot(), protocol=pickle.HIGHEST_PROTOCOL)
        await asyncio.to_thread(self._write, payload)
        self.dirty = False
        logger.debug(f"Flushed cache file {self.path}", extra={"path": str(self.path), "bytes": len(payload)})
        return True

    def _write(self, payload: bytes) -> None:
        tmp_name: str | None = None
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except FileNotFoundError:
                    pass
            raise BackendError("file", "flush", str(e), details={"path": str(self.path)}) from e

    async def shutdown(self) -> None:
        """Optionally purge expired entries, then flush if dirty."""
        if self.should_clean():
            removed = await self._clean()
            logger.debug(f"Shutdown clean removed {removed} expired entries", extra={"path": str(self.path)})
        await self.flush()
