"""
polycache - Directory Cache Backend

One file per key inside a directory. Each file starts with the expiration
timestamp as decimal text (0 = never) on its own line, followed by the
serialized value verbatim.

Writes go to a temporary file that is renamed (set) or hard-linked (add)
into place, so readers never see a partially written entry. There is no
cross-process locking around check-then-act sequences.
"""

import asyncio
import logging
import os
import tempfile
from collections.abc import AsyncIterator
from pathlib import Path

from ...errors import BackendError, CacheEnvironmentError, InvalidKeyError
from ..interface import CacheEntry, Clock, StorageBackend

logger = logging.getLogger(__name__)

_TMP_PREFIX = ".~polycache-"


class DirectoryCacheBackend(StorageBackend):
    """Per-key file store."""

    kind = "directory"
    enumerable = True

    def __init__(self, path: str | os.PathLike[str], clock: Clock | None = None) -> None:
        super().__init__(clock)
        directory = Path(path)
        if not directory.exists():
            raise CacheEnvironmentError(
                f"The directory specified, {directory}, does not exist",
                details={"path": str(directory)},
            )
        if not directory.is_dir():
            raise CacheEnvironmentError(
                f"The path specified, {directory}, is not a directory",
                details={"path": str(directory)},
            )
        if not os.access(directory, os.W_OK):
            raise CacheEnvironmentError(
                f"The directory specified, {directory}, is not writable",
                details={"path": str(directory)},
            )
        self.path = directory.resolve()

    # ------------ Helpers ------------

    def _file(self, key: str) -> Path:
        if key in (".", "..") or "\x00" in key:
            raise InvalidKeyError(key, "not usable as a file name")
        if os.sep in key or (os.altsep and os.altsep in key):
            raise InvalidKeyError(key, "must not contain path separators")
        if key.startswith(_TMP_PREFIX):
            raise InvalidKeyError(key, f"must not start with {_TMP_PREFIX!r}")
        return self.path / key

    @staticmethod
    def _encode(data: bytes, expire_at: int | None) -> bytes:
        return f"{expire_at or 0}\n".encode("ascii") + data

    @staticmethod
    def _read(file: Path, header_only: bool = False) -> CacheEntry | None:
        try:
            with open(file, "rb") as handle:
                header = handle.readline()
                data = b"" if header_only else handle.read()
        except FileNotFoundError:
            return None
        try:
            expire = int(header.strip() or b"0")
        except ValueError as e:
            raise BackendError(
                "directory", "read", f"malformed expiration header in {file.name}", details={"path": str(file)}
            ) from e
        return CacheEntry(data, expire or None)

    def _write_temp(self, payload: bytes) -> str:
        fd, tmp_name = tempfile.mkstemp(prefix=_TMP_PREFIX, dir=self.path)
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
        return tmp_name

    def _set(self, file: Path, payload: bytes) -> None:
        tmp_name = self._write_temp(payload)
        try:
            os.replace(tmp_name, file)
        except OSError:
            os.unlink(tmp_name)
            raise

    def _add(self, file: Path, payload: bytes) -> bool:
        existing = self._read(file, header_only=True)
        if existing is not None:
            if not existing.is_expired(self.now()):
                return False
            file.unlink(missing_ok=True)

        tmp_name = self._write_temp(payload)
        try:
            # link() refuses to overwrite, making the final step exclusive
            os.link(tmp_name, file)
            return True
        except FileExistsError:
            return False
        finally:
            os.unlink(tmp_name)

    def _clear(self) -> int:
        removed = 0
        with os.scandir(self.path) as entries:
            for entry in entries:
                if entry.is_file(follow_symlinks=False):
                    try:
                        os.unlink(entry.path)
                        removed += 1
                    except FileNotFoundError:
                        continue
        return removed

    def _scan(self) -> list[tuple[str, int | None]]:
        found = []
        with os.scandir(self.path) as entries:
            for entry in entries:
                if entry.name.startswith(_TMP_PREFIX) or not entry.is_file(follow_symlinks=False):
                    continue
                try:
                    header = self._read(Path(entry.path), header_only=True)
                except BackendError:
                    logger.warning(
                        f"Skipping {entry.name}: not a cache entry file",
                        extra={"path": entry.path},
                    )
                    continue
                if header is not None:
                    found.append((entry.name, header.expire_at))
        return found

    async def _run(self, operation: str, func, *args):  # type: ignore[no-untyped-def]
        try:
            return await asyncio.to_thread(func, *args)
        except OSError as e:
            logger.error(
                f"Directory cache {operation} failed: {e}",
                extra={"path": str(self.path), "operation": operation, "error": str(e)},
            )
            raise BackendError("directory", operation, str(e), details={"path": str(self.path)}) from e

    # ------------ Core Interface ------------

    async def raw_get(self, key: str) -> CacheEntry | None:
        return await self._run("get", self._read, self._file(key))

    async def raw_set(self, key: str, data: bytes, expire_at: int | None) -> bool:
        await self._run("set", self._set, self._file(key), self._encode(data, expire_at))
        return True

    async def raw_add(self, key: str, data: bytes, expire_at: int | None) -> bool:
        return await self._run("add", self._add, self._file(key), self._encode(data, expire_at))

    async def raw_delete(self, key: str) -> bool:
        file = self._file(key)
        await self._run("delete", lambda: file.unlink(missing_ok=True))
        return True

    async def raw_clear(self) -> bool:
        removed = await self._run("clear", self._clear)
        logger.info(f"Cleared {removed} entries from directory cache {self.path}")
        return True

    async def raw_enumerate(self) -> AsyncIterator[tuple[str, int | None]]:
        for key, expire_at in await self._run("enumerate", self._scan):
            yield key, expire_at
