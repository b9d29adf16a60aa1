"""
polycache - Database Cache Backend

Stores (key, value, expiration) rows in a caller-supplied table through
SQLAlchemy Core on an async engine.

Table contract:
- key column: string, at least 250 characters
- value column: TEXT (value_data_type='string', stored as base64) or BLOB ('blob')
- ttl column: integer expiration timestamp, 0 = never

add() is only race-free when the key column carries a primary key or
unique constraint: the insert then fails with IntegrityError instead of
creating a duplicate row.
"""

from __future__ import annotations

import base64
import logging
from typing import Any

from sqlalchemy import and_, column, delete, insert, select, table, update
from sqlalchemy.exc import ArgumentError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ...config.schemas import ValueDataType
from ...errors import BackendError, CacheEnvironmentError, ConfigurationError
from ..interface import CacheEntry, Clock, StorageBackend

logger = logging.getLogger(__name__)


class DatabaseCacheBackend(StorageBackend):
    """Relational table backend."""

    kind = "database"

    def __init__(
        self,
        engine: AsyncEngine | str,
        table_name: str,
        key_column: str,
        value_column: str,
        ttl_column: str,
        value_data_type: ValueDataType = ValueDataType.STRING,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(clock)
        self.value_data_type = ValueDataType(value_data_type)
        self._owns_engine = isinstance(engine, str)
        self._engine = self._create_engine(engine) if isinstance(engine, str) else engine

        schema, _, name = table_name.rpartition(".")
        self._key = column(key_column)
        self._value = column(value_column)
        self._ttl = column(ttl_column)
        self._table = table(name, self._key, self._value, self._ttl, schema=schema or None)

    @staticmethod
    def _create_engine(url: str) -> AsyncEngine:
        try:
            return create_async_engine(url)
        except ImportError as e:
            raise CacheEnvironmentError(
                f"The database driver for {url.split(':', 1)[0]} is not installed: {e}",
                details={"error": str(e)},
            ) from e
        except ArgumentError as e:
            raise ConfigurationError(f"Invalid database URL: {e}", details={"error": str(e)}) from e

    # ------------ Helpers ------------

    def _encode(self, data: bytes) -> bytes | str:
        if self.value_data_type == ValueDataType.BLOB:
            return data
        return base64.b64encode(data).decode("ascii")

    def _decode(self, stored: Any) -> bytes:
        if self.value_data_type == ValueDataType.BLOB:
            return bytes(stored)
        return base64.b64decode(stored)

    def _row(self, key: str, data: bytes, expire_at: int | None) -> dict[str, Any]:
        return {self._key.name: key, self._value.name: self._encode(data), self._ttl.name: expire_at or 0}

    def _failed(self, operation: str, key: str | None, error: Exception) -> BackendError:
        logger.error(
            f"Database {operation} failed: {error}",
            extra={"key": key, "table": self._table.name, "operation": operation, "error": str(error)},
        )
        return BackendError("database", operation, str(error), details={"key": key, "table": self._table.name})

    # ------------ Core Interface ------------

    async def raw_get(self, key: str) -> CacheEntry | None:
        query = select(self._value, self._ttl).select_from(self._table).where(self._key == key)
        try:
            async with self._engine.connect() as conn:
                row = (await conn.execute(query)).first()
        except SQLAlchemyError as e:
            raise self._failed("get", key, e) from e
        if row is None:
            return None
        return CacheEntry(self._decode(row[0]), int(row[1] or 0) or None)

    async def raw_set(self, key: str, data: bytes, expire_at: int | None) -> bool:
        values = self._row(key, data, expire_at)
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(update(self._table).where(self._key == key).values(values))
                if result.rowcount == 0:
                    await conn.execute(insert(self._table).values(values))
        except SQLAlchemyError as e:
            raise self._failed("set", key, e) from e
        return True

    async def raw_add(self, key: str, data: bytes, expire_at: int | None) -> bool:
        now = self.now()
        expired = and_(self._key == key, self._ttl != 0, self._ttl < now)
        try:
            async with self._engine.begin() as conn:
                await conn.execute(delete(self._table).where(expired))
                present = (await conn.execute(select(self._key).select_from(self._table).where(self._key == key))).first()
                if present is not None:
                    return False
                await conn.execute(insert(self._table).values(self._row(key, data, expire_at)))
        except IntegrityError:
            # Another writer inserted the key between the check and the insert
            return False
        except SQLAlchemyError as e:
            raise self._failed("add", key, e) from e
        return True

    async def raw_delete(self, key: str) -> bool:
        try:
            async with self._engine.begin() as conn:
                await conn.execute(delete(self._table).where(self._key == key))
        except SQLAlchemyError as e:
            raise self._failed("delete", key, e) from e
        return True

    async def raw_clear(self) -> bool:
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(delete(self._table))
        except SQLAlchemyError as e:
            raise self._failed("clear", None, e) from e
        logger.info(f"Cleared {result.rowcount} rows from cache table '{self._table.name}'")
        return True

    async def raw_purge_expired(self) -> int:
        """Delete expired rows with a single statement."""
        expired = and_(self._ttl != 0, self._ttl < self.now())
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(delete(self._table).where(expired))
        except SQLAlchemyError as e:
            raise self._failed("clean", None, e) from e
        return result.rowcount

    async def close(self) -> None:
        """Dispose the engine if this backend created it."""
        if self._owns_engine:
            await self._engine.dispose()
