"""
polycache - Test Configuration and Shared Fixtures

Provides pytest configuration and shared fixtures for unit and integration tests.
Time is simulated through the injectable `clock` option, so no test sleeps.
"""

import os
import socket
from collections.abc import AsyncGenerator, Generator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from polycache.cache import Cache

os.environ["LOG_LEVEL"] = "DEBUG"

START_TIME = 1_700_000_000


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = START_TIME) -> None:
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def is_redis_available() -> bool:
    """Check if Redis server is available for testing."""
    try:
        with socket.create_connection(("localhost", 6379), timeout=1):
            return True
    except OSError:
        return False


# Skip marker for live Redis tests
redis_available = pytest.mark.skipif(not is_redis_available(), reason="Redis server not available")


CACHE_TABLE_DDL = """
CREATE TABLE cache_entries (
    cache_key VARCHAR(255) PRIMARY KEY,
    cache_value TEXT NOT NULL,
    expires_at INTEGER NOT NULL DEFAULT 0
)
"""

DATABASE_OPTIONS = {
    "table": "cache_entries",
    "key_column": "cache_key",
    "value_column": "cache_value",
    "ttl_column": "expires_at",
    "value_data_type": "string",
}


@pytest.fixture
def clock() -> FakeClock:
    """A clock frozen at START_TIME until advanced."""
    return FakeClock()


@pytest_asyncio.fixture
async def sqlite_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Async SQLite engine with an empty cache table."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}")
    async with engine.begin() as conn:
        await conn.execute(text(CACHE_TABLE_DDL))
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(params=["file", "directory", "memory", "database"])
async def local_cache(
    request: pytest.FixtureRequest,
    tmp_path: Path,
    clock: FakeClock,
    sqlite_engine: AsyncEngine,
) -> AsyncGenerator[Cache, None]:
    """A cache on every backend that runs without an external server."""
    kind = request.param
    options: dict[str, Any] = {"clock": clock, "clean_probability": 0.0}
    data_store: Any = None

    if kind == "file":
        data_store = tmp_path / "cache.bin"
    elif kind == "directory":
        data_store = tmp_path / "entries"
        data_store.mkdir()
    elif kind == "database":
        data_store = sqlite_engine
        options.update(DATABASE_OPTIONS)

    cache = Cache(kind, data_store, options)
    yield cache
    await cache.close()


@pytest.fixture
def sample_cache_data() -> dict[str, Any]:
    """Sample data for cache testing."""
    return {
        "simple_string": "hello",
        "simple_int": 42,
        "simple_float": 3.14,
        "simple_bool": True,
        "simple_none": None,
        "complex_dict": {
            "nested": {
                "key": "value",
                "number": 123,
                "list": [1, 2, 3],
            }
        },
        "complex_list": [
            {"id": 1, "name": "Alice"},
            {"id": 2, "name": "Bob"},
        ],
    }


@pytest.fixture
def mock_env_memory(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set environment variables for the memory cache backend."""
    monkeypatch.setenv("CACHE_BACKEND", "memory")
    monkeypatch.setenv("CACHE_SERIALIZER", "json")


@pytest.fixture
def mock_env_directory(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Set environment variables for the directory cache backend."""
    cache_dir = tmp_path / "env_cache"
    cache_dir.mkdir()
    monkeypatch.setenv("CACHE_BACKEND", "directory")
    monkeypatch.setenv("CACHE_PATH", str(cache_dir))
    return cache_dir


@pytest.fixture(autouse=True)
def reset_cache_factory() -> Generator[None, None, None]:
    """Reset cache factory and config singleton after each test to prevent state leakage."""
    yield
    from polycache.cache.factory import reset_cache_factory
    from polycache.config import loader

    reset_cache_factory()
    loader._config_instance = None
