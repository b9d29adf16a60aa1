"""
polycache - Single-File Backend and Lazy Persistence Tests
"""

import os
import pickle
import shutil
from pathlib import Path
from unittest.mock import patch

import pytest

from polycache.cache import Cache
from polycache.cache.backends.file import FileCacheBackend
from polycache.cache.persistence import LazyPersistence
from polycache.errors import BackendError, CacheEnvironmentError
from tests.conftest import START_TIME, FakeClock


@pytest.fixture
def cache_path(tmp_path: Path) -> Path:
    return tmp_path / "cache.bin"


def make_cache(path: Path, clock: FakeClock, **options: object) -> Cache:
    return Cache("file", path, {"clock": clock, "clean_probability": 0.0, **options})


class TestConstruction:
    def test_missing_file_in_writable_directory(self, cache_path: Path) -> None:
        backend = FileCacheBackend(cache_path)
        assert len(backend) == 0
        assert not cache_path.exists()

    def test_missing_parent_directory(self, tmp_path: Path) -> None:
        with pytest.raises(CacheEnvironmentError, match="does not exist"):
            FileCacheBackend(tmp_path / "nope" / "cache.bin")

    def test_path_is_directory(self, tmp_path: Path) -> None:
        with pytest.raises(CacheEnvironmentError, match="not a regular file"):
            FileCacheBackend(tmp_path)

    @pytest.mark.skipif(os.geteuid() == 0, reason="root ignores file permissions")
    def test_unwritable_file(self, cache_path: Path) -> None:
        cache_path.write_bytes(pickle.dumps({}))
        cache_path.chmod(0o444)
        try:
            with pytest.raises(CacheEnvironmentError, match="not writable"):
                FileCacheBackend(cache_path)
        finally:
            cache_path.chmod(0o644)

    def test_corrupt_file(self, cache_path: Path) -> None:
        cache_path.write_bytes(b"definitely not a pickle")
        with pytest.raises(CacheEnvironmentError, match="could not be read"):
            FileCacheBackend(cache_path)

    def test_wrong_structure(self, cache_path: Path) -> None:
        cache_path.write_bytes(pickle.dumps(["a", "list"]))
        with pytest.raises(CacheEnvironmentError, match="cache mapping"):
            FileCacheBackend(cache_path)

    def test_empty_file_is_empty_cache(self, cache_path: Path) -> None:
        cache_path.touch()
        assert len(FileCacheBackend(cache_path)) == 0


class TestDurableFormat:
    async def test_flush_writes_expected_mapping(self, cache_path: Path, clock: FakeClock) -> None:
        cache = make_cache(cache_path, clock, serializer="json")
        await cache.set("forever", "a")
        await cache.set("ttl", "b", ttl=60)

        await cache.save()

        stored = pickle.loads(cache_path.read_bytes())
        assert stored == {
            "forever": {"value": b'"a"', "expire": 0},
            "ttl": {"value": b'"b"', "expire": START_TIME + 60},
        }

    async def test_reload_from_existing_file(self, cache_path: Path, clock: FakeClock) -> None:
        cache_path.write_bytes(pickle.dumps({"k": {"value": pickle.dumps([1, 2]), "expire": 0}}))

        cache = make_cache(cache_path, clock)

        assert await cache.get("k") == [1, 2]


class TestLazyPersistence:
    async def test_nothing_written_mid_lifetime(self, cache_path: Path, clock: FakeClock) -> None:
        cache = make_cache(cache_path, clock)
        await cache.set("key", "value")

        assert not cache_path.exists()

        await cache.close()
        assert cache_path.exists()

    async def test_mutations_mark_dirty(self, cache_path: Path, clock: FakeClock) -> None:
        cache = make_cache(cache_path, clock)
        persistence = cache.backend.persistence  # type: ignore[attr-defined]
        assert persistence.dirty is False

        await cache.set("key", "value")
        assert persistence.dirty is True

        await cache.save()
        assert persistence.dirty is False

        await cache.delete("absent")
        assert persistence.dirty is False

        await cache.delete("key")
        assert persistence.dirty is True

    async def test_expired_read_removes_entry_and_marks_dirty(self, cache_path: Path, clock: FakeClock) -> None:
        cache = make_cache(cache_path, clock)
        await cache.set("key", "value", ttl=1)
        await cache.save()
        clock.advance(5)

        assert await cache.get("key") is None
        assert cache.backend.persistence.dirty is True  # type: ignore[attr-defined]
        assert len(cache.backend) == 0  # type: ignore[arg-type]

    async def test_clean_state_skips_write(self, cache_path: Path, clock: FakeClock) -> None:
        cache = make_cache(cache_path, clock)
        await cache.get("missing")

        await cache.close()

        assert not cache_path.exists()

    async def test_shutdown_clean_forced(self, cache_path: Path, clock: FakeClock) -> None:
        cache = make_cache(cache_path, clock, clean_probability=1.0)
        await cache.set("gone", "x", ttl=1)
        await cache.set("kept", "y")
        clock.advance(5)

        await cache.close()

        assert set(pickle.loads(cache_path.read_bytes())) == {"kept"}

    async def test_shutdown_clean_disabled(self, cache_path: Path, clock: FakeClock) -> None:
        cache = make_cache(cache_path, clock, clean_probability=0.0)
        await cache.set("gone", "x", ttl=1)
        clock.advance(5)

        await cache.close()

        assert set(pickle.loads(cache_path.read_bytes())) == {"gone"}

    def test_seeded_draw_is_reproducible(self, cache_path: Path) -> None:
        async def noop() -> int:
            return 0

        first = LazyPersistence(cache_path, dict, noop, clean_probability=0.5, seed=7)
        second = LazyPersistence(cache_path, dict, noop, clean_probability=0.5, seed=7)

        assert [first.should_clean() for _ in range(20)] == [second.should_clean() for _ in range(20)]

    async def test_failed_flush_keeps_previous_file(self, cache_path: Path, clock: FakeClock) -> None:
        cache = make_cache(cache_path, clock)
        await cache.set("key", "old")
        await cache.save()
        before = cache_path.read_bytes()

        await cache.set("key", "new")
        with patch("polycache.cache.persistence.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(BackendError, match="disk full"):
                await cache.save()

        assert cache_path.read_bytes() == before
        assert cache.backend.persistence.dirty is True  # type: ignore[attr-defined]
        assert [p.name for p in cache_path.parent.iterdir()] == [cache_path.name]

    async def test_vanished_directory_raises_backend_error(self, tmp_path: Path, clock: FakeClock) -> None:
        directory = tmp_path / "gone"
        directory.mkdir()
        cache = make_cache(directory / "cache.bin", clock)
        await cache.set("key", "value")
        shutil.rmtree(directory)

        with pytest.raises(BackendError):
            await cache.save()
        with pytest.raises(BackendError):
            await cache.close()

        assert cache.backend.persistence.dirty is True  # type: ignore[attr-defined]
