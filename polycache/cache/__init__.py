"""
polycache - Cache Module

Backend-agnostic caching with pluggable storage media.

- facade.py: the Cache entry point (get/set/add/delete/clear/clean)
- interface.py: StorageBackend primitive capability set
- backends/: file, directory, memory, memcache, redis, database
- factory.py: configuration-driven creation and a named instance registry

Usage:
    from polycache.cache import Cache

    async with Cache("file", "/var/cache/app.cache") as cache:
        await cache.set("key", "value", ttl=3600)
        value = await cache.get("key")
"""

from .facade import Cache
from .factory import (
    close_all_caches,
    create_cache,
    get_cache,
    list_cache_instances,
    reset_cache_factory,
)
from .interface import CacheEntry, StorageBackend
from .serialization import JSONSerializer, PickleSerializer, Serializer, StringSerializer

__all__ = [
    # Facade
    "Cache",
    # Factory functions
    "create_cache",
    "get_cache",
    "close_all_caches",
    "list_cache_instances",
    "reset_cache_factory",
    # Interface
    "CacheEntry",
    "StorageBackend",
    # Serializers
    "Serializer",
    "PickleSerializer",
    "JSONSerializer",
    "StringSerializer",
]
