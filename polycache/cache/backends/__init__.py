"""
polycache - Cache Backends

Exports the backends that need no third-party client library.

memcache, redis and database backends are lazy-loaded by the facade so a
missing client library only matters when that backend is selected.
"""

from .directory import DirectoryCacheBackend
from .file import FileCacheBackend
from .memory import MemoryCacheBackend

__all__ = [
    "DirectoryCacheBackend",
    "FileCacheBackend",
    "MemoryCacheBackend",
]
