"""
polycache - Backend-Polymorphic Key/Value Cache

A uniform get/set/add/delete/clear/clean facade over file, directory,
in-process, memcached, Redis and relational-table storage.
"""

__version__ = "1.0.0"

from .cache import Cache, close_all_caches, create_cache, get_cache
from .config import CacheKind
from .errors import (
    BackendError,
    CacheEnvironmentError,
    ConfigurationError,
    InvalidKeyError,
    PolycacheError,
    ValidationError,
)

__all__ = [
    "Cache",
    "CacheKind",
    "create_cache",
    "get_cache",
    "close_all_caches",
    # Errors
    "PolycacheError",
    "ConfigurationError",
    "CacheEnvironmentError",
    "BackendError",
    "ValidationError",
    "InvalidKeyError",
]
