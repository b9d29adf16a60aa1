"""
polycache - Configuration Module

Provides typed configuration loading and validation.
"""

from .loader import get_config, load_config, reload_config
from .schemas import (
    CacheConfig,
    CacheKind,
    CacheOptions,
    LogLevel,
    PolycacheConfig,
    ValueDataType,
)

__all__ = [
    # Loader functions
    "load_config",
    "get_config",
    "reload_config",
    # Main config
    "PolycacheConfig",
    # Enums
    "CacheKind",
    "LogLevel",
    "ValueDataType",
    # Config sections
    "CacheConfig",
    "CacheOptions",
]
