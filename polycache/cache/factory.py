"""
polycache - Cache Factory

Builds Cache facades from typed configuration and tracks named instances so
that one process shares a single facade per name and can flush every
buffered cache at shutdown.

Examples:
    from polycache.cache.factory import create_cache, get_cache

    # Backend chosen by CACHE_BACKEND (memory when unset)
    cache = create_cache()

    # Explicit configuration, e.g. a second cache for rendered pages
    from polycache.config import CacheConfig, CacheKind
    cfg = CacheConfig(backend=CacheKind.DIRECTORY, path="/tmp/cache")
    dir_cache = create_cache(cfg, name="pages")
"""

from __future__ import annotations

import logging

from ..config import CacheConfig, get_config
from ..errors import PolycacheError
from .facade import Cache

logger = logging.getLogger(__name__)

# Facades keyed by instance name
_registry: dict[str, Cache] = {}


def create_cache(
    config: CacheConfig | None = None,
    name: str = "default",
) -> Cache:
    """
    Build the cache registered under ``name``.

    Args:
        config: Backend and options to use; the global configuration when omitted
        name: Registry name; a second call with the same name returns the first facade

    Returns:
        The Cache registered under name

    Raises:
        ConfigurationError: If the configuration is invalid
        CacheEnvironmentError: If the backend cannot run in this environment
    """
    existing = _registry.get(name)
    if existing is not None:
        logger.debug("Reusing registered cache '%s'", name)
        return existing

    if config is None:
        config = get_config().cache

    backend = config.backend.value
    try:
        cache = Cache(config.backend, config.data_store(), config.to_options())
    except PolycacheError as e:
        logger.error(
            "Could not build %s cache '%s': %s",
            backend,
            name,
            e,
            extra={"cache_name": name, "backend": backend, "error": str(e)},
        )
        raise

    _registry[name] = cache
    logger.info("Registered %s cache '%s'", backend, name, extra={"cache_name": name, "backend": backend})
    return cache


def get_cache(name: str = "default") -> Cache:
    """Return the cache registered under name, building it from the global configuration on first use."""
    cache = _registry.get(name)
    if cache is None:
        return create_cache(name=name)
    return cache


async def close_all_caches() -> None:
    """
    Close every registered cache and empty the registry.

    Call during graceful shutdown so file caches write their buffered
    entries. Every cache is closed even when one fails; the first failure
    is re-raised once all of them have been attempted.
    """
    if not _registry:
        return

    names = list(_registry)
    logger.info("Shutting down %d registered cache(s)", len(names))

    first_error: Exception | None = None
    for name in names:
        cache = _registry[name]
        try:
            await cache.close()
        except Exception as e:
            logger.error(
                "Closing cache '%s' failed: %s",
                name,
                e,
                extra={"cache_name": name, "backend": cache.kind.value, "error": str(e)},
                exc_info=True,
            )
            if first_error is None:
                first_error = e

    _registry.clear()

    if first_error is not None:
        raise first_error


def reset_cache_factory() -> None:
    """
    Forget every registered cache without closing it.

    Intended for test isolation only.
    """
    logger.debug("Dropping %d registered cache reference(s)", len(_registry))
    _registry.clear()


def list_cache_instances() -> list[str]:
    """Names of the registered caches, in registration order."""
    return list(_registry)
