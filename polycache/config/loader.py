"""
polycache - Configuration Loader

Loads and validates configuration from environment variables and .env files.
Provides a singleton configuration instance for the runtime.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from ..errors import ConfigurationError
from .schemas import PolycacheConfig

logger = logging.getLogger(__name__)

_config_instance: PolycacheConfig | None = None


def _optional_int(name: str) -> int | None:
    value = os.getenv(name)
    return int(value) if value else None


def load_config(
    env_file: str | None = None,
    reload: bool = False,
) -> PolycacheConfig:
    """
    Load configuration from environment variables and .env file.

    Args:
        env_file: Path to .env file (default: .env in the working directory)
        reload: Force reload even if config already loaded

    Returns:
        Validated PolycacheConfig instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    global _config_instance

    if _config_instance is not None and not reload:
        return _config_instance

    env_path = Path(env_file) if env_file else Path.cwd() / ".env"

    if env_path.exists():
        logger.info(f"Loading environment from {env_path}")
        try:
            load_dotenv(env_path, override=True)
        except Exception as e:
            logger.error(
                f"Failed to load .env file from {env_path}: {e}",
                extra={"path": str(env_path), "error": str(e)},
                exc_info=True,
            )
            raise ConfigurationError(
                f"Failed to load environment file: {e}",
                details={"path": str(env_path), "error": str(e)},
            ) from e
    else:
        logger.debug("No .env file found, using environment variables only")

    try:
        config_dict = {
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
            "cache": {
                "backend": os.getenv("CACHE_BACKEND", "memory"),
                "path": os.getenv("CACHE_PATH"),
                "url": os.getenv("CACHE_URL"),
                "host": os.getenv("CACHE_HOST", "127.0.0.1"),
                "port": _optional_int("CACHE_PORT"),
                "timeout": float(os.getenv("CACHE_TIMEOUT", "2.5")),
                "namespace": os.getenv("CACHE_NAMESPACE"),
                "serializer": os.getenv("CACHE_SERIALIZER", "pickle"),
                "table": os.getenv("CACHE_TABLE"),
                "key_column": os.getenv("CACHE_KEY_COLUMN"),
                "value_column": os.getenv("CACHE_VALUE_COLUMN"),
                "value_data_type": os.getenv("CACHE_VALUE_DATA_TYPE", "string"),
                "ttl_column": os.getenv("CACHE_TTL_COLUMN"),
                "clean_probability": float(os.getenv("CACHE_CLEAN_PROBABILITY", "0.01")),
            },
        }
    except ValueError as e:
        raise ConfigurationError(
            f"Malformed numeric environment variable: {e}",
            details={"error": str(e)},
        ) from e

    try:
        _config_instance = PolycacheConfig(**config_dict)  # type: ignore[arg-type]
        logger.info(
            f"Configuration loaded successfully (cache backend: {_config_instance.cache.backend.value})",
            extra={"cache_backend": _config_instance.cache.backend.value},
        )
        return _config_instance
    except ValidationError as e:
        logger.error(
            f"Configuration validation failed: {e}",
            extra={"validation_errors": e.errors(include_url=False, include_context=False)},
        )
        raise ConfigurationError(
            "Configuration validation failed. Check your environment variables and configuration.",
            details={"validation_errors": e.errors(include_url=False, include_context=False)},
        ) from e


def get_config() -> PolycacheConfig:
    """
    Get the current configuration instance, loading it on first access.

    Returns:
        Current PolycacheConfig instance
    """
    if _config_instance is None:
        return load_config()

    return _config_instance


def reload_config(env_file: str | None = None) -> PolycacheConfig:
    """
    Force reload configuration.

    Args:
        env_file: Optional path to .env file

    Returns:
        Reloaded PolycacheConfig instance
    """
    return load_config(env_file=env_file, reload=True)
