"""
polycache - Configuration Schemas

Typed configuration models using Pydantic for validation and type safety.

Two layers:
- CacheOptions: the options bag accepted by the Cache facade constructor
- CacheConfig / PolycacheConfig: environment-driven configuration used by the factory
"""

from collections.abc import Callable
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class CacheKind(str, Enum):
    """Supported cache backends."""

    FILE = "file"
    DIRECTORY = "directory"
    MEMORY = "memory"
    MEMCACHE = "memcache"
    REDIS = "redis"
    DATABASE = "database"


class ValueDataType(str, Enum):
    """Column type used by the database backend for serialized values."""

    STRING = "string"
    BLOB = "blob"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# Named serializer strategies; custom callables are accepted as well
SERIALIZER_NAMES = ("pickle", "json", "string")


class CacheOptions(BaseModel):
    """Options accepted by the Cache facade."""

    serializer: str | Callable[[Any], Any] | None = Field(
        default=None, description="Serializer strategy name or callable (default: pickle)"
    )
    deserializer: str | Callable[[Any], Any] | None = Field(
        default=None, description="Deserializer strategy name or callable (default: pickle)"
    )

    # Networked cache settings (memcache, redis)
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int | None = Field(default=None, ge=1, le=65535, description="Server port (backend default if unset)")
    timeout: float = Field(default=2.5, gt=0, description="Connect/socket timeout in seconds")
    namespace: str | None = Field(default=None, description="Key prefix for shared keyspaces")

    # Database backend settings
    table: str | None = Field(default=None, description="Table holding cache rows")
    key_column: str | None = Field(default=None, description="Column for keys (>= 250 chars)")
    value_column: str | None = Field(default=None, description="Column for serialized values")
    value_data_type: ValueDataType = Field(default=ValueDataType.STRING, description="'string' or 'blob'")
    ttl_column: str | None = Field(default=None, description="Integer column for expiration timestamps")

    # Lazy persistence (file backend)
    clean_probability: float = Field(
        default=0.01, ge=0.0, le=1.0, description="Chance of purging expired entries at shutdown"
    )
    seed: int | None = Field(default=None, description="Seed for the shutdown clean draw")

    # Time source in seconds since the epoch; injectable for tests
    clock: Callable[[], float] | None = Field(default=None, description="Time source (default: time.time)")

    @field_validator("serializer", "deserializer")
    @classmethod
    def validate_strategy_name(cls, v: Any) -> Any:
        """Reject unknown strategy names early."""
        if isinstance(v, str) and v not in SERIALIZER_NAMES:
            raise ValueError(f"unknown serializer '{v}', expected one of {', '.join(SERIALIZER_NAMES)}")
        return v

    @field_validator("namespace")
    @classmethod
    def validate_namespace(cls, v: str | None) -> str | None:
        """Treat blank namespaces as unset."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)


class CacheConfig(BaseModel):
    """Environment-driven cache configuration consumed by the factory."""

    backend: CacheKind = Field(default=CacheKind.MEMORY, description="Cache backend to use")
    path: str | None = Field(default=None, description="File or directory path (file/directory backends)")
    url: str | None = Field(default=None, description="Database URL (database backend)")
    host: str = Field(default="127.0.0.1", description="Server host (memcache/redis)")
    port: int | None = Field(default=None, ge=1, le=65535, description="Server port (memcache/redis)")
    timeout: float = Field(default=2.5, gt=0, description="Connect/socket timeout in seconds")
    namespace: str | None = Field(default=None, description="Key prefix for shared keyspaces")
    serializer: str = Field(default="pickle", description="Serializer strategy name")

    table: str | None = Field(default=None, description="Database table")
    key_column: str | None = Field(default=None, description="Database key column")
    value_column: str | None = Field(default=None, description="Database value column")
    value_data_type: ValueDataType = Field(default=ValueDataType.STRING, description="Database value type")
    ttl_column: str | None = Field(default=None, description="Database expiration column")

    clean_probability: float = Field(default=0.01, ge=0.0, le=1.0, description="Shutdown clean probability")

    @field_validator("serializer")
    @classmethod
    def validate_serializer(cls, v: str) -> str:
        """Only named strategies can come from the environment."""
        if v not in SERIALIZER_NAMES:
            raise ValueError(f"unknown serializer '{v}', expected one of {', '.join(SERIALIZER_NAMES)}")
        return v

    @model_validator(mode="after")
    def validate_backend_requirements(self) -> "CacheConfig":
        """Ensure each backend has the settings it cannot work without."""
        if self.backend in (CacheKind.FILE, CacheKind.DIRECTORY) and not self.path:
            raise ValueError(f"path is required when cache backend is '{self.backend.value}'")
        if self.backend == CacheKind.DATABASE:
            if not self.url:
                raise ValueError("url is required when cache backend is 'database'")
            missing = [
                name
                for name in ("table", "key_column", "value_column", "ttl_column")
                if not getattr(self, name)
            ]
            if missing:
                raise ValueError(f"database backend requires: {', '.join(missing)}")
        return self

    def data_store(self) -> str | None:
        """Return the connection descriptor the facade expects for this backend."""
        if self.backend in (CacheKind.FILE, CacheKind.DIRECTORY):
            return self.path
        if self.backend == CacheKind.DATABASE:
            return self.url
        return None

    def to_options(self) -> dict[str, Any]:
        """Build the facade options bag for this backend."""
        options: dict[str, Any] = {
            "serializer": self.serializer,
            "clean_probability": self.clean_probability,
        }
        if self.backend in (CacheKind.MEMCACHE, CacheKind.REDIS):
            options.update(host=self.host, port=self.port, timeout=self.timeout, namespace=self.namespace)
        if self.backend == CacheKind.DATABASE:
            options.update(
                table=self.table,
                key_column=self.key_column,
                value_column=self.value_column,
                value_data_type=self.value_data_type,
                ttl_column=self.ttl_column,
            )
        return options


class PolycacheConfig(BaseModel):
    """Root configuration."""

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    cache: CacheConfig = Field(default_factory=CacheConfig)

    model_config = ConfigDict(validate_assignment=True)
