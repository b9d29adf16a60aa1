"""
polycache - Core Error Types

Defines the exception hierarchy for the cache facade and its backends.
All exceptions inherit from PolycacheError for consistent error handling.

Error kinds:
- ConfigurationError: unknown backend kind or malformed options (construction time)
- CacheEnvironmentError: unusable path or missing client library (construction time)
- BackendError: I/O, network or protocol failure during an operation
- ValidationError / InvalidKeyError: bad arguments passed to an operation
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes for structured error reporting."""

    INVALID_INPUT = "INVALID_INPUT"
    INVALID_KEY = "INVALID_KEY"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    ENVIRONMENT_ERROR = "ENVIRONMENT_ERROR"
    BACKEND_FAILURE = "BACKEND_FAILURE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class PolycacheError(Exception):
    """Base exception for all polycache errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for structured logs or responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(PolycacheError):
    """Raised when the backend kind or the options are invalid."""

    pass


class ValidationError(PolycacheError):
    """Raised when an operation argument fails validation."""

    pass


class InvalidKeyError(ValidationError):
    """Raised when a cache key is empty, too long or unusable by the backend."""

    def __init__(self, key: Any, reason: str):
        message = f"Invalid cache key {key!r}: {reason}"
        super().__init__(message, {"key": str(key)[:100], "reason": reason})
        self.key = key
        self.reason = reason


class CacheError(PolycacheError):
    """Base exception for cache backend errors."""

    pass


class CacheEnvironmentError(CacheError):
    """Raised when the runtime environment cannot host the chosen backend.

    Covers missing or unwritable paths, wrong path types and client
    libraries that are not installed.
    """

    pass


class BackendError(CacheError):
    """Raised when a backend operation fails (I/O, network, protocol)."""

    def __init__(
        self,
        backend: str,
        operation: str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        error_details = details or {}
        error_details.update({"backend": backend, "operation": operation})
        super().__init__(f"{backend} cache {operation} failed: {message}", error_details)
        self.backend = backend
        self.operation = operation


def extract_error_code(error: Exception) -> ErrorCode:
    """
    Extract the appropriate ErrorCode from an exception.

    Args:
        error: Exception to categorize

    Returns:
        Matching ErrorCode
    """
    if isinstance(error, InvalidKeyError):
        return ErrorCode.INVALID_KEY

    if isinstance(error, ValidationError):
        return ErrorCode.INVALID_INPUT

    if isinstance(error, ConfigurationError):
        return ErrorCode.CONFIGURATION_ERROR

    if isinstance(error, CacheEnvironmentError):
        return ErrorCode.ENVIRONMENT_ERROR

    if isinstance(error, BackendError):
        return ErrorCode.BACKEND_FAILURE

    return ErrorCode.INTERNAL_ERROR
