"""
Custom exceptions for atomcache.
"""


class AtomCacheError(Exception):
    """Base exception for all atomcache errors."""

    def __init__(self, message: str, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class StorageUnavailable(AtomCacheError):
    """Raised when a store backend cannot be opened.

    The store stays unusable until it is successfully initialized again.
    """

    def __init__(self, backend: str, details: str | None = None):
        super().__init__(f"Storage backend unavailable: {backend}", details=details)
        self.backend = backend


class PersistenceError(AtomCacheError):
    """Raised when an operation fails on an opened store backend."""

    def __init__(self, operation: str, details: str | None = None):
        super().__init__(f"Persistence error during {operation}", details=details)
        self.operation = operation


class TransportError(AtomCacheError):
    """Raised by a data source when a request fails."""

    def __init__(self, url: str, status_code: int | None = None, details: str | None = None):
        message = f"Request failed: {url}"
        if status_code:
            message += f" (status {status_code})"
        super().__init__(message, details=details)
        self.url = url
        self.status_code = status_code


class FetchFailed(AtomCacheError):
    """Raised when fetching the content of a cache key fails.

    Wraps the underlying transport error. Any atom already persisted for
    the key is left untouched.
    """

    def __init__(self, key: str, cause: Exception):
        super().__init__(f"Fetch failed for '{key}'", details=str(cause))
        self.key = key
        self.cause = cause


class ParseFailed(AtomCacheError):
    """Raised when fetched content cannot be parsed into a business object."""

    def __init__(self, key: str, details: str | None = None):
        super().__init__(f"Failed to parse content of '{key}'", details=details)
        self.key = key


class ValidationError(AtomCacheError):
    """Raised when a key, a size or a configuration value is invalid."""

    def __init__(self, field: str, value: str, reason: str):
        super().__init__(
            f"Validation failed for {field}",
            details=f"Value '{value}' is invalid: {reason}",
        )
        self.field = field
        self.value = value
        self.reason = reason
