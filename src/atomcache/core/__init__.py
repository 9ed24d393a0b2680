"""
Core module for atomcache.

Contains data models, key derivation, validation and exceptions.
"""

from atomcache.core.exceptions import (
    AtomCacheError,
    FetchFailed,
    ParseFailed,
    PersistenceError,
    StorageUnavailable,
    TransportError,
    ValidationError,
)
from atomcache.core.keys import KeyAggregator, SimpleKeyAggregator, build_url
from atomcache.core.models import (
    Atom,
    CachedInfo,
    CacheEntry,
    CacheKey,
    CachePolicy,
    CallMethod,
    FetchDescriptor,
    Refreshed,
    Resolution,
    Source,
)

__all__ = [
    # Models
    "Atom",
    "CachedInfo",
    "CacheEntry",
    "CacheKey",
    "CachePolicy",
    "CallMethod",
    "FetchDescriptor",
    "Refreshed",
    "Resolution",
    "Source",
    # Keys
    "KeyAggregator",
    "SimpleKeyAggregator",
    "build_url",
    # Exceptions
    "AtomCacheError",
    "StorageUnavailable",
    "PersistenceError",
    "TransportError",
    "FetchFailed",
    "ParseFailed",
    "ValidationError",
]
