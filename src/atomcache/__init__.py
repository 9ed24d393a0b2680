"""
atomcache

A persistent, multi-backend cache for fetched content. Raw bytes are kept
per key in isolated stores, served back while fresh, refreshed in the
background when stale, and parsed into business objects by typed fronts
that keep the parsed values in memory.

Quick Start:
    >>> from atomcache import CachedMap, FunctionParser, HttpDataSource, SqliteStore
    >>> from atomcache import FetchDescriptor, SimpleKeyAggregator, build_url
    >>> aggregator = SimpleKeyAggregator(
    ...     lambda city: FetchDescriptor(build_url("https://api.example.com", "weather", {"q": city}))
    ... )
    >>> parser = FunctionParser(lambda city, stream: stream.read().decode())
    >>> weather = CachedMap.from_store(SqliteStore(), HttpDataSource(), aggregator, parser)
    >>> text = weather.get("Paris", max_age_ms=600_000)
"""

__version__ = "0.1.0"

# Stores
from atomcache.cache import (
    CleanUpPolicy,
    CombinedPolicy,
    DatabaseBackend,
    FileBackend,
    FileStore,
    MaxEntriesPolicy,
    NullBackend,
    NullStore,
    PersistentStore,
    RetentionPolicy,
    SqliteStore,
    StoreRegistry,
)

# Exceptions
from atomcache.core.exceptions import (
    AtomCacheError,
    FetchFailed,
    ParseFailed,
    PersistenceError,
    StorageUnavailable,
    TransportError,
    ValidationError,
)

# Keys and data models
from atomcache.core.keys import KeyAggregator, SimpleKeyAggregator, build_url
from atomcache.core.models import (
    Atom,
    CachedInfo,
    CacheKey,
    CachePolicy,
    CallMethod,
    FetchDescriptor,
    Refreshed,
    Resolution,
    Source,
)

# Fetching
from atomcache.fetch.coordinator import FetchCoordinator
from atomcache.front import CachedMap, CachedValue, FunctionParser, Parser, TypedCacheFront
from atomcache.sources import DataSource, HttpDataSource

__all__ = [
    # Version
    "__version__",
    # Stores
    "PersistentStore",
    "FileStore",
    "SqliteStore",
    "NullStore",
    "StoreRegistry",
    "FileBackend",
    "DatabaseBackend",
    "NullBackend",
    "CleanUpPolicy",
    "RetentionPolicy",
    "MaxEntriesPolicy",
    "CombinedPolicy",
    # Models
    "Atom",
    "CachedInfo",
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
    # Fetching
    "DataSource",
    "HttpDataSource",
    "FetchCoordinator",
    # Fronts
    "TypedCacheFront",
    "CachedValue",
    "CachedMap",
    "Parser",
    "FunctionParser",
    # Exceptions
    "AtomCacheError",
    "StorageUnavailable",
    "PersistenceError",
    "TransportError",
    "FetchFailed",
    "ParseFailed",
    "ValidationError",
]
