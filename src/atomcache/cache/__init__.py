"""
Cache module for persisting fetched content.

Provides file-system, SQLite and null stores sharing one contract, clean-up
policies, and the registry selecting stores by index.
"""

from atomcache.cache.base import PersistentStore
from atomcache.cache.filesystem import FileStore
from atomcache.cache.null import NullStore
from atomcache.cache.policies import (
    CleanUpPolicy,
    CombinedPolicy,
    MaxEntriesPolicy,
    RetentionPolicy,
)
from atomcache.cache.registry import (
    BackendConfig,
    DatabaseBackend,
    FileBackend,
    NullBackend,
    StoreRegistry,
    create_store,
)
from atomcache.cache.sqlite import SqliteStore

__all__ = [
    "PersistentStore",
    "FileStore",
    "SqliteStore",
    "NullStore",
    "CleanUpPolicy",
    "RetentionPolicy",
    "MaxEntriesPolicy",
    "CombinedPolicy",
    "BackendConfig",
    "FileBackend",
    "DatabaseBackend",
    "NullBackend",
    "StoreRegistry",
    "create_store",
]
