"""
Store registry: explicit selection of store instances by index.

Each index maps to one backend configuration. Stores are created lazily on
first access and live as long as the registry that created them.
"""

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Sequence, Union

from atomcache.cache.base import PersistentStore
from atomcache.cache.filesystem import FileStore
from atomcache.cache.null import NullStore
from atomcache.cache.policies import CleanUpPolicy
from atomcache.cache.sqlite import DEFAULT_FILE_NAME, DEFAULT_TABLE_NAME, SqliteStore
from atomcache.logging import get_logger

if TYPE_CHECKING:
    from atomcache.config import Settings

logger = get_logger(__name__)


@dataclass(frozen=True)
class FileBackend:
    """One file per key under ``directory``."""

    directory: Path


@dataclass(frozen=True)
class DatabaseBackend:
    """One row per key in ``table_name`` of ``directory/file_name``."""

    directory: Path
    file_name: str = DEFAULT_FILE_NAME
    table_name: str = DEFAULT_TABLE_NAME


@dataclass(frozen=True)
class NullBackend:
    """Nothing is persisted."""


BackendConfig = Union[FileBackend, DatabaseBackend, NullBackend]


def create_store(
    index: int,
    backend: BackendConfig,
    clean_up_policy: CleanUpPolicy | None = None,
) -> PersistentStore:
    """Create the store described by a backend configuration.

    Args:
        index: Position of the store in its registry.
        backend: Backend configuration.
        clean_up_policy: Optional default clean-up policy of the store.

    Returns:
        A new, not yet initialized store.
    """
    if isinstance(backend, FileBackend):
        return FileStore(backend.directory, index=index, clean_up_policy=clean_up_policy)
    if isinstance(backend, DatabaseBackend):
        return SqliteStore(
            backend.directory,
            file_name=backend.file_name,
            table_name=backend.table_name,
            index=index,
            clean_up_policy=clean_up_policy,
        )
    if isinstance(backend, NullBackend):
        return NullStore(index=index, clean_up_policy=clean_up_policy)
    raise TypeError(f"Unsupported backend configuration: {backend!r}")


class StoreRegistry:
    """Owns one lazily created store per configured index."""

    def __init__(
        self,
        backends: Sequence[BackendConfig],
        clean_up_policies: Sequence[CleanUpPolicy | None] | None = None,
    ):
        """Initialize the registry.

        Args:
            backends: One backend configuration per store index.
            clean_up_policies: Optional default clean-up policy per index.
        """
        if not backends:
            raise ValueError("A store registry needs at least one backend")
        if clean_up_policies is not None and len(clean_up_policies) != len(backends):
            raise ValueError("clean_up_policies must have one entry per backend")

        self.backends = tuple(backends)
        self._policies = tuple(clean_up_policies or [None] * len(backends))
        self._stores: dict[int, PersistentStore] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: "Settings") -> "StoreRegistry":
        """Build a registry from application settings."""
        count = settings.STORE_COUNT
        return cls(
            [settings.backend_for(index) for index in range(count)],
            [settings.clean_up_policy() for _ in range(count)],
        )

    def __len__(self) -> int:
        return len(self.backends)

    def get(self, index: int = 0) -> PersistentStore:
        """Return the store for ``index``, creating it on first access.

        Raises:
            IndexError: If no backend is configured for the index.
        """
        if not 0 <= index < len(self.backends):
            raise IndexError(f"No store configured for index {index}")

        with self._lock:
            store = self._stores.get(index)
            if store is None:
                store = create_store(index, self.backends[index], self._policies[index])
                self._stores[index] = store
                logger.debug("Created store %r", store)
            return store

    def stores(self) -> list[PersistentStore]:
        """Return every store, creating the missing ones."""
        return [self.get(index) for index in range(len(self.backends))]

    def clear_all(self) -> None:
        """Clear every store."""
        logger.debug("Clearing all stores")
        for store in self.stores():
            store.clear()

    def clean_up_all(self) -> int:
        """Clean up every store with its configured policy.

        Returns:
            Total number of removed atoms.
        """
        logger.debug("Cleaning up all stores")
        return sum(store.clean_up() for store in self.stores())

    def close_all(self) -> None:
        """Close the stores created so far."""
        logger.debug("Closing all stores")
        with self._lock:
            stores = list(self._stores.values())
        for store in stores:
            store.close()
