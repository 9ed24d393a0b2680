"""
Abstract base class for persistent stores.

Defines the contract shared by every backend: lazy initialization, atom
reads and writes, removal, clean-up, clearing and closing. The base class
owns the locking so that backends only implement the raw operations.
"""

import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Generator

from atomcache.cache.locks import KeyLocks, ReadWriteLock
from atomcache.cache.policies import CleanUpPolicy
from atomcache.core.exceptions import StorageUnavailable
from atomcache.core.models import Atom, utcnow
from atomcache.core.validation import MAX_ATOM_SIZE, validate_atom_size, validate_key
from atomcache.logging import get_logger

logger = get_logger(__name__)


class PersistentStore(ABC):
    """Durable key -> atom store.

    Per-key operations run concurrently under a shared lock, mutations of a
    given key are serialized by a per-key lock, and the structural
    operations (initialize, clear, clean_up, close) take the lock
    exclusively so they never interleave with per-key work.

    Every per-key operation initializes the store on demand, so a closed
    store transparently reopens on its next access.
    """

    backend = "abstract"

    def __init__(
        self,
        index: int = 0,
        clean_up_policy: CleanUpPolicy | None = None,
        max_atom_size: int = MAX_ATOM_SIZE,
    ):
        """Initialize the store.

        Args:
            index: Position of the store in its registry.
            clean_up_policy: Policy used by clean_up() when none is given.
            max_atom_size: Largest content size accepted by write_atom().
        """
        self.index = index
        self.clean_up_policy = clean_up_policy
        self.max_atom_size = max_atom_size
        self._initialized = False
        self._lock = ReadWriteLock()
        self._key_locks = KeyLocks()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(index={self.index}, {self.describe()})"

    @property
    def is_initialized(self) -> bool:
        """Return True if the backend is currently open."""
        return self._initialized

    def initialize(self) -> None:
        """Open the backend. Does nothing if it is already open.

        Raises:
            StorageUnavailable: If the backend cannot be opened.
        """
        with self._lock.write():
            self._initialize_locked()

    def _initialize_locked(self) -> None:
        if self._initialized:
            return
        logger.debug("Initializing store %d (%s)", self.index, self.describe())
        try:
            self._open()
        except StorageUnavailable:
            raise
        except OSError as e:
            raise StorageUnavailable(self.backend, str(e))
        self._initialized = True

    @contextmanager
    def _shared(self) -> Generator[None, None, None]:
        """Hold the shared lock on an initialized backend."""
        while True:
            with self._lock.read():
                if self._initialized:
                    yield
                    return
            self.initialize()

    def get_keys(self) -> list[str]:
        """Return every persisted key. Ordering is not guaranteed."""
        with self._shared():
            return self._get_keys()

    def read_atom(self, key: str) -> Atom | None:
        """Read the atom stored under ``key``.

        Returns:
            The atom, or None if nothing is stored for the key.
        """
        validate_key(key)
        with self._shared():
            return self._read_atom(key)

    def get_last_update(self, key: str) -> datetime | None:
        """Return the timestamp of the atom stored under ``key``, if any."""
        validate_key(key)
        with self._shared():
            return self._get_last_update(key)

    def write_atom(self, key: str, atom: Atom, append: bool = False) -> Atom:
        """Persist an atom under ``key``.

        Args:
            key: Store key.
            atom: Atom to persist.
            append: If True, the content is appended to the existing one and
                the new timestamp is kept; otherwise the atom replaces any
                existing one.

        Returns:
            The atom as it is now stored.
        """
        validate_key(key)
        validate_atom_size(atom.size, self.max_atom_size)
        start = time.monotonic()
        with self._shared(), self._key_locks.hold(key):
            if append:
                existing = self._read_atom(key)
                if existing is not None:
                    atom = Atom(
                        timestamp=atom.timestamp,
                        content=existing.content + atom.content,
                        context=atom.context if atom.context is not None else existing.context,
                    )
                    validate_atom_size(atom.size, self.max_atom_size)
            self._write_atom(key, atom)
        logger.debug(
            "Wrote %d bytes for '%s' in store %d in %.1f ms",
            atom.size, key, self.index, (time.monotonic() - start) * 1000,
        )
        return atom

    def remove(self, key: str) -> None:
        """Remove the atom stored under ``key``. Does nothing if absent."""
        validate_key(key)
        with self._shared(), self._key_locks.hold(key):
            self._remove(key)

    def clear(self) -> None:
        """Remove every atom of this store."""
        logger.info("Emptying store %d", self.index)
        with self._lock.write():
            self._initialize_locked()
            self._clear()

    def clean_up(self, policy: CleanUpPolicy | None = None) -> int:
        """Remove the atoms selected by a clean-up policy.

        Args:
            policy: Policy to apply; defaults to the store's configured one.

        Returns:
            Number of atoms removed. Zero when no policy is available.
        """
        policy = policy or self.clean_up_policy
        if policy is None:
            return 0

        start = time.monotonic()
        with self._lock.write():
            self._initialize_locked()
            selected = policy.select(self._get_timestamps(), utcnow())
            for key in selected:
                self._remove(key)

        logger.info(
            "Cleaning up store %d with %r removed %d entries in %.1f ms",
            self.index, policy, len(selected), (time.monotonic() - start) * 1000,
        )
        return len(selected)

    def close(self) -> None:
        """Release backend resources. The next access reopens the store."""
        with self._lock.write():
            if not self._initialized:
                return
            logger.debug("Closing store %d", self.index)
            self._initialized = False
            self._close()

    def sizes(self) -> dict[str, int]:
        """Return the content size in bytes of every persisted atom."""
        with self._shared():
            return self._sizes()

    def stats(self) -> dict[str, Any]:
        """Return statistics about the persisted atoms."""
        with self._shared():
            timestamps = self._get_timestamps()
            total_bytes = sum(self._sizes().values())
        return {
            "index": self.index,
            "backend": self.backend,
            "location": self.describe(),
            "entries": len(timestamps),
            "total_bytes": total_bytes,
            "oldest": min(timestamps.values()) if timestamps else None,
            "newest": max(timestamps.values()) if timestamps else None,
        }

    def describe(self) -> str:
        """Return a short human readable location of the backend."""
        return self.backend

    def _get_last_update(self, key: str) -> datetime | None:
        atom = self._read_atom(key)
        return atom.timestamp if atom else None

    def _sizes(self) -> dict[str, int]:
        sizes = {}
        for key in self._get_keys():
            atom = self._read_atom(key)
            if atom is not None:
                sizes[key] = atom.size
        return sizes

    @abstractmethod
    def _open(self) -> None:
        """Prepare the backing medium. Raise StorageUnavailable on failure."""

    @abstractmethod
    def _close(self) -> None:
        """Release backing resources."""

    @abstractmethod
    def _get_keys(self) -> list[str]:
        pass

    @abstractmethod
    def _get_timestamps(self) -> dict[str, datetime]:
        pass

    @abstractmethod
    def _read_atom(self, key: str) -> Atom | None:
        pass

    @abstractmethod
    def _write_atom(self, key: str, atom: Atom) -> None:
        """Replace whatever is stored under ``key`` atomically."""

    @abstractmethod
    def _remove(self, key: str) -> None:
        pass

    @abstractmethod
    def _clear(self) -> None:
        pass
