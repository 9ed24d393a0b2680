"""
A store that persists nothing.

Useful where a store is required but nothing should reach the disk: every
read misses, so every cached read turns into a fetch.
"""

from datetime import datetime

from atomcache.cache.base import PersistentStore
from atomcache.core.models import Atom


class NullStore(PersistentStore):
    """Store implementation that keeps nothing."""

    backend = "null"

    def _open(self) -> None:
        pass

    def _close(self) -> None:
        pass

    def _get_keys(self) -> list[str]:
        return []

    def _get_timestamps(self) -> dict[str, datetime]:
        return {}

    def _read_atom(self, key: str) -> Atom | None:
        return None

    def _write_atom(self, key: str, atom: Atom) -> None:
        pass

    def _remove(self, key: str) -> None:
        pass

    def _clear(self) -> None:
        pass
