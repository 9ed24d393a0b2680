"""
File-system store implementation.

Persists one file per key under a directory. Each file starts with a
single JSON header line (key, timestamp, context) followed by the raw
content bytes. Files are written to a temporary name and then renamed,
so a reader sees either the previous atom or the new one.
"""

import hashlib
import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator

from atomcache.cache.base import PersistentStore
from atomcache.cache.policies import CleanUpPolicy
from atomcache.core.exceptions import PersistenceError, StorageUnavailable
from atomcache.core.models import Atom
from atomcache.core.validation import MAX_ATOM_SIZE

ATOM_SUFFIX = ".atom"
TEMP_SUFFIX = ".tmp"


class FileStore(PersistentStore):
    """Blob store with one file per key."""

    backend = "file"

    def __init__(
        self,
        directory: Path,
        index: int = 0,
        clean_up_policy: CleanUpPolicy | None = None,
        max_atom_size: int = MAX_ATOM_SIZE,
    ):
        """Initialize the file store.

        Args:
            directory: Directory holding the atom files. Created on demand.
            index: Position of the store in its registry.
            clean_up_policy: Policy used by clean_up() when none is given.
            max_atom_size: Largest content size accepted by write_atom().
        """
        super().__init__(index, clean_up_policy, max_atom_size)
        self.directory = Path(directory)

    def describe(self) -> str:
        return str(self.directory)

    def _path_for(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.directory / f"{digest}{ATOM_SUFFIX}"

    def _open(self) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailable(self.backend, f"{self.directory}: {e}")

        if not os.access(self.directory, os.W_OK | os.X_OK):
            raise StorageUnavailable(self.backend, f"{self.directory} is not writable")

        # Leftovers of writes interrupted by a crash
        for leftover in self.directory.glob(f"*{TEMP_SUFFIX}"):
            leftover.unlink(missing_ok=True)

    def _close(self) -> None:
        pass

    def _iter_files(self) -> Iterator[Path]:
        return self.directory.glob(f"*{ATOM_SUFFIX}")

    def _read_header(self, path: Path) -> dict[str, Any] | None:
        try:
            with path.open("rb") as f:
                return json.loads(f.readline())
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            raise PersistenceError("read header", f"{path.name}: {e}")

    def _get_keys(self) -> list[str]:
        keys = []
        for path in self._iter_files():
            header = self._read_header(path)
            if header is not None:
                keys.append(header["key"])
        return keys

    def _get_timestamps(self) -> dict[str, datetime]:
        timestamps = {}
        for path in self._iter_files():
            header = self._read_header(path)
            if header is not None:
                timestamps[header["key"]] = datetime.fromisoformat(header["timestamp"])
        return timestamps

    def _get_last_update(self, key: str) -> datetime | None:
        header = self._read_header(self._path_for(key))
        if header is None:
            return None
        return datetime.fromisoformat(header["timestamp"])

    def _sizes(self) -> dict[str, int]:
        sizes = {}
        for path in self._iter_files():
            try:
                with path.open("rb") as f:
                    header = json.loads(f.readline())
                    sizes[header["key"]] = path.stat().st_size - f.tell()
            except FileNotFoundError:
                continue
            except (OSError, ValueError) as e:
                raise PersistenceError("stats", f"{path.name}: {e}")
        return sizes

    def _read_atom(self, key: str) -> Atom | None:
        path = self._path_for(key)
        try:
            with path.open("rb") as f:
                header = json.loads(f.readline())
                content = f.read()
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            raise PersistenceError("read", f"{key}: {e}")

        return Atom.from_header(header, content)

    def _write_atom(self, key: str, atom: Atom) -> None:
        try:
            header = json.dumps(atom.header(key)).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise PersistenceError("write", f"{key}: context is not JSON serializable: {e}")

        try:
            fd, temp_name = tempfile.mkstemp(dir=self.directory, suffix=TEMP_SUFFIX)
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(header + b"\n")
                    f.write(atom.content)
                os.replace(temp_name, self._path_for(key))
            except BaseException:
                Path(temp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceError("write", f"{key}: {e}")

    def _remove(self, key: str) -> None:
        try:
            self._path_for(key).unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError("remove", f"{key}: {e}")

    def _clear(self) -> None:
        try:
            for path in self._iter_files():
                path.unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError("clear", str(e))
