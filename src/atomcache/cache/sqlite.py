"""
SQLite-based store implementation.

Persists one row per key in a table of an SQLite database file. Several
stores may use different tables of the same file; they then share a single
connection, which is closed when the last of them closes.
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Generator, Optional

from atomcache.cache.base import PersistentStore
from atomcache.cache.policies import CleanUpPolicy
from atomcache.core.exceptions import PersistenceError, StorageUnavailable
from atomcache.core.models import Atom
from atomcache.core.validation import MAX_ATOM_SIZE, validate_identifier
from atomcache.logging import get_logger

logger = get_logger(__name__)

DEFAULT_FILE_NAME = "cache.db"
DEFAULT_TABLE_NAME = "cache"


class _SharedDatabase:
    """A connection shared by every store using the same database file."""

    def __init__(self, path: Path):
        self.path = path
        self.connection = sqlite3.connect(path, check_same_thread=False)
        self.connection.row_factory = sqlite3.Row
        self.lock = threading.RLock()
        self.users = 0


_databases: dict[Path, _SharedDatabase] = {}
_databases_lock = threading.Lock()


def _obtain_database(path: Path) -> _SharedDatabase:
    with _databases_lock:
        database = _databases.get(path)
        if database is None:
            database = _SharedDatabase(path)
            _databases[path] = database
        database.users += 1
        return database


def _release_database(path: Path) -> None:
    with _databases_lock:
        database = _databases.get(path)
        if database is None:
            return
        database.users -= 1
        if database.users <= 0:
            del _databases[path]
            database.connection.close()


class SqliteStore(PersistentStore):
    """SQLite-backed store with one row per key."""

    backend = "database"

    def __init__(
        self,
        directory: Optional[Path] = None,
        file_name: str = DEFAULT_FILE_NAME,
        table_name: str = DEFAULT_TABLE_NAME,
        index: int = 0,
        clean_up_policy: CleanUpPolicy | None = None,
        max_atom_size: int = MAX_ATOM_SIZE,
    ):
        """Initialize the SQLite store.

        Args:
            directory: Directory of the database file. Defaults to ~/.atomcache
            file_name: Name of the database file inside the directory.
            table_name: Table holding this store's rows.
            index: Position of the store in its registry.
            clean_up_policy: Policy used by clean_up() when none is given.
            max_atom_size: Largest content size accepted by write_atom().
        """
        super().__init__(index, clean_up_policy, max_atom_size)
        if directory is None:
            directory = Path.home() / ".atomcache"

        self.directory = Path(directory)
        self.file_name = file_name
        self.table_name = validate_identifier(table_name)
        self._database: _SharedDatabase | None = None

    @property
    def db_path(self) -> Path:
        return (self.directory / self.file_name).resolve()

    def describe(self) -> str:
        return f"{self.db_path}:{self.table_name}"

    def _open(self) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailable(self.backend, f"{self.directory}: {e}")

        try:
            self._attach()
        except sqlite3.OperationalError as e:
            raise StorageUnavailable(self.backend, f"{self.db_path}: {e}")
        except sqlite3.DatabaseError as e:
            logger.warning(
                "The database %s seems corrupted (%s): it is now re-initialized", self.db_path, e
            )
            self._delete_database_file()
            try:
                self._attach()
            except sqlite3.Error as retry_error:
                raise StorageUnavailable(self.backend, f"{self.db_path}: {retry_error}")

    def _attach(self) -> None:
        """Open the shared connection and make sure the table exists."""
        database = _obtain_database(self.db_path)
        try:
            with database.lock:
                database.connection.executescript(f"""
                    CREATE TABLE IF NOT EXISTS {self.table_name} (
                        key TEXT PRIMARY KEY,
                        contents BLOB NOT NULL,
                        context TEXT,
                        last_update TEXT NOT NULL
                    );

                    CREATE INDEX IF NOT EXISTS idx_{self.table_name}_last_update
                    ON {self.table_name}(last_update);
                """)
        except sqlite3.Error:
            _release_database(self.db_path)
            raise
        self._database = database

    def _delete_database_file(self) -> None:
        with _databases_lock:
            if self.db_path in _databases:
                raise StorageUnavailable(
                    self.backend,
                    f"{self.db_path} is corrupted but still used by another store",
                )
            try:
                self.db_path.unlink(missing_ok=True)
            except OSError as e:
                raise StorageUnavailable(self.backend, f"{self.db_path}: {e}")

    def _close(self) -> None:
        if self._database is not None:
            self._database = None
            _release_database(self.db_path)

    @contextmanager
    def _connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get the shared connection for one transaction.

        Yields:
            sqlite3.Connection that commits on success and rolls back on error.
        """
        database = self._database
        if database is None:
            raise PersistenceError("database operation", "store is closed")

        with database.lock:
            conn = database.connection
            try:
                yield conn
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise PersistenceError("database operation", str(e))
            except BaseException:
                conn.rollback()
                raise

    def _get_keys(self) -> list[str]:
        with self._connection() as conn:
            rows = conn.execute(f"SELECT key FROM {self.table_name}").fetchall()
            return [row["key"] for row in rows]

    def _get_timestamps(self) -> dict[str, datetime]:
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT key, last_update FROM {self.table_name}"
            ).fetchall()
            return {row["key"]: datetime.fromisoformat(row["last_update"]) for row in rows}

    def _get_last_update(self, key: str) -> datetime | None:
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT last_update FROM {self.table_name} WHERE key = ?",
                (key,),
            ).fetchone()
            return datetime.fromisoformat(row["last_update"]) if row else None

    def _sizes(self) -> dict[str, int]:
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT key, length(contents) AS size FROM {self.table_name}"
            ).fetchall()
            return {row["key"]: row["size"] for row in rows}

    def _read_atom(self, key: str) -> Atom | None:
        with self._connection() as conn:
            row = conn.execute(
                f"""
                SELECT contents, context, last_update FROM {self.table_name}
                WHERE key = ?
                """,
                (key,),
            ).fetchone()

        if row is None:
            return None

        try:
            context = json.loads(row["context"]) if row["context"] else None
        except json.JSONDecodeError as e:
            raise PersistenceError("read", f"{key}: {e}")

        return Atom(
            timestamp=datetime.fromisoformat(row["last_update"]),
            content=bytes(row["contents"]),
            context=context,
        )

    def _write_atom(self, key: str, atom: Atom) -> None:
        try:
            context = json.dumps(atom.context) if atom.context is not None else None
        except (TypeError, ValueError) as e:
            raise PersistenceError("write", f"{key}: context is not JSON serializable: {e}")

        with self._connection() as conn:
            conn.execute(
                f"""
                INSERT OR REPLACE INTO {self.table_name} (key, contents, context, last_update)
                VALUES (?, ?, ?, ?)
                """,
                (key, sqlite3.Binary(atom.content), context, atom.timestamp.isoformat()),
            )

    def _remove(self, key: str) -> None:
        with self._connection() as conn:
            conn.execute(f"DELETE FROM {self.table_name} WHERE key = ?", (key,))

    def _clear(self) -> None:
        with self._connection() as conn:
            conn.execute(f"DELETE FROM {self.table_name}")
