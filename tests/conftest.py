"""
Pytest fixtures and configuration for atomcache tests.

Provides temporary stores for every persistent backend, a fake data source
counting its fetches, a controllable clock and a text parser.
"""

import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

import pytest

from atomcache.cache.filesystem import FileStore
from atomcache.cache.sqlite import SqliteStore
from atomcache.config import clear_settings_cache
from atomcache.core.exceptions import TransportError
from atomcache.core.models import Atom, FetchDescriptor
from atomcache.front import FunctionParser
from atomcache.sources.base import DataSource

# =============================================================================
# Fakes
# =============================================================================


class CountingSource(DataSource):
    """Data source answering from memory and counting its fetches.

    Unknown URLs are answered with "payload <n>" where n is the fetch
    number, so every fetch returns distinct content.
    """

    def __init__(
        self,
        responses: dict[str, bytes] | None = None,
        delay: float = 0.0,
    ):
        self.responses = dict(responses or {})
        self.delay = delay
        self.fail = False
        self.fetch_count = 0
        self.descriptors: list[FetchDescriptor] = []
        self._lock = threading.Lock()

    def fetch(self, descriptor: FetchDescriptor) -> bytes:
        with self._lock:
            self.fetch_count += 1
            number = self.fetch_count
            self.descriptors.append(descriptor)

        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise TransportError(descriptor.url, 503, details="Service Unavailable")
        return self.responses.get(descriptor.url, f"payload {number}".encode())


class FakeClock:
    """Clock returning a settable UTC time."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += timedelta(milliseconds=ms)


# =============================================================================
# Store Fixtures
# =============================================================================


@pytest.fixture
def file_store(tmp_path: Path):
    """Create a file store in a temporary directory."""
    store = FileStore(tmp_path / "atoms")
    yield store
    store.close()


@pytest.fixture
def sqlite_store(tmp_path: Path):
    """Create a SQLite store in a temporary directory."""
    store = SqliteStore(tmp_path, file_name="test.db", table_name="atoms")
    yield store
    store.close()


@pytest.fixture(params=["file", "database"])
def store(request, tmp_path: Path):
    """Create a store of every persistent backend in turn."""
    if request.param == "file":
        store = FileStore(tmp_path / "atoms")
    else:
        store = SqliteStore(tmp_path, file_name="test.db", table_name="atoms")
    yield store
    store.close()


# =============================================================================
# Fetch Fixtures
# =============================================================================


@pytest.fixture
def source() -> CountingSource:
    """Create a counting data source."""
    return CountingSource()


@pytest.fixture
def clock() -> FakeClock:
    """Create a controllable clock."""
    return FakeClock()


@pytest.fixture
def make_atom() -> Callable[..., Atom]:
    """Create atoms with a default timestamp."""

    def factory(content: bytes, timestamp: datetime | None = None, context=None) -> Atom:
        return Atom(
            timestamp=timestamp or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
            content=content,
            context=context,
        )

    return factory


@pytest.fixture
def text_parser() -> FunctionParser:
    """Create a parser decoding UTF-8 text.

    Content starting with "!" is rejected as malformed.
    """

    def parse(params, stream) -> str:
        text = stream.read().decode("utf-8")
        if text.startswith("!"):
            raise ValueError("malformed payload")
        return text

    return FunctionParser(parse)


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def settings_env(monkeypatch, tmp_path: Path) -> Path:
    """Point the settings at a temporary cache directory."""
    for name in ("STORE_COUNT", "BACKEND", "TABLE_NAMES", "RETENTION_MS", "MAX_ENTRIES", "LOG_LEVEL"):
        monkeypatch.delenv(f"ATOMCACHE_{name}", raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ATOMCACHE_CACHE_DIR", str(tmp_path / "cache"))
    clear_settings_cache()
    yield tmp_path / "cache"
    clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo logging setup done by a test, such as a CLI invocation."""
    yield
    package_logger = logging.getLogger("atomcache")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True
