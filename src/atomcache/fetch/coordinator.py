"""
Fetch coordination: cache hits, misses, staleness and deduplication.

The coordinator decides for each read whether the persisted atom can be
served, whether it must be fetched again, and whether a stale atom should
be refreshed in the background. Concurrent fetches of one key on one store
collapse into a single request whose outcome every caller shares.
"""

import threading
import time
import weakref
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Callable, Optional

from atomcache.cache.base import PersistentStore
from atomcache.core.exceptions import FetchFailed, TransportError
from atomcache.core.models import (
    Atom,
    CacheKey,
    CachePolicy,
    FetchDescriptor,
    Refreshed,
    Resolution,
    Source,
    utcnow,
)
from atomcache.logging import get_logger
from atomcache.sources.base import DataSource, read_content

logger = get_logger(__name__)

DEFAULT_REFRESH_WORKERS = 3


class _InFlightFetches:
    """The fetches currently running against one store."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.futures: dict[str, Future] = {}


_in_flight_tables: "weakref.WeakKeyDictionary[PersistentStore, _InFlightFetches]" = (
    weakref.WeakKeyDictionary()
)
_in_flight_tables_lock = threading.Lock()


def _in_flight_for(store: PersistentStore) -> _InFlightFetches:
    with _in_flight_tables_lock:
        table = _in_flight_tables.get(store)
        if table is None:
            table = _InFlightFetches()
            _in_flight_tables[store] = table
        return table


class FetchCoordinator:
    """Resolves cache keys to bytes through a store and a data source.

    | use_cache | atom exists | fresh | action                                   |
    |-----------|-------------|-------|------------------------------------------|
    | False     | any         | any   | fetch, overwrite the store               |
    | True      | no          | -     | fetch, persist                           |
    | True      | yes         | yes   | serve the persisted atom                 |
    | True      | yes         | no    | serve the persisted atom; refresh in the |
    |           |             |       | background only if on_refreshed is given |

    Coordinators sharing a store also share its in-flight fetches.
    """

    def __init__(
        self,
        store: PersistentStore,
        source: DataSource,
        max_workers: int = DEFAULT_REFRESH_WORKERS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the coordinator.

        Args:
            store: Store the atoms are read from and written to.
            source: Data source performing the actual fetches.
            max_workers: Size of the background refresh thread pool.
            clock: Returns the current aware datetime. Defaults to UTC now.
        """
        self.store = store
        self.source = source
        self._clock = clock or utcnow
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="atomcache-refresh",
        )
        self._in_flight = _in_flight_for(store)
        self._shutdown_lock = threading.Lock()
        self._closed = False

    def __enter__(self) -> "FetchCoordinator":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    def now(self) -> datetime:
        """Return the current time according to the coordinator's clock."""
        return self._clock()

    @property
    def closed(self) -> bool:
        return self._closed

    def shutdown(self, wait: bool = True) -> None:
        """Stop the refresh pool, waiting for running refreshes by default.

        The coordinator still resolves keys afterwards, but stale atoms are
        served without any background refresh.
        """
        with self._shutdown_lock:
            self._closed = True
            self._executor.shutdown(wait=False)
        if wait:
            self._executor.shutdown(wait=True)

    def resolve(
        self,
        key: CacheKey,
        descriptor: FetchDescriptor,
        policy: CachePolicy | None = None,
    ) -> bytes:
        """Resolve ``key`` to its content according to ``policy``.

        Raises:
            FetchFailed: If a required fetch fails.
        """
        return self.resolve_atom(key, descriptor, policy).content

    def resolve_atom(
        self,
        key: CacheKey,
        descriptor: FetchDescriptor,
        policy: CachePolicy | None = None,
        returned: threading.Event | None = None,
    ) -> Resolution:
        """Resolve ``key`` to an atom and tell where it came from.

        Args:
            key: Cache key.
            descriptor: How to fetch the content on a miss.
            policy: Staleness policy, defaults to CachePolicy().
            returned: Event released by the caller once it has handed the
                value to its own caller. A background refresh waits for it
                before invoking ``on_refreshed``. When omitted, the event is
                released as soon as this method returns.

        Raises:
            FetchFailed: If a required fetch fails.
        """
        policy = policy or CachePolicy()
        gate = returned if returned is not None else threading.Event()
        try:
            return self._resolve(key, descriptor, policy, gate)
        finally:
            if returned is None:
                gate.set()

    def _resolve(
        self,
        key: CacheKey,
        descriptor: FetchDescriptor,
        policy: CachePolicy,
        gate: threading.Event,
    ) -> Resolution:
        if not policy.use_cache:
            return self._fetch(key, descriptor)

        atom = self.store.read_atom(str(key))
        if atom is None:
            logger.debug("No atom for '%s', fetching it", key)
            return self._fetch(key, descriptor, reuse_max_age_ms=policy.max_age_ms)

        if atom.is_fresh(policy.max_age_ms, self._clock()):
            return Resolution(key, atom, Source.STORE)

        if policy.on_refreshed is None:
            logger.debug("Serving stale atom for '%s' without refresh", key)
        elif not self._submit_refresh(key, descriptor, policy.on_refreshed, gate):
            logger.warning("Serving stale atom for '%s': the coordinator is shut down", key)
        else:
            logger.debug("Serving stale atom for '%s' and refreshing it", key)
        return Resolution(key, atom, Source.STORE)

    def _submit_refresh(
        self,
        key: CacheKey,
        descriptor: FetchDescriptor,
        callback: Callable[[Refreshed], None],
        gate: threading.Event,
    ) -> bool:
        with self._shutdown_lock:
            if self._closed:
                return False
            self._executor.submit(self._refresh, key, descriptor, callback, gate)
            return True

    def _fetch(
        self,
        key: CacheKey,
        descriptor: FetchDescriptor,
        reuse_max_age_ms: int | None = None,
    ) -> Resolution:
        """Run the fetch of ``key``, or join the one already in flight.

        With ``reuse_max_age_ms``, a fresh atom persisted since the caller's
        miss is served instead. That read happens before a fetch is
        registered, so a caller joining an in-flight fetch always shares a
        real fetch.
        """
        storage_key = str(key)
        table = self._in_flight

        if reuse_max_age_ms is not None:
            with table.lock:
                future = table.futures.get(storage_key)
            if future is None:
                atom = self.store.read_atom(storage_key)
                if atom is not None and atom.is_fresh(reuse_max_age_ms, self._clock()):
                    logger.debug("'%s' was fetched since the miss, serving it", key)
                    return Resolution(key, atom, Source.STORE)

        with table.lock:
            future = table.futures.get(storage_key)
            owner = future is None
            if owner:
                future = Future()
                table.futures[storage_key] = future

        if not owner:
            logger.debug("Joining the in-flight fetch of '%s'", key)
            return future.result()

        try:
            resolution = self._fetch_and_store(key, descriptor)
        except Exception as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(resolution)
            return resolution
        finally:
            with table.lock:
                table.futures.pop(storage_key, None)

    def _fetch_and_store(self, key: CacheKey, descriptor: FetchDescriptor) -> Resolution:
        storage_key = str(key)
        start = time.monotonic()
        try:
            content = read_content(self.source.fetch(descriptor))
        except (TransportError, OSError) as e:
            logger.warning("Fetching '%s' failed: %s", key, e)
            raise FetchFailed(storage_key, e) from e

        atom = self.store.write_atom(storage_key, Atom(timestamp=self._clock(), content=content))
        logger.debug(
            "Fetched %d bytes for '%s' in %.1f ms", atom.size, key, (time.monotonic() - start) * 1000
        )
        return Resolution(key, atom, Source.NETWORK)

    def _refresh(
        self,
        key: CacheKey,
        descriptor: FetchDescriptor,
        callback: Callable[[Refreshed], None],
        gate: threading.Event,
    ) -> None:
        try:
            outcome = Refreshed(key, value=self._fetch(key, descriptor))
        except Exception as e:
            outcome = Refreshed(key, error=e)

        gate.wait()
        try:
            callback(outcome)
        except Exception:
            logger.exception("The refresh callback of '%s' failed", key)
