"""
Typed fronts over the fetch coordinator.

A front turns request parameters into a cache key, resolves the bytes
through the coordinator, parses them into a business object and keeps the
parsed object in memory so that repeated reads skip both the store and the
parser.
"""

import functools
import io
import threading
from abc import ABC, abstractmethod
from typing import BinaryIO, Callable, Generic, Optional, TypeVar

from atomcache.cache.base import PersistentStore
from atomcache.core.exceptions import ParseFailed
from atomcache.core.keys import KeyAggregator
from atomcache.core.models import (
    DEFAULT_MAX_AGE_MS,
    CacheEntry,
    CacheKey,
    CachedInfo,
    CachePolicy,
    Refreshed,
    Resolution,
    Source,
)
from atomcache.fetch.coordinator import FetchCoordinator
from atomcache.logging import get_logger
from atomcache.sources.base import DataSource

logger = get_logger(__name__)

P = TypeVar("P")
T = TypeVar("T")


class Parser(ABC, Generic[P, T]):
    """Turns raw content into a business object."""

    @abstractmethod
    def parse(self, params: P, stream: BinaryIO) -> T:
        """Parse the content fetched for ``params``.

        Args:
            params: Parameters the content was requested with.
            stream: Binary stream over the content.

        Returns:
            The parsed business object.

        Raises:
            ParseFailed: If the content is malformed.
        """
        pass


class FunctionParser(Parser[P, T]):
    """Parser backed by a plain callable."""

    def __init__(self, func: Callable[[P, BinaryIO], T]):
        self.func = func

    def parse(self, params: P, stream: BinaryIO) -> T:
        return self.func(params, stream)


class TypedCacheFront(ABC, Generic[P, T]):
    """Caller-facing API shared by the single-value and map fronts.

    Subclasses decide how many parsed values are kept in memory.
    """

    def __init__(
        self,
        coordinator: FetchCoordinator,
        aggregator: KeyAggregator[P],
        parser: Parser[P, T],
    ):
        """Initialize the front.

        Args:
            coordinator: Coordinator resolving keys to bytes.
            aggregator: Maps parameters to a key and a fetch descriptor.
            parser: Turns resolved bytes into business objects.
        """
        self.coordinator = coordinator
        self.aggregator = aggregator
        self.parser = parser
        self._lock = threading.RLock()
        self._owns_coordinator = False

    @classmethod
    def from_store(
        cls,
        store: PersistentStore,
        source: DataSource,
        aggregator: KeyAggregator[P],
        parser: Parser[P, T],
    ) -> "TypedCacheFront[P, T]":
        """Build a front with its own coordinator over ``store`` and ``source``.

        The coordinator is shut down by close().
        """
        front = cls(FetchCoordinator(store, source), aggregator, parser)
        front._owns_coordinator = True
        return front

    def __enter__(self) -> "TypedCacheFront[P, T]":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """Shut down the coordinator if this front created it.

        A coordinator passed to the constructor belongs to the caller and
        is left running.
        """
        if self._owns_coordinator:
            self.coordinator.shutdown()

    def get(
        self,
        params: P,
        *,
        use_cache: bool = True,
        max_age_ms: int = DEFAULT_MAX_AGE_MS,
        on_refreshed: Optional[Callable[[Refreshed[T]], None]] = None,
    ) -> T:
        """Return the business object for ``params``.

        Args:
            params: Request parameters.
            use_cache: When False, always fetch and overwrite the store.
            max_age_ms: Maximum age of a value served without fetching.
            on_refreshed: Receives the outcome of a background refresh of
                a stale value, always after this call has returned.

        Raises:
            FetchFailed: If a required fetch fails.
            ParseFailed: If the content cannot be parsed.
        """
        return self.get_info(
            params, use_cache=use_cache, max_age_ms=max_age_ms, on_refreshed=on_refreshed
        ).value

    def get_info(
        self,
        params: P,
        *,
        use_cache: bool = True,
        max_age_ms: int = DEFAULT_MAX_AGE_MS,
        on_refreshed: Optional[Callable[[Refreshed[T]], None]] = None,
    ) -> CachedInfo[T]:
        """Like get(), also telling the value's timestamp and origin."""
        key, descriptor = self.aggregator.aggregate(params)

        if use_cache:
            entry = self._memory_get(key)
            if entry is not None and entry.is_fresh(max_age_ms, self.coordinator.now()):
                return CachedInfo(entry.value, entry.timestamp, Source.MEMORY)

        callback = None
        if on_refreshed is not None:
            callback = functools.partial(self._deliver_refresh, params, on_refreshed)
        policy = CachePolicy(use_cache=use_cache, max_age_ms=max_age_ms, on_refreshed=callback)

        returned = threading.Event()
        try:
            resolution = self.coordinator.resolve_atom(key, descriptor, policy, returned=returned)
            value = self._value_for(params, resolution)
            return CachedInfo(value, resolution.atom.timestamp, resolution.source)
        finally:
            returned.set()

    def get_cached(self, params: P, *, from_memory: bool = True) -> T | None:
        """Return the cached business object for ``params``, never fetching.

        Returns:
            The value, or None when neither memory nor the store holds it.

        Raises:
            ParseFailed: If the persisted content cannot be parsed.
        """
        info = self.get_cached_info(params, from_memory=from_memory)
        return info.value if info is not None else None

    def get_cached_info(self, params: P, *, from_memory: bool = True) -> CachedInfo[T] | None:
        """Like get_cached(), also telling the value's timestamp and origin.

        Freshness is not checked. With ``from_memory=False`` the in-memory
        value is skipped and the persisted atom is read and parsed.
        """
        key, _ = self.aggregator.aggregate(params)

        if from_memory:
            entry = self._memory_get(key)
            if entry is not None:
                return CachedInfo(entry.value, entry.timestamp, Source.MEMORY)

        atom = self.coordinator.store.read_atom(str(key))
        if atom is None:
            logger.debug("Nothing cached for '%s'", key)
            return None
        value = self._value_for(params, Resolution(key, atom, Source.STORE))
        return CachedInfo(value, atom.timestamp, Source.STORE)

    def get_memory_value(self, params: P) -> T | None:
        """Return the value kept in memory for ``params`` without any I/O."""
        key, _ = self.aggregator.aggregate(params)
        entry = self._memory_get(key)
        return entry.value if entry is not None else None

    def set_value(self, params: P, value: T) -> None:
        """Put ``value`` in memory for ``params``, timestamped now.

        The persisted atom is left untouched.
        """
        key, _ = self.aggregator.aggregate(params)
        self._memory_put(CacheEntry(key, value, self.coordinator.now()))

    def invalidate(self, params: P) -> None:
        """Forget the in-memory value of ``params``."""
        key, _ = self.aggregator.aggregate(params)
        self._memory_drop(key)

    def remove(self, params: P) -> None:
        """Delete the persisted atom of ``params``, then its in-memory value."""
        key, _ = self.aggregator.aggregate(params)
        self.coordinator.store.remove(str(key))
        self._memory_drop(key)

    @abstractmethod
    def clear_memory(self) -> None:
        """Forget every in-memory value."""
        pass

    @abstractmethod
    def _memory_get(self, key: CacheKey) -> CacheEntry[T] | None:
        pass

    @abstractmethod
    def _memory_put(self, entry: CacheEntry[T]) -> None:
        pass

    @abstractmethod
    def _memory_drop(self, key: CacheKey) -> None:
        pass

    def _value_for(self, params: P, resolution: Resolution) -> T:
        """Parse the resolved atom, unless memory already holds its value.

        Fetched content is always parsed. The parsed value only replaces an
        in-memory value that is not newer.
        """
        atom = resolution.atom
        entry = self._memory_get(resolution.key)
        if (
            resolution.source != Source.NETWORK
            and entry is not None
            and entry.timestamp == atom.timestamp
        ):
            return entry.value

        value = self._parse(params, resolution.key, atom.content)
        with self._lock:
            current = self._memory_get(resolution.key)
            if current is None or atom.timestamp >= current.timestamp:
                self._memory_put(CacheEntry(resolution.key, value, atom.timestamp))
        return value

    def _parse(self, params: P, key: CacheKey, content: bytes) -> T:
        try:
            return self.parser.parse(params, io.BytesIO(content))
        except ParseFailed:
            raise
        except Exception as e:
            logger.warning("Parsing the content of '%s' failed: %s", key, e)
            raise ParseFailed(str(key), str(e)) from e

    def _deliver_refresh(
        self,
        params: P,
        callback: Callable[[Refreshed[T]], None],
        outcome: Refreshed[Resolution],
    ) -> None:
        if not outcome.ok:
            callback(Refreshed(outcome.key, error=outcome.error))
            return
        try:
            value = self._value_for(params, outcome.value)
        except ParseFailed as e:
            callback(Refreshed(outcome.key, error=e))
            return
        callback(Refreshed(outcome.key, value=value))


class CachedValue(TypedCacheFront[P, T]):
    """Front keeping only the most recently parsed value in memory."""

    def __init__(
        self,
        coordinator: FetchCoordinator,
        aggregator: KeyAggregator[P],
        parser: Parser[P, T],
    ):
        super().__init__(coordinator, aggregator, parser)
        self._entry: CacheEntry[T] | None = None

    def clear_memory(self) -> None:
        with self._lock:
            self._entry = None

    def _memory_get(self, key: CacheKey) -> CacheEntry[T] | None:
        with self._lock:
            if self._entry is not None and self._entry.key == key:
                return self._entry
            return None

    def _memory_put(self, entry: CacheEntry[T]) -> None:
        with self._lock:
            self._entry = entry

    def _memory_drop(self, key: CacheKey) -> None:
        with self._lock:
            if self._entry is not None and self._entry.key == key:
                self._entry = None


class CachedMap(TypedCacheFront[P, T]):
    """Front keeping one parsed value in memory per key."""

    def __init__(
        self,
        coordinator: FetchCoordinator,
        aggregator: KeyAggregator[P],
        parser: Parser[P, T],
    ):
        super().__init__(coordinator, aggregator, parser)
        self._entries: dict[CacheKey, CacheEntry[T]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear_memory(self) -> None:
        with self._lock:
            self._entries.clear()

    def _memory_get(self, key: CacheKey) -> CacheEntry[T] | None:
        with self._lock:
            return self._entries.get(key)

    def _memory_put(self, entry: CacheEntry[T]) -> None:
        with self._lock:
            self._entries[entry.key] = entry

    def _memory_drop(self, key: CacheKey) -> None:
        with self._lock:
            self._entries.pop(key, None)
