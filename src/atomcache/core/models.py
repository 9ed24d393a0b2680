"""
Core data models for atomcache.

This module defines the data structures shared by the stores, the fetch
coordinator and the typed fronts: cache keys, fetch descriptors, persisted
atoms, caching policies and the results handed back to callers.
"""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Generic, TypeVar

T = TypeVar("T")

# One hour
DEFAULT_MAX_AGE_MS = 3_600_000


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class CallMethod(Enum):
    """HTTP verbs a fetch descriptor can use."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"

    def __str__(self) -> str:
        return self.value


class Source(Enum):
    """Where a returned value came from."""

    MEMORY = "memory"  # In-memory layer of a typed front
    STORE = "store"  # Persistent store, no network call
    NETWORK = "network"  # Fresh fetch from the data source

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class FetchDescriptor:
    """Everything a data source needs to perform one request."""

    url: str
    method: CallMethod = CallMethod.GET
    body: bytes | None = None
    headers: tuple[tuple[str, str], ...] = ()

    def __str__(self) -> str:
        return f"{self.method} {self.url}"

    @property
    def body_digest(self) -> str | None:
        """Return the SHA-256 hex digest of the body, if any."""
        if self.body is None:
            return None
        return hashlib.sha256(self.body).hexdigest()


@dataclass(frozen=True)
class CacheKey:
    """Value-equal identifier of a cache slot.

    Equality and hashing only depend on ``value``, which is derived from
    request content, so logically equal requests share one slot.
    """

    value: str

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_descriptor(cls, descriptor: FetchDescriptor) -> "CacheKey":
        """Derive a key from the content of a fetch descriptor.

        A body-less GET is keyed by its URL alone; every other request also
        carries its method and a digest of its body.
        """
        if descriptor.method == CallMethod.GET and descriptor.body is None:
            return cls(descriptor.url)
        digest = descriptor.body_digest or "-"
        return cls(f"{descriptor.method.value} {descriptor.url}#{digest[:32]}")


@dataclass(frozen=True)
class Atom:
    """A persisted record: creation timestamp plus raw content."""

    timestamp: datetime
    content: bytes
    context: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        if self.timestamp.tzinfo is None:
            object.__setattr__(self, "timestamp", self.timestamp.replace(tzinfo=timezone.utc))

    @property
    def size(self) -> int:
        """Return the content size in bytes."""
        return len(self.content)

    def age_ms(self, now: datetime | None = None) -> float:
        """Return the age of the atom in milliseconds."""
        now = now or utcnow()
        return (now - self.timestamp).total_seconds() * 1000

    def is_fresh(self, max_age_ms: int, now: datetime | None = None) -> bool:
        """Return True if the atom is not older than ``max_age_ms``."""
        return self.age_ms(now) <= max_age_ms

    def header(self, key: str) -> dict[str, Any]:
        """Build the JSON-serializable metadata stored beside the content."""
        return {
            "key": key,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context,
        }

    @classmethod
    def from_header(cls, header: dict[str, Any], content: bytes) -> "Atom":
        """Rebuild an atom from stored metadata and content."""
        return cls(
            timestamp=datetime.fromisoformat(header["timestamp"]),
            content=content,
            context=header.get("context"),
        )


@dataclass(frozen=True)
class Refreshed(Generic[T]):
    """Outcome of a background refresh, handed to ``on_refreshed``.

    Exactly one of ``value`` and ``error`` is set.
    """

    key: CacheKey
    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        """Return True if the refresh succeeded."""
        return self.error is None


@dataclass(frozen=True)
class CachePolicy:
    """Staleness policy of a single read."""

    use_cache: bool = True
    max_age_ms: int = DEFAULT_MAX_AGE_MS
    on_refreshed: Callable[[Refreshed], None] | None = None


@dataclass(frozen=True)
class Resolution:
    """Result of resolving a key through the fetch coordinator."""

    key: CacheKey
    atom: Atom
    source: Source

    @property
    def content(self) -> bytes:
        return self.atom.content


@dataclass
class CacheEntry(Generic[T]):
    """An already parsed business object kept in memory."""

    key: CacheKey
    value: T
    timestamp: datetime
    refreshed_at: datetime = field(default_factory=utcnow)

    def is_fresh(self, max_age_ms: int, now: datetime | None = None) -> bool:
        """Return True if the atom this value was parsed from is fresh."""
        now = now or utcnow()
        return (now - self.timestamp).total_seconds() * 1000 <= max_age_ms


@dataclass(frozen=True)
class CachedInfo(Generic[T]):
    """A business object together with its origin and timestamp."""

    value: T
    timestamp: datetime
    source: Source
