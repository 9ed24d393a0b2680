"""
Clean-up policies for persistent stores.

A policy looks at the timestamps of every persisted atom and decides which
keys to drop. Policies only run when a store is explicitly cleaned up;
atoms never expire in place.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta

from atomcache.core.models import utcnow


class CleanUpPolicy(ABC):
    """Selects the keys a store should remove during clean-up."""

    @abstractmethod
    def select(self, timestamps: dict[str, datetime], now: datetime | None = None) -> list[str]:
        """Return the keys to remove.

        Args:
            timestamps: Mapping of every persisted key to its atom timestamp.
            now: Reference time, defaults to the current UTC time.
        """


class RetentionPolicy(CleanUpPolicy):
    """Removes atoms older than a retention duration."""

    def __init__(self, retention_ms: int):
        if retention_ms < 0:
            raise ValueError("retention_ms must be positive")
        self.retention_ms = retention_ms

    def select(self, timestamps: dict[str, datetime], now: datetime | None = None) -> list[str]:
        limit = (now or utcnow()) - timedelta(milliseconds=self.retention_ms)
        return [key for key, timestamp in timestamps.items() if timestamp < limit]

    def __repr__(self) -> str:
        return f"RetentionPolicy(retention_ms={self.retention_ms})"


class MaxEntriesPolicy(CleanUpPolicy):
    """Keeps the newest ``max_entries`` atoms and removes the others."""

    def __init__(self, max_entries: int):
        if max_entries < 0:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries

    def select(self, timestamps: dict[str, datetime], now: datetime | None = None) -> list[str]:
        newest_first = sorted(timestamps, key=timestamps.__getitem__, reverse=True)
        return newest_first[self.max_entries:]

    def __repr__(self) -> str:
        return f"MaxEntriesPolicy(max_entries={self.max_entries})"


class CombinedPolicy(CleanUpPolicy):
    """Removes every key selected by at least one of its policies."""

    def __init__(self, *policies: CleanUpPolicy):
        self.policies = policies

    def select(self, timestamps: dict[str, datetime], now: datetime | None = None) -> list[str]:
        selected: list[str] = []
        for policy in self.policies:
            for key in policy.select(timestamps, now):
                if key not in selected:
                    selected.append(key)
        return selected

    def __repr__(self) -> str:
        return f"CombinedPolicy{self.policies!r}"
