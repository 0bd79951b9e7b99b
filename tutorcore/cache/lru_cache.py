"""Exact-key LRU response cache.

Eviction model:
    Bounded by `capacity`. Both `get` and `set` move the key to the most-recent
    end, so overflow always evicts the least-recently *accessed* entry. Entries
    older than `ttl_seconds` since their last write are treated as misses and
    removed on access.

Thread safety:
    Not locked internally; `CacheLayer` owns the instance and serializes access
    with its own lock.
"""

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable


logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    key: str
    value: Any
    inserted_at: float
    last_access_at: float
    embedding: list[float] | None = None


class LRUCache:
    def __init__(
        self,
        capacity: int = 500,
        ttl_seconds: float | None = 3600,
        clock: Callable[[], float] = time.monotonic,
        on_evict: Callable[[CacheEntry], None] | None = None,
    ):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._on_evict = on_evict
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return self.ttl_seconds is not None and now - entry.inserted_at > self.ttl_seconds

    def get_entry(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        now = self._clock()
        if self._expired(entry, now):
            self._remove(key)
            return None
        entry.last_access_at = now
        self._entries.move_to_end(key)
        return entry

    def get(self, key: str) -> Any | None:
        entry = self.get_entry(key)
        return entry.value if entry is not None else None

    def set(self, key: str, value: Any, embedding: list[float] | None = None) -> CacheEntry:
        now = self._clock()
        entry = CacheEntry(key=key, value=value, inserted_at=now, last_access_at=now, embedding=embedding)
        if key in self._entries:
            self._remove(key)
        self._entries[key] = entry
        while len(self._entries) > self.capacity:
            oldest_key = next(iter(self._entries))
            logger.debug("Evicting least-recently accessed cache key %s", oldest_key)
            self._remove(oldest_key)
        return entry

    def delete(self, key: str) -> bool:
        if key not in self._entries:
            return False
        self._remove(key)
        return True

    def _remove(self, key: str) -> None:
        entry = self._entries.pop(key)
        if self._on_evict is not None:
            self._on_evict(entry)

    def keys(self) -> list[str]:
        """Keys from least to most recently accessed."""
        return list(self._entries.keys())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries
