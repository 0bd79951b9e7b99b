"""Two-tier response cache: exact key first, then embedding similarity.

Architectural role:
    Process-wide component owned by the engine factory and injected into the cache
    hooks. It is never module-global state.

Lookup order:
    `lookup` always tries `get_exact` before `search_semantic` so the cheaper,
    exact-precision tier answers whenever it can.

Scoping:
    A key's scope is everything before its last `:` (`resp:<project>` for keys
    built by `make_cache_key`). Each scope owns its own similarity index, so a
    semantic lookup only ever resolves to entries of the caller's scope.

Semantic tier:
    A hit requires cosine similarity >= `semantic_threshold`. Anything below the
    threshold is a miss; there is no partial or fuzzy return. The semantic hit
    also refreshes the LRU recency of the entry it resolves to.

Thread safety:
    One `threading.Lock` serializes every mutation of the LRU store and the
    similarity indexes. Embedding computation happens outside the lock.
"""

import hashlib
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from tutorcore.cache.lru_cache import CacheEntry, LRUCache
from tutorcore.cache.semantic_index import SemanticIndex


logger = logging.getLogger(__name__)

Embedder = Callable[[str], Awaitable[list[float]]]


def normalize_prompt(prompt: str) -> str:
    """Lowercase and collapse whitespace so trivially different prompts share a key."""
    return " ".join((prompt or "").lower().split())


def cache_scope(project_id: str | None = None) -> str:
    """Key prefix shared by every response cached for one project."""
    return f"resp:{project_id or '-'}"


def make_cache_key(prompt: str, project_id: str | None = None) -> str:
    """Stable exact-tier key for a prompt, scoped by project."""
    digest = hashlib.sha256(normalize_prompt(prompt).encode("utf-8")).hexdigest()
    return f"{cache_scope(project_id)}:{digest[:32]}"


def key_scope(key: str) -> str:
    """Scope part of a cache key; keys without `:` share the empty scope."""
    return key.rpartition(":")[0]


@dataclass(frozen=True)
class CacheHit:
    key: str
    value: Any
    tier: str
    score: float = 1.0


class CacheLayer:
    def __init__(
        self,
        capacity: int = 500,
        ttl_seconds: float | None = 3600,
        semantic_threshold: float = 0.9,
        embedder: Embedder | None = None,
        semantic_enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.semantic_threshold = semantic_threshold
        self.semantic_enabled = semantic_enabled
        self._embedder = embedder
        self._lock = threading.Lock()
        self._indexes: dict[str, SemanticIndex] = {}
        self._lru = LRUCache(capacity=capacity, ttl_seconds=ttl_seconds, clock=clock,
                             on_evict=self._drop_from_index)

    def _drop_from_index(self, entry: CacheEntry) -> None:
        """LRU eviction callback; runs with `_lock` already held."""
        if entry.embedding is None:
            return
        scope = key_scope(entry.key)
        index = self._indexes.get(scope)
        if index is None:
            return
        index.remove(entry.key)
        if not len(index):
            del self._indexes[scope]

    # ---------------------------------------------------------
    # EXACT TIER
    # ---------------------------------------------------------

    def get_exact(self, key: str) -> Any | None:
        """Value stored under `key`, or `None` when missing or expired. Refreshes recency."""
        with self._lock:
            return self._lru.get(key)

    def set(self, key: str, value: Any, embedding: list[float] | None = None) -> None:
        """Store `value` under `key`, indexing `embedding` in the key's scope.

        Overwriting a key replaces its vector. Inserting past capacity evicts the
        least recently used entry from both tiers.
        """
        with self._lock:
            self._lru.set(key, value, embedding=embedding)
            if embedding is not None and self.semantic_enabled:
                self._indexes.setdefault(key_scope(key), SemanticIndex()).add(key, embedding)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._lru.delete(key)

    # ---------------------------------------------------------
    # SEMANTIC TIER
    # ---------------------------------------------------------

    async def embed(self, text: str) -> list[float] | None:
        """Embed `text` with the configured embedder.

        Returns:
            The vector, or `None` when no embedder is set or the semantic tier is
            disabled. Embedder errors propagate to the caller.
        """
        if self._embedder is None or not self.semantic_enabled:
            return None
        return await self._embedder(text)

    async def search_semantic(self, query: str, embedding: list[float] | None = None,
                              scope: str = "") -> CacheHit | None:
        """Nearest entry of `scope` at or above the similarity threshold.

        Args:
            query: Prompt text, embedded only when `embedding` is not given.
            embedding: Precomputed query vector.
            scope: Cache scope to search (see `key_scope`).

        Returns:
            A semantic `CacheHit`, or `None` on a miss, an empty scope, or when the
            semantic tier is disabled.
        """
        if not self.semantic_enabled:
            return None
        if embedding is None:
            embedding = await self.embed(query)
        if embedding is None:
            return None

        with self._lock:
            index = self._indexes.get(scope)
            match = index.search(embedding) if index is not None else None
            if match is None:
                return None
            key, score = match
            if score < self.semantic_threshold:
                logger.debug("Semantic cache miss: best score %.4f < %.4f", score, self.semantic_threshold)
                return None
            entry = self._lru.get_entry(key)
            if entry is None:
                return None
            return CacheHit(key=key, value=entry.value, tier="semantic", score=score)

    async def get_semantic(self, query: str, embedding: list[float] | None = None,
                           scope: str = "") -> Any | None:
        hit = await self.search_semantic(query, embedding, scope)
        return hit.value if hit is not None else None

    async def lookup(self, query: str, key: str, embedding: list[float] | None = None) -> CacheHit | None:
        """Exact tier for `key`, then the semantic tier of `key`'s scope."""
        value = self.get_exact(key)
        if value is not None:
            return CacheHit(key=key, value=value, tier="exact")
        return await self.search_semantic(query, embedding, key_scope(key))

    def __len__(self) -> int:
        with self._lock:
            return len(self._lru)

    @property
    def capacity(self) -> int:
        return self._lru.capacity

    def keys(self) -> list[str]:
        with self._lock:
            return self._lru.keys()
