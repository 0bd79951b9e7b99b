"""Response-cache hooks registered by the engine factory.

- `cache_check` (`PRE_PROCESS`): exact lookup, then semantic lookup within the
  key's project scope. A hit short-circuits the pipeline with the cached
  `{"response", "domain"}` record.
- `cache_store` (`POST_PROCESS`): stores the finished pipeline answer under the
  exact key together with the prompt embedding.

The prompt embedding computed during the check is kept on the request scope so
the store hook does not embed the same prompt twice.
"""

import logging

from tutorcore.cache.layer import CacheLayer, key_scope
from tutorcore.core.hooks import CONTINUE, HookOutcome, HookPayload


logger = logging.getLogger(__name__)


def make_cache_check(cache: CacheLayer):
    async def cache_check(payload: HookPayload) -> HookOutcome:
        if not payload.cacheable or payload.cache_key is None:
            return CONTINUE

        scope = payload.scope
        value = cache.get_exact(payload.cache_key)
        if value is not None:
            scope.trace.record("Cache hit", {"tier": "exact", "key": payload.cache_key})
            return HookOutcome(handled=True, result=value)

        try:
            scope.embedding = await cache.embed(payload.prompt)
        except Exception as e:
            logger.warning("Prompt embedding failed: %s", e)
            scope.warn("Semantic cache unavailable for this request")
            return CONTINUE

        hit = await cache.search_semantic(payload.prompt, scope.embedding, key_scope(payload.cache_key))
        if hit is not None:
            scope.trace.record("Cache hit", {"tier": hit.tier, "key": hit.key, "score": round(hit.score, 4)})
            return HookOutcome(handled=True, result=hit.value)

        scope.trace.record("Cache miss", {"key": payload.cache_key})
        return CONTINUE

    return cache_check


def make_cache_store(cache: CacheLayer):
    async def cache_store(payload: HookPayload) -> HookOutcome:
        result = payload.result
        if not payload.cacheable or payload.cache_key is None or result is None:
            return CONTINUE
        if result.source != "pipeline" or result.errors:
            return CONTINUE

        scope = payload.scope
        embedding = scope.embedding
        if embedding is None:
            try:
                embedding = await cache.embed(payload.prompt)
            except Exception as e:
                logger.warning("Prompt embedding failed on store: %s", e)
                embedding = None

        cache.set(payload.cache_key, {"response": result.response, "domain": result.domain}, embedding)
        scope.trace.record("Cache store", {"key": payload.cache_key, "semantic": embedding is not None})
        return CONTINUE

    return cache_store
