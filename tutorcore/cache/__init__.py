"""Response cache package.

Module split:
    - `lru_cache`: exact-key, access-ordered LRU store with TTL.
    - `semantic_index`: FAISS inner-product index over normalized embeddings.
    - `layer`: `CacheLayer`, the locked two-tier facade.
    - `hooks`: the cache check/store hooks the engine registers.
"""
