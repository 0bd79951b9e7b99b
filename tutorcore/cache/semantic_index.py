"""FAISS-backed similarity index for the semantic cache.

Vector model:
    Embeddings are converted to float32, L2-normalized with `faiss.normalize_L2`
    and stored in an `IndexFlatIP`, so inner product equals cosine similarity.

Row bookkeeping:
    `_keys[i]` is the cache key stored at index row `i`. Removing a key rebuilds
    the flat index from the remaining vectors, which keeps rows and keys aligned.

Dimension:
    Fixed by the first vector added. Vectors of another dimension are rejected
    with a warning and never stored.
"""

import logging

import faiss
import numpy as np


logger = logging.getLogger(__name__)


def to_unit_matrix(vectors) -> np.ndarray:
    mat = np.array(vectors, dtype="float32")
    if mat.ndim == 1:
        mat = mat.reshape(1, -1)
    mat = np.ascontiguousarray(mat)
    faiss.normalize_L2(mat)
    return mat


class SemanticIndex:
    def __init__(self):
        self.dimension: int | None = None
        self._index = None
        self._keys: list[str] = []
        self._vectors: list[np.ndarray] = []

    def add(self, key: str, embedding) -> bool:
        vec = to_unit_matrix(embedding)
        if self.dimension is None:
            self.dimension = vec.shape[1]
            self._index = faiss.IndexFlatIP(self.dimension)
        elif vec.shape[1] != self.dimension:
            logger.warning("Embedding dimension %d does not match index dimension %d; not indexed",
                           vec.shape[1], self.dimension)
            return False

        if key in self._keys:
            self.remove(key)

        self._index.add(vec)
        self._keys.append(key)
        self._vectors.append(vec[0])
        return True

    def remove(self, key: str) -> None:
        if key not in self._keys:
            return
        pos = self._keys.index(key)
        del self._keys[pos]
        del self._vectors[pos]
        self._rebuild()

    def _rebuild(self) -> None:
        self._index = faiss.IndexFlatIP(self.dimension)
        if self._vectors:
            self._index.add(np.ascontiguousarray(np.vstack(self._vectors)))

    def search(self, embedding) -> tuple[str, float] | None:
        """Return the nearest `(key, cosine_similarity)` or `None` when empty."""
        if self._index is None or not self._keys:
            return None
        vec = to_unit_matrix(embedding)
        if vec.shape[1] != self.dimension:
            logger.warning("Query dimension %d does not match index dimension %d",
                           vec.shape[1], self.dimension)
            return None
        scores, rows = self._index.search(vec, 1)
        row = int(rows[0][0])
        if row < 0:
            return None
        return self._keys[row], float(scores[0][0])

    def __len__(self) -> int:
        return len(self._keys)
