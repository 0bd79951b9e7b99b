"""Embedding model bootstrap shared by the semantic cache and the inference provider.

Architectural role:
    Provides a single shared `SentenceTransformer` instance used for prompt
    vectorization. The loader decides CPU vs CUDA execution once and reuses the
    initialized model across subsequent calls.

Design intent:
    - Keep embedding initialization centralized.
    - Avoid duplicated model loads across modules.
    - Apply a conservative VRAM gate before enabling GPU execution.
"""

import logging
import os
import threading

from tutorcore.llm.provider_config import EMBED_MODEL


logger = logging.getLogger(__name__)

_model = None
_model_lock = threading.Lock()


def has_enough_vram(min_required_mb: int = 800) -> bool:
    """Return whether enough free GPU memory is available for embeddings."""
    import torch

    if not torch.cuda.is_available():
        return False

    free_mem, total_mem = torch.cuda.mem_get_info()
    free_mb = free_mem / 1024 / 1024

    logger.info("Free VRAM: %.0f MB", free_mb)

    return free_mb > min_required_mb


def get_model():
    """Load and cache the shared embedding model instance.

    Behavior:
        - Singleton caching via module-global `_model`, guarded by a lock so
          concurrent first calls load the model once.
        - Enables CUDA only when `has_enough_vram()` returns `True`.
        - Forces CPU mode by setting `CUDA_VISIBLE_DEVICES=""` otherwise.
    """
    global _model

    if _model is not None:
        return _model

    with _model_lock:
        if _model is not None:
            return _model

        logger.info("Loading embedding model %s", EMBED_MODEL)

        try:
            use_gpu = has_enough_vram()
        except (ImportError, RuntimeError):
            use_gpu = False

        if not use_gpu:
            logger.info("Insufficient VRAM detected. Forcing CPU mode.")
            os.environ["CUDA_VISIBLE_DEVICES"] = ""

        from sentence_transformers import SentenceTransformer

        device = "cuda" if use_gpu else "cpu"
        logger.info("Loading embeddings on %s", device.upper())

        _model = SentenceTransformer(EMBED_MODEL, device=device)

    return _model


def encode(text: str, prefix: str = "query: ") -> list[float]:
    """Embed one text as a normalized vector (e5 models expect the `query: ` prefix)."""
    model = get_model()
    vector = model.encode([prefix + (text or "")], normalize_embeddings=True)[0]
    return [float(x) for x in vector]
