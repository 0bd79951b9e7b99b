"""Inference provider abstraction used by the orchestration engine.

Architectural role:
    Every model call made by detection, decomposition, domain handlers and
    aggregation goes through an `InferenceProvider`. The engine never talks to
    `tutorcore.llm.client` directly, which keeps tests free of network access.

Concurrency:
    `HttpInferenceProvider` runs the blocking `requests`/`sentence-transformers`
    calls on worker threads via `asyncio.to_thread`, so the event loop stays free
    while subtasks are in flight.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Protocol, runtime_checkable

from tutorcore.llm.provider_config import PROVIDER
from tutorcore.llm.service import generate_answer
from tutorcore.memory import embedding_model


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InferenceResult:
    text: str
    model: str | None = None


@runtime_checkable
class InferenceProvider(Protocol):
    async def infer(self, prompt: str, options: Mapping[str, Any] | None = None) -> InferenceResult:
        ...

    async def embed(self, text: str) -> list[float]:
        ...


class HttpInferenceProvider:
    """Provider backed by the configured chat-completions endpoint and local embeddings."""

    def __init__(self, provider: str = PROVIDER):
        self.provider = provider

    async def infer(self, prompt: str, options: Mapping[str, Any] | None = None) -> InferenceResult:
        purpose = (options or {}).get("purpose", "answer")
        logger.debug("Inference call via %s (purpose=%s, %d chars)", self.provider, purpose, len(prompt))
        text = await asyncio.to_thread(generate_answer, prompt, options, self.provider)
        return InferenceResult(text=text, model=(options or {}).get("model"))

    async def embed(self, text: str) -> list[float]:
        return await asyncio.to_thread(embedding_model.encode, text)
