"""Shared fixtures: a scripted inference provider and engine wiring."""

import hashlib

import pytest

from tutorcore.core.engine import build_engine
from tutorcore.core.settings import EngineConfig
from tutorcore.core.trace import RequestScope
from tutorcore.llm.provider import InferenceResult
from tutorcore.memory.models import ComposedMemory, Session, Turn, UserProfile
from tutorcore.memory.store import InMemoryStore


class FakeProvider:
    """Deterministic provider that replays scripted answers per call purpose.

    `scripts[purpose]` is a list consumed in order; an `Exception` instance in the
    list is raised instead of answered. Unscripted calls answer
    `"<purpose> answer"`. Embeddings come from `vectors` when the text is listed
    there, otherwise from a hash of the text.
    """

    def __init__(self, scripts=None, vectors=None, dim: int = 16):
        self.scripts = {k: list(v) for k, v in (scripts or {}).items()}
        self.vectors = dict(vectors or {})
        self.dim = dim
        self.calls: list[tuple[str, dict]] = []
        self.embed_calls: list[str] = []

    async def infer(self, prompt, options=None):
        options = dict(options or {})
        self.calls.append((prompt, options))
        purpose = options.get("purpose", "answer")
        queue = self.scripts.get(purpose)
        if queue:
            reply = queue.pop(0)
            if isinstance(reply, Exception):
                raise reply
            return InferenceResult(text=reply)
        return InferenceResult(text=f"{purpose} answer")

    async def embed(self, text):
        self.embed_calls.append(text)
        if text in self.vectors:
            return list(self.vectors[text])
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return [(b / 127.5) - 1.0 for b in digest[: self.dim]]

    def purposes(self) -> list[str]:
        return [opts.get("purpose", "answer") for _, opts in self.calls]


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_memory(domains=(), usage=None, user_id="u1", session_id="s1") -> ComposedMemory:
    history = tuple(Turn(prompt=f"p{i}", response=f"r{i}", timestamp=float(i), domain=d)
                    for i, d in enumerate(domains))
    session = Session(session_id=session_id, user_id=user_id, created_at=0.0,
                      last_active_at=0.0, history=history)
    patterns = {"domain_usage": dict(usage)} if usage else {}
    return ComposedMemory(session=session, user=UserProfile(user_id=user_id, learned_patterns=patterns))


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def scope():
    return RequestScope.create("test-request")


@pytest.fixture
def memory():
    return make_memory()


@pytest.fixture
def config(tmp_path):
    return EngineConfig(
        memory_dir=str(tmp_path / "memory"),
        request_timeout_seconds=5,
        request_limit=100,
        llm_detection=True,
    )


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def engine(config, provider, store):
    return build_engine(config=config, provider=provider, store=store)
