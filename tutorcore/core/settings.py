"""Runtime configuration for the orchestration engine.

Architectural role:
    Centralizes every tunable used by the gate, memory, cache, router, dispatch and
    aggregation stages in one frozen dataclass that the engine factory passes to each
    component.

Resolution:
    Field defaults are read from the process environment at import time after
    `load_dotenv()`. Tests and embedders construct `EngineConfig(...)` with explicit
    values instead of mutating the environment.

Relevant environment variables:
    - `DOMAINS` (comma-separated registered domain tags)
    - `REQUEST_LIMIT`, `WINDOW_MS`
    - `SESSION_TTL_SECONDS`, `HISTORY_LIMIT`, `SUMMARY_LIMIT`, `MEMORY_DIR`
    - `CACHE_CAPACITY`, `CACHE_TTL_SECONDS`, `SEMANTIC_THRESHOLD`, `SEMANTIC_CACHE`
    - `MAX_IN_FLIGHT`, `REQUEST_TIMEOUT_SECONDS`
    - `SAFETY_DENYLIST` (comma-separated, extends the built-in patterns)
    - `AGGREGATION_SEED`, `LLM_DETECTION`
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


GENERAL_DOMAIN = "general"
DEFAULT_DOMAINS = ("coding", "mathematics", "vocabulary", "grammar")

BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def _csv_env(name: str, default: tuple[str, ...] = ()) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(part.strip().lower() for part in raw.split(",") if part.strip())


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class EngineConfig:
    """Tunables for one engine instance.

    `semantic_threshold` has no derivation beyond the reference default of 0.9 and
    is meant to be tuned per deployment.
    """

    domains: tuple[str, ...] = _csv_env("DOMAINS", DEFAULT_DOMAINS)

    request_limit: int = int(os.getenv("REQUEST_LIMIT", "100"))
    window_ms: int = int(os.getenv("WINDOW_MS", "60000"))
    denylist: tuple[str, ...] = _csv_env("SAFETY_DENYLIST")

    session_ttl_seconds: float = float(os.getenv("SESSION_TTL_SECONDS", "7200"))
    history_limit: int = int(os.getenv("HISTORY_LIMIT", "50"))
    summary_limit: int = int(os.getenv("SUMMARY_LIMIT", "20"))
    memory_dir: str = os.getenv("MEMORY_DIR", os.path.join(BASE_DIR, "data", "memory"))

    cache_capacity: int = int(os.getenv("CACHE_CAPACITY", "500"))
    cache_ttl_seconds: float = float(os.getenv("CACHE_TTL_SECONDS", "3600"))
    semantic_threshold: float = float(os.getenv("SEMANTIC_THRESHOLD", "0.9"))
    semantic_cache_enabled: bool = _bool_env("SEMANTIC_CACHE", True)

    max_in_flight: int = int(os.getenv("MAX_IN_FLIGHT", "4"))
    request_timeout_seconds: float = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "60"))

    aggregation_seed: int = int(os.getenv("AGGREGATION_SEED", "7"))
    llm_detection: bool = _bool_env("LLM_DETECTION", True)
