"""Memory record types.

Short-term vs long-term memory:
    - `Session` holds the bounded turn history of one conversation and expires after
      an inactivity TTL.
    - `UserProfile` survives across sessions: preferences, learned patterns and
      one-line summaries of archived sessions.
    - `ProjectContext` is free-form knowledge attached when a request names a project.

`ComposedMemory` is the frozen per-request view handed to the router, handlers and
aggregator. It is rebuilt on every load and never mutated in place; writes go
through `MemoryStore.commit`.

Serialization:
    Each record converts to/from plain JSON dicts for the persistent store.
"""

import time
from collections import Counter
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Mapping


@dataclass(frozen=True)
class Turn:
    prompt: str
    response: str
    timestamp: float
    domain: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "prompt": self.prompt,
            "response": self.response,
            "timestamp": self.timestamp,
            "domain": self.domain,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Turn":
        return cls(
            prompt=str(data.get("prompt", "")),
            response=str(data.get("response", "")),
            timestamp=float(data.get("timestamp", 0.0)),
            domain=data.get("domain"),
        )


@dataclass(frozen=True)
class Session:
    session_id: str
    user_id: str
    created_at: float
    last_active_at: float
    history: tuple[Turn, ...] = ()

    @classmethod
    def fresh(cls, user_id: str, session_id: str, now: float | None = None) -> "Session":
        now = time.time() if now is None else now
        return cls(session_id=session_id, user_id=user_id, created_at=now, last_active_at=now)

    def is_expired(self, ttl_seconds: float, now: float) -> bool:
        return now - self.last_active_at > ttl_seconds

    def with_turn(self, turn: Turn, limit: int, now: float) -> "Session":
        history = (self.history + (turn,))[-limit:] if limit > 0 else ()
        return replace(self, history=history, last_active_at=now)

    def recent_domains(self, window: int = 5) -> list[str]:
        return [t.domain for t in self.history[-window:] if t.domain]

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "created_at": self.created_at,
            "last_active_at": self.last_active_at,
            "history": [t.to_dict() for t in self.history],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Session":
        return cls(
            session_id=str(data["session_id"]),
            user_id=str(data.get("user_id", "")),
            created_at=float(data.get("created_at", 0.0)),
            last_active_at=float(data.get("last_active_at", 0.0)),
            history=tuple(Turn.from_dict(t) for t in data.get("history", [])),
        )


@dataclass(frozen=True)
class UserProfile:
    user_id: str
    preferences: Mapping[str, Any] = field(default_factory=dict)
    learned_patterns: Mapping[str, Any] = field(default_factory=dict)
    summarized_history: tuple[str, ...] = ()

    def domain_usage(self) -> Counter:
        return Counter(dict(self.learned_patterns.get("domain_usage", {}) or {}))

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "preferences": dict(self.preferences),
            "learned_patterns": dict(self.learned_patterns),
            "summarized_history": list(self.summarized_history),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UserProfile":
        return cls(
            user_id=str(data["user_id"]),
            preferences=dict(data.get("preferences", {})),
            learned_patterns=dict(data.get("learned_patterns", {})),
            summarized_history=tuple(str(s) for s in data.get("summarized_history", [])),
        )


@dataclass(frozen=True)
class ProjectContext:
    project_id: str
    knowledge: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"project_id": self.project_id, "knowledge": dict(self.knowledge)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProjectContext":
        return cls(project_id=str(data["project_id"]), knowledge=dict(data.get("knowledge", {})))


@dataclass(frozen=True)
class UserProfileDelta:
    """Partial update merged into a `UserProfile` on commit."""

    preferences: Mapping[str, Any] = field(default_factory=dict)
    learned_patterns: Mapping[str, Any] = field(default_factory=dict)
    summary: str | None = None


@dataclass(frozen=True)
class ComposedMemory:
    session: Session
    user: UserProfile
    project: ProjectContext | None = None
    expired_session: bool = False

    @property
    def history(self) -> tuple[Turn, ...]:
        return self.session.history

    def preferences(self) -> Mapping[str, Any]:
        return MappingProxyType(dict(self.user.preferences))

    def recent_history_text(self, turns: int = 3, width: int = 120) -> str:
        lines = []
        for turn in self.session.history[-turns:]:
            lines.append(f"User: {turn.prompt[:width]} -> Assistant: {turn.response[:width]}")
        return "\n".join(lines)
