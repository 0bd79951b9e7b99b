"""Tiered memory manager: short-term sessions, long-term user profiles, projects.

Purpose of this abstraction:
    Compose the read-only `ComposedMemory` view for one request and persist the new
    turn afterwards, while keeping concurrent requests for the same session from
    losing each other's updates.

Short-term vs long-term memory:
    - Short-term: `Session.history`, bounded to `history_limit` turns and reset
      after `session_ttl_seconds` of inactivity.
    - Long-term: `UserProfile`, which receives a one-line summary of every expired
      session (archive handoff) and per-domain usage counts on every commit.
    - Project: free-form `ProjectContext.knowledge`, updated only from explicit
      deltas.

Expiry policy:
    An expired session keeps its `session_id`; only its history and timestamps are
    reset. The archived summary is written before the fresh session is persisted.

Serialization discipline:
    Every read-modify-write runs under an `asyncio.Lock` keyed by
    `(user_id, session_id)`, `user_id` or `project_id`. Locks are always taken in
    session -> user -> project order. Different sessions never share a lock.

Side effects:
    Persistent-store I/O runs through `asyncio.to_thread`.
"""

import asyncio
import hashlib
import json
import logging
import threading
import time
import weakref
from collections import Counter
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from tutorcore.memory.models import (
    ComposedMemory,
    ProjectContext,
    Session,
    Turn,
    UserProfile,
    UserProfileDelta,
)
from tutorcore.memory.store import PersistentStore


logger = logging.getLogger(__name__)


def session_record_id(user_id: str, session_id: str) -> str:
    """Collision-free store id for one user's session.

    Both ids are client-supplied, so they are encoded as a JSON pair and hashed
    instead of joined with a separator.
    """
    pair = json.dumps([user_id, session_id], ensure_ascii=False)
    return hashlib.sha256(pair.encode("utf-8")).hexdigest()


def summarize_session(session: Session) -> str:
    """Build the deterministic one-line archive summary for an expired session."""
    started = datetime.fromtimestamp(session.created_at, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")
    domains = Counter(t.domain for t in session.history if t.domain)
    domain_text = ", ".join(f"{d} x{n}" for d, n in sorted(domains.items())) or "none"
    first_prompt = session.history[0].prompt[:80] if session.history else ""
    return (
        f"Session {session.session_id} ({started} UTC): {len(session.history)} turns; "
        f"domains: {domain_text}; opened with: {first_prompt!r}"
    )


class MemoryStore:
    def __init__(
        self,
        store: PersistentStore,
        session_ttl_seconds: float = 7200,
        history_limit: int = 50,
        summary_limit: int = 20,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.session_ttl_seconds = session_ttl_seconds
        self.history_limit = history_limit
        self.summary_limit = summary_limit
        self._clock = clock
        # Entries vanish once no request holds or waits on the lock.
        self._locks: "weakref.WeakValueDictionary[tuple[str, ...], asyncio.Lock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _lock_for(self, *key: str) -> asyncio.Lock:
        """Return the lock for `key`, creating it on first use.

        The caller keeps the returned lock alive for as long as it holds or
        waits on it, so concurrent requests for one key always share one lock.
        """
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[key] = lock
            return lock

    @asynccontextmanager
    async def _locked(self, *key: str):
        async with self._lock_for(*key):
            yield

    async def _read(self, kind: str, record_id: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(self.store.read, kind, record_id)

    async def _write(self, kind: str, record_id: str, record: dict[str, Any]) -> None:
        await asyncio.to_thread(self.store.write, kind, record_id, record)

    # ---------------------------------------------------------
    # READ PATH
    # ---------------------------------------------------------

    async def load(self, user_id: str, session_id: str, project_id: str | None = None) -> ComposedMemory:
        """Assemble the composed memory view for one request.

        Args:
            user_id: Owner of the session and long-term profile.
            session_id: Conversation identifier.
            project_id: Optional project whose context should be attached.

        Returns:
            A frozen `ComposedMemory`; missing records are created lazily in memory
            and persisted by the next `commit`.

        Edge cases:
            - Expired sessions come back with empty history and
              `expired_session=True`; their summary is archived to the profile.
            - A session record owned by a different user is ignored.
        """
        now = self._clock()
        sid = session_record_id(user_id, session_id)
        expired = False

        async with self._locked("session", user_id, session_id):
            session = await self._load_session(sid, user_id, session_id, now)
            if session.history and session.is_expired(self.session_ttl_seconds, now):
                expired = True
                logger.info("Session %s for user %s expired; archiving %d turns",
                            session_id, user_id, len(session.history))
                async with self._locked("user", user_id):
                    profile = await self._load_profile(user_id)
                    profile = self._append_summary(profile, summarize_session(session))
                    await self._write("user", user_id, profile.to_dict())
                session = Session.fresh(user_id, session_id, now)
                await self._write("session", sid, session.to_dict())

        async with self._locked("user", user_id):
            profile = await self._load_profile(user_id)

        project = None
        if project_id:
            async with self._locked("project", project_id):
                project = await self._load_project(project_id)

        return ComposedMemory(session=session, user=profile, project=project, expired_session=expired)

    async def _load_session(self, sid: str, user_id: str, session_id: str, now: float) -> Session:
        data = await self._read("session", sid)
        if data is None:
            return Session.fresh(user_id, session_id, now)
        try:
            session = Session.from_dict(data)
        except (KeyError, TypeError, ValueError):
            logger.exception("Corrupt session record %s; starting fresh", sid)
            return Session.fresh(user_id, session_id, now)
        if session.user_id and session.user_id != user_id:
            logger.warning("Session %s belongs to another user; starting fresh", session_id)
            return Session.fresh(user_id, session_id, now)
        return session

    async def _load_profile(self, user_id: str) -> UserProfile:
        data = await self._read("user", user_id)
        if data is None:
            return UserProfile(user_id=user_id)
        try:
            return UserProfile.from_dict(data)
        except (KeyError, TypeError, ValueError):
            logger.exception("Corrupt user record %s; starting fresh", user_id)
            return UserProfile(user_id=user_id)

    async def _load_project(self, project_id: str) -> ProjectContext:
        data = await self._read("project", project_id)
        if data is None:
            return ProjectContext(project_id=project_id)
        try:
            return ProjectContext.from_dict(data)
        except (KeyError, TypeError, ValueError):
            logger.exception("Corrupt project record %s; starting fresh", project_id)
            return ProjectContext(project_id=project_id)

    # ---------------------------------------------------------
    # WRITE PATH
    # ---------------------------------------------------------

    async def commit(
        self,
        user_id: str,
        session_id: str,
        turn: Turn,
        project_id: str | None = None,
        user_delta: UserProfileDelta | None = None,
        project_delta: Mapping[str, Any] | None = None,
    ) -> None:
        """Persist one completed turn plus optional long-term/project deltas.

        The session is re-read under its lock, so two concurrent commits for the
        same session both land in history in lock-acquisition order.
        """
        now = self._clock()
        sid = session_record_id(user_id, session_id)

        async with self._locked("session", user_id, session_id):
            session = await self._load_session(sid, user_id, session_id, now)
            if session.is_expired(self.session_ttl_seconds, now):
                session = Session.fresh(user_id, session_id, now)
            session = session.with_turn(turn, self.history_limit, now)
            await self._write("session", sid, session.to_dict())

            async with self._locked("user", user_id):
                profile = await self._load_profile(user_id)
                profile = self._apply_user_delta(profile, turn, user_delta)
                await self._write("user", user_id, profile.to_dict())

        if project_id and project_delta:
            async with self._locked("project", project_id):
                project = await self._load_project(project_id)
                knowledge = dict(project.knowledge)
                knowledge.update(project_delta)
                await self._write("project", project_id, replace(project, knowledge=knowledge).to_dict())

    async def reset_session(self, user_id: str, session_id: str) -> None:
        """Drop short-term history without archiving it.

        The session record is deleted; the next `load` starts a fresh session
        under the same id. The user profile is left untouched.
        """
        async with self._locked("session", user_id, session_id):
            await asyncio.to_thread(self.store.delete, "session", session_record_id(user_id, session_id))

    def _apply_user_delta(self, profile: UserProfile, turn: Turn, delta: UserProfileDelta | None) -> UserProfile:
        preferences = dict(profile.preferences)
        patterns = dict(profile.learned_patterns)

        if turn.domain:
            usage = Counter(dict(patterns.get("domain_usage", {}) or {}))
            usage[turn.domain] += 1
            patterns["domain_usage"] = dict(usage)

        if delta is not None:
            preferences.update(delta.preferences)
            patterns.update(delta.learned_patterns)

        profile = replace(profile, preferences=preferences, learned_patterns=patterns)
        if delta is not None and delta.summary:
            profile = self._append_summary(profile, delta.summary)
        return profile

    def _append_summary(self, profile: UserProfile, summary: str) -> UserProfile:
        history = (profile.summarized_history + (summary,))[-self.summary_limit:]
        return replace(profile, summarized_history=history)
