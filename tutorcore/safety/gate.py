"""Request admission gate: safety check plus per-user sliding-window rate limit.

Blocking behavior:
    `admit` returns `Allow` or `Reject(reason, message)`. Rejection is immediate
    and terminal for the request; there are no retries.

Ordering:
    The safety check runs first, so an unsafe prompt never consumes rate budget.

Rate window:
    Each user owns a deque of admission timestamps (milliseconds). Entries older
    than `window_ms` are pruned on every call; the request is admitted only while
    fewer than `request_limit` timestamps remain, so the deque never exceeds the
    limit after admission. Every `sweep_every` admissions, windows whose
    timestamps have all expired are removed, so idle users do not accumulate.

Concurrency:
    The gate is process-wide. Each user's window has its own `threading.Lock`;
    users never contend with each other beyond the brief window-creation guard.
"""

import enum
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Iterable, Union

from tutorcore.core.errors import RateLimited, UnsafeContent
from tutorcore.safety.filter import find_blocked_term


logger = logging.getLogger(__name__)


class RejectReason(enum.Enum):
    UNSAFE_CONTENT = "UnsafeContent"
    RATE_LIMITED = "RateLimited"


@dataclass(frozen=True)
class Allow:
    allowed: bool = True


@dataclass(frozen=True)
class Reject:
    reason: RejectReason
    message: str
    allowed: bool = False

    def as_error(self) -> Exception:
        if self.reason is RejectReason.UNSAFE_CONTENT:
            return UnsafeContent(self.message)
        return RateLimited(self.message)


Admission = Union[Allow, Reject]


@dataclass
class RateWindow:
    timestamps: deque = field(default_factory=deque)
    lock: threading.Lock = field(default_factory=threading.Lock)


class RequestGate:
    def __init__(
        self,
        request_limit: int = 100,
        window_ms: int = 60_000,
        denylist: Iterable[str] = (),
        clock_ms: Callable[[], float] | None = None,
        sweep_every: int = 1024,
    ):
        if request_limit < 1:
            raise ValueError("request_limit must be >= 1")
        self.request_limit = request_limit
        self.window_ms = window_ms
        self.denylist = tuple(denylist)
        self.sweep_every = max(1, sweep_every)
        self._clock_ms = clock_ms or (lambda: time.monotonic() * 1000.0)
        self._windows: dict[str, RateWindow] = {}
        self._windows_guard = threading.Lock()
        self._admissions = 0

    def _window_for(self, user_id: str) -> RateWindow:
        with self._windows_guard:
            window = self._windows.get(user_id)
            if window is None:
                window = RateWindow()
                self._windows[user_id] = window
            return window

    def check_safety(self, prompt: str) -> Reject | None:
        """Reject `prompt` when it contains a denylisted term.

        Returns:
            `Reject(UNSAFE_CONTENT, ...)` or `None` when the prompt is allowed.
        """
        term = find_blocked_term(prompt, self.denylist)
        if term is None:
            return None
        return Reject(RejectReason.UNSAFE_CONTENT, "Unsafe content detected. Your request cannot be processed.")

    def check_rate(self, user_id: str) -> Reject | None:
        """Record an admission for `user_id` or reject when the window is full.

        Edge cases:
            - Timestamps exactly `window_ms` old have left the window.
            - A window removed by a concurrent `sweep` is looked up again, so an
              admission is never recorded on a discarded window.
        """
        now = self._clock_ms()
        while True:
            window = self._window_for(user_id)
            with window.lock:
                if self._windows.get(user_id) is not window:
                    continue
                _prune(window.timestamps, now, self.window_ms)
                if len(window.timestamps) >= self.request_limit:
                    logger.warning("Rate limit exceeded for user=%s (%d in %d ms)",
                                   user_id, len(window.timestamps), self.window_ms)
                    return Reject(RejectReason.RATE_LIMITED,
                                  "You have exceeded the rate limit. Please try again shortly.")
                window.timestamps.append(now)
                break

        self._admissions += 1
        if self._admissions % self.sweep_every == 0:
            self.sweep(now)
        return None

    def sweep(self, now: float | None = None) -> int:
        """Drop windows whose every timestamp has expired.

        Returns:
            Number of windows removed.
        """
        now = self._clock_ms() if now is None else now
        removed = 0
        with self._windows_guard:
            for user_id, window in list(self._windows.items()):
                with window.lock:
                    _prune(window.timestamps, now, self.window_ms)
                    if not window.timestamps:
                        del self._windows[user_id]
                        removed += 1
        if removed:
            logger.debug("Rate gate swept %d idle windows", removed)
        return removed

    def admit(self, user_id: str, prompt: str) -> Admission:
        """Safety first, then the rate window; unsafe prompts use no budget."""
        return self.check_safety(prompt) or self.check_rate(user_id) or Allow()

    def window_size(self, user_id: str) -> int:
        window = self._windows.get(user_id)
        return len(window.timestamps) if window is not None else 0

    def __len__(self) -> int:
        return len(self._windows)


def _prune(timestamps: deque, now: float, window_ms: int) -> None:
    while timestamps and now - timestamps[0] >= window_ms:
        timestamps.popleft()
