"""Request-scoped decision tracing.

Architectural role:
    Every pipeline stage records entry, exit and branch decisions on the
    `TraceRecorder` owned by the current `RequestScope`. The engine drains the
    recorder once when it builds the response so operators can replay how a request
    was handled.

Scope:
    One recorder per request. Nothing here is module-global, so concurrent requests
    never interleave their steps.

Determinism:
    Sequence numbers are assigned in call order; timestamps come from `time.time()`.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TraceStep:
    sequence: int
    label: str
    detail: dict[str, Any]
    timestamp: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "sequence": self.sequence,
            "label": self.label,
            "detail": self.detail,
            "timestamp": self.timestamp,
        }


class TraceRecorder:
    """Append-only step log for one in-flight request."""

    def __init__(self, request_id: str = ""):
        self.request_id = request_id
        self._steps: list[TraceStep] = []
        self._drained = False

    def record(self, label: str, detail: dict[str, Any] | None = None) -> TraceStep:
        """Append one step and echo it to the debug log.

        Recording after `drain` is allowed; late steps are kept for a second drain
        but are not part of the response that was already built.
        """
        step = TraceStep(
            sequence=len(self._steps) + 1,
            label=label,
            detail=dict(detail or {}),
            timestamp=time.time(),
        )
        self._steps.append(step)
        logger.debug("trace request=%s #%d %s %s", self.request_id, step.sequence, label, step.detail)
        return step

    def drain(self) -> list[TraceStep]:
        self._drained = True
        return list(self._steps)

    @property
    def drained(self) -> bool:
        return self._drained

    def __len__(self) -> int:
        return len(self._steps)


def format_trace(steps: list[TraceStep]) -> str:
    """Render steps as numbered human-readable lines for CLI/operator output."""
    lines = []
    for step in steps:
        stamp = datetime.fromtimestamp(step.timestamp, tz=timezone.utc).isoformat()
        lines.append(f"{step.sequence}. [{stamp}] {step.label} - {step.detail}")
    return "\n".join(lines)


@dataclass
class RequestScope:
    """Per-request state threaded through every stage.

    Holds the trace recorder plus the warning/error lists returned to callers.
    Stages append to `warnings` for recovered failures and to `errors` for
    failures the user should know about.
    """

    request_id: str
    trace: TraceRecorder
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.monotonic)
    embedding: list[float] | None = None

    @classmethod
    def create(cls, request_id: str) -> "RequestScope":
        return cls(request_id=request_id, trace=TraceRecorder(request_id))

    def warn(self, message: str, **detail: Any) -> None:
        logger.warning("request=%s %s", self.request_id, message)
        self.warnings.append(message)
        self.trace.record("Warning", {"message": message, **detail})

    def fail(self, message: str, **detail: Any) -> None:
        self.errors.append(message)
        self.trace.record("Error", {"message": message, **detail})

    def elapsed(self) -> float:
        return time.monotonic() - self.started_at
