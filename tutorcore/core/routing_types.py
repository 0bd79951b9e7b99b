"""Request, routing and result data contracts for `tutorcore.core.engine`.

Architectural role:
    Defines the structural types exchanged between the HTTP/CLI adapters, the
    router, the dispatch coordinator and the aggregator.

Control-flow interaction:
    - Adapters build a `RequestContext` (optional fields are explicit `None`).
    - `DomainRouter` returns a `RoutingDecision` and a list of `Subtask`s.
    - Domain handlers return one `DomainResult` per subtask.
    - The engine returns an `OrchestrationResult`.

Determinism:
    Purely structural; no behavior beyond small conversion helpers.
"""

from dataclasses import dataclass, field
from typing import Any

from tutorcore.core.trace import TraceStep


@dataclass(frozen=True)
class MultimodalInput:
    """Raw non-text input attached to a request.

    Attributes:
        type: One of `text`, `image`, `document`, `audio`.
        data: Inline text, a `data:` URL, or a path/`file://` URL under the upload dir.
        mime_type: Optional MIME hint used to pick the extractor.
    """

    type: str
    data: str
    mime_type: str | None = None


@dataclass(frozen=True)
class RequestContext:
    user_id: str
    session_id: str
    project_id: str | None = None
    multimodal_input: MultimodalInput | None = None


@dataclass(frozen=True)
class RoutingDecision:
    """Outcome of domain detection.

    Attributes:
        domain: Registered domain tag or `"general"`.
        reason: Which rule produced the tag (`prefix`, `keywords`, `history`,
            `usage`, `llm`, `fallback`).
        scores: Keyword evidence per domain, kept for the trace.
    """

    domain: str
    reason: str
    scores: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class Subtask:
    id: str
    domain: str
    content: str
    originating_prompt: str


@dataclass(frozen=True)
class DomainResult:
    """Uniform envelope returned by every domain handler."""

    success: bool
    output: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, output: Any) -> "DomainResult":
        return cls(success=True, output=output)

    @classmethod
    def failed(cls, error: str) -> "DomainResult":
        return cls(success=False, error=error)


@dataclass
class OrchestrationResult:
    """Final payload returned to adapters.

    `source` is `pipeline`, `cache`, `hook`, `gate`, `command` or `error`.
    """

    response: str
    trace: list[TraceStep]
    warnings: list[str]
    errors: list[str]
    source: str
    request_id: str
    domain: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "response": self.response,
            "trace": [step.to_dict() for step in self.trace],
            "warnings": list(self.warnings),
            "errors": list(self.errors),
            "source": self.source,
            "domain": self.domain,
            "requestId": self.request_id,
        }
