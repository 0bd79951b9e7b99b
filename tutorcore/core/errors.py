"""Error taxonomy for the orchestration pipeline.

Architectural role:
    Names every failure class the engine distinguishes so each stage can decide
    whether a failure is terminal, recoverable, or critical.

Propagation policy:
    - `UnsafeContent` / `RateLimited`: terminal, produced by the request gate
      before any cache, memory, or inference work happens.
    - `DomainDetectionFailure`: recovered by the router as `"general"`.
    - `DecompositionFailure`: recovered by the router as a single subtask.
    - `DomainHandlerError` / `SubtaskTimeout`: recovered per subtask by the
      dispatch coordinator and surfaced as `success=False` results.
    - `CriticalOrchestrationError`: anything else; caught once at the engine's top
      level and converted to a generic user-facing apology.
"""


class OrchestrationError(Exception):
    """Base class for all orchestration failures."""


class UnsafeContent(OrchestrationError):
    """Prompt rejected by the safety denylist."""


class RateLimited(OrchestrationError):
    """User exceeded the sliding-window request budget."""


class DomainDetectionFailure(OrchestrationError):
    """Detector raised or produced a tag outside the registered set."""


class DecompositionFailure(OrchestrationError):
    """Decomposition output could not be turned into subtasks."""


class DomainHandlerError(OrchestrationError):
    """A domain handler raised or returned an invalid result."""

    def __init__(self, domain: str, message: str):
        super().__init__(f"{domain}: {message}")
        self.domain = domain


class SubtaskTimeout(OrchestrationError):
    """A subtask did not finish before the request deadline."""


class CriticalOrchestrationError(OrchestrationError):
    """Unexpected failure outside the recoverable categories."""
