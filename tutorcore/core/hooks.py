"""Pre/post-processing hook pipeline.

Architectural role:
    Extension points around the orchestration pipeline. `PRE_PROCESS` hooks run
    after the gate and before memory load; `POST_PROCESS` hooks run after the
    turn has been committed. The response cache is implemented as one hook per
    phase (`tutorcore.cache.hooks`).

Ordering:
    Handlers run in registration order. The first handler that returns
    `HookOutcome(handled=True, ...)` short-circuits the rest of that phase; for
    `PRE_PROCESS` the engine then skips the pipeline and returns the hook's result.

Failure handling:
    A handler that raises is logged, recorded as a warning on the request scope,
    and skipped. Later handlers still run.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from tutorcore.core.routing_types import OrchestrationResult, RequestContext
from tutorcore.core.trace import RequestScope


logger = logging.getLogger(__name__)


class HookPhase(Enum):
    PRE_PROCESS = "preProcess"
    POST_PROCESS = "postProcess"


@dataclass(frozen=True)
class HookOutcome:
    handled: bool = False
    result: Any = None


CONTINUE = HookOutcome()


@dataclass
class HookPayload:
    """Mutable view of the request passed to every hook in a phase.

    `cacheable` is cleared by the engine for requests whose answer must not be
    served from or written to the response cache.
    """

    prompt: str
    context: RequestContext
    scope: RequestScope
    cache_key: str | None = None
    cacheable: bool = True
    domain: str | None = None
    result: OrchestrationResult | None = None


Hook = Callable[[HookPayload], Awaitable[HookOutcome | None]]


class HookPipeline:
    def __init__(self):
        self._registry: dict[HookPhase, list[tuple[str, Hook]]] = {phase: [] for phase in HookPhase}

    def register(self, phase: HookPhase, handler: Hook, name: str | None = None) -> None:
        if not isinstance(phase, HookPhase):
            raise TypeError(f"phase must be a HookPhase, got {phase!r}")
        hook_name = name or getattr(handler, "__name__", repr(handler))
        self._registry[phase].append((hook_name, handler))
        logger.debug("Registered %s hook %s", phase.value, hook_name)

    def names(self, phase: HookPhase) -> list[str]:
        return [name for name, _ in self._registry[phase]]

    async def run(self, phase: HookPhase, payload: HookPayload) -> HookOutcome:
        scope = payload.scope
        for name, handler in self._registry[phase]:
            scope.trace.record("Hook", {"phase": phase.value, "hook": name})
            try:
                outcome = await handler(payload)
            except Exception as e:
                logger.warning("Hook %s (%s) failed: %s", name, phase.value, e, exc_info=True)
                scope.warn(f"Hook {name} failed and was skipped", phase=phase.value)
                continue

            if outcome is not None and outcome.handled:
                scope.trace.record("Hook handled", {"phase": phase.value, "hook": name})
                return outcome

        return CONTINUE
