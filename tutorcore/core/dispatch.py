"""Concurrent dispatch of subtasks to domain handlers.

Execution model:
    One asyncio task per subtask, bounded by an `asyncio.Semaphore` of
    `max_in_flight`. The whole fan-out shares the request deadline; subtasks still
    pending when it passes are cancelled and reported as `"Timeout"`.

Isolation:
    A handler exception or an invalid return value becomes a failed
    `DomainResult` for that subtask only. Siblings are never cancelled because of it.

Ordering:
    The returned list is aligned positionally with the input subtasks regardless
    of completion order.
"""

import asyncio
import logging
from typing import Mapping, Sequence

from tutorcore.core.errors import DomainHandlerError, SubtaskTimeout
from tutorcore.core.routing_types import DomainResult, RequestContext, Subtask
from tutorcore.core.trace import RequestScope
from tutorcore.domains.base import DomainHandler, HandlerContext
from tutorcore.memory.models import ComposedMemory


logger = logging.getLogger(__name__)

TIMEOUT_ERROR = "Timeout"


class DispatchCoordinator:
    def __init__(
        self,
        handlers: Mapping[str, DomainHandler],
        fallback: DomainHandler,
        max_in_flight: int = 4,
        timeout_seconds: float = 60,
    ):
        if max_in_flight < 1:
            raise ValueError("max_in_flight must be >= 1")
        self.handlers = dict(handlers)
        self.fallback = fallback
        self.max_in_flight = max_in_flight
        self.timeout_seconds = timeout_seconds

    def resolve(self, subtask: Subtask, scope: RequestScope) -> DomainHandler:
        """Handler registered for `subtask.domain`, or the general fallback with a warning."""
        handler = self.handlers.get(subtask.domain)
        if handler is None:
            scope.warn(f"No handler registered for {subtask.domain!r}, using general handler",
                       subtask=subtask.id)
            return self.fallback
        return handler

    async def _run_one(self, subtask: Subtask, handler: DomainHandler, context: HandlerContext,
                       semaphore: asyncio.Semaphore, scope: RequestScope) -> DomainResult:
        """Run one handler inside the shared semaphore.

        Returns:
            The handler's `DomainResult`, or a failed result when the handler
            raises or returns something else.

        Edge cases:
            - `CancelledError` from the dispatch deadline is not caught here.
        """
        async with semaphore:
            scope.trace.record("Subtask started", {"subtask": subtask.id, "domain": subtask.domain})
            try:
                result = await handler.process(subtask.content, context)
            except Exception as e:
                error = DomainHandlerError(subtask.domain, str(e) or type(e).__name__)
                logger.debug("Handler traceback for %s", subtask.id, exc_info=True)
                scope.warn(f"Subtask {subtask.id} failed: {error}", subtask=subtask.id)
                return DomainResult.failed(str(error))

        if not isinstance(result, DomainResult):
            error = DomainHandlerError(subtask.domain, f"handler returned {type(result).__name__}")
            scope.warn(f"Subtask {subtask.id} failed: {error}", subtask=subtask.id)
            return DomainResult.failed(str(error))

        if not result.success:
            scope.warn(f"Subtask {subtask.id} failed: {result.error}", subtask=subtask.id)

        scope.trace.record("Subtask finished", {"subtask": subtask.id, "success": result.success})
        return result

    async def dispatch(
        self,
        subtasks: Sequence[Subtask],
        memory: ComposedMemory,
        scope: RequestScope,
        request: RequestContext | None = None,
        multimodal_summary: str | None = None,
        timeout: float | None = None,
    ) -> list[DomainResult]:
        """Run every subtask concurrently and return results in subtask order.

        Args:
            subtasks: Ordered subtasks of one request.
            memory: Read-only memory view shared by all handlers.
            scope: Request scope receiving trace steps and warnings.
            request: Original request context, passed through to handlers.
            multimodal_summary: Attachment text, if any.
            timeout: Overall deadline in seconds; defaults to `timeout_seconds`.

        Edge cases:
            - Subtasks still running at the deadline are cancelled and reported
              as failed with `TIMEOUT_ERROR`.
        """
        if not subtasks:
            return []

        deadline = self.timeout_seconds if timeout is None else timeout
        semaphore = asyncio.Semaphore(self.max_in_flight)

        tasks = []
        for subtask in subtasks:
            handler = self.resolve(subtask, scope)
            context = HandlerContext(subtask=subtask, memory=memory, request=request,
                                     multimodal_summary=multimodal_summary)
            tasks.append(asyncio.create_task(self._run_one(subtask, handler, context, semaphore, scope)))

        done, pending = await asyncio.wait(tasks, timeout=max(deadline, 0))

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        results = []
        for subtask, task in zip(subtasks, tasks):
            if task in pending:
                timeout_error = SubtaskTimeout(f"{subtask.id} ({subtask.domain}) exceeded {deadline:.1f}s")
                scope.warn(f"Subtask timed out: {timeout_error}", subtask=subtask.id)
                results.append(DomainResult.failed(TIMEOUT_ERROR))
            else:
                results.append(task.result())
        return results
