"""Domain handler contract.

A handler receives the text of one subtask plus a read-only `HandlerContext` and
returns a `DomainResult`. Handlers may also raise; the dispatch coordinator turns
any exception into a failed result for that subtask only.
"""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from tutorcore.core.routing_types import DomainResult, RequestContext, Subtask
from tutorcore.memory.models import ComposedMemory


@dataclass(frozen=True)
class HandlerContext:
    subtask: Subtask
    memory: ComposedMemory
    request: RequestContext | None = None
    multimodal_summary: str | None = None


@runtime_checkable
class DomainHandler(Protocol):
    async def process(self, task_content: str, context: HandlerContext) -> DomainResult:
        ...
