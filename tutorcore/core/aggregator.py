"""Merge per-subtask results into one user-facing answer.

Composition rules:
    - Successful outputs are combined in subtask order.
    - Failed subtasks are always acknowledged in a deterministic note appended to
      the answer; error details beyond "timed out"/"failed" are not shown.
    - A single successful result with no failures is returned as-is, without a
      synthesis call.
    - Several successful results are synthesized by the provider with
      `temperature=0` and a fixed seed. If synthesis fails, the ordered
      composition is used instead and a warning is recorded.
"""

import json
import logging
from typing import Sequence

from tutorcore.core.dispatch import TIMEOUT_ERROR
from tutorcore.core.routing_types import DomainResult, Subtask
from tutorcore.core.trace import RequestScope
from tutorcore.llm.provider import InferenceProvider
from tutorcore.memory.models import ComposedMemory
from tutorcore.prompting.prompt_builder import build_aggregation_prompt


logger = logging.getLogger(__name__)

NOTHING_COMPLETED = "I'm sorry, I could not complete any part of your request."


def output_text(result: DomainResult) -> str:
    """Text form of a handler output; non-string outputs are JSON-encoded."""
    if isinstance(result.output, str):
        return result.output.strip()
    return json.dumps(result.output, ensure_ascii=False, default=str)


def failure_note(pairs: Sequence[tuple[int, Subtask, DomainResult]]) -> str:
    """List failed parts by position and domain without their error text.

    Args:
        pairs: `(position, subtask, result)` for every failed subtask.

    Returns:
        A user-facing note, or an empty string when nothing failed.
    """
    if not pairs:
        return ""
    lines = ["Some parts of your request could not be completed:"]
    for position, subtask, result in pairs:
        reason = "timed out" if result.error == TIMEOUT_ERROR else "failed"
        lines.append(f"- Part {position} ({subtask.domain}): {subtask.content[:80]} [{reason}]")
    return "\n".join(lines)


def compose_ordered(pairs: Sequence[tuple[int, Subtask, DomainResult]]) -> str:
    """Numbered concatenation used when synthesis is skipped or fails."""
    if len(pairs) == 1:
        return output_text(pairs[0][2])
    return "\n\n".join(f"{position}. {output_text(result)}" for position, _, result in pairs)


class ResponseAggregator:
    def __init__(self, provider: InferenceProvider, seed: int = 7):
        self.provider = provider
        self.seed = seed

    async def aggregate(
        self,
        original_prompt: str,
        subtasks: Sequence[Subtask],
        results: Sequence[DomainResult],
        memory: ComposedMemory,
        scope: RequestScope,
    ) -> str:
        """Merge aligned subtask results into the final answer.

        Returns:
            One successful output as-is, a synthesized answer for several, or
            `NOTHING_COMPLETED` when every part failed. Failed parts are always
            acknowledged in a trailing note.

        Raises:
            ValueError: `subtasks` and `results` differ in length.
        """
        if len(subtasks) != len(results):
            raise ValueError("results must align with subtasks")

        indexed = [(i + 1, s, r) for i, (s, r) in enumerate(zip(subtasks, results))]
        succeeded = [p for p in indexed if p[2].success]
        failed = [p for p in indexed if not p[2].success]
        note = failure_note(failed)

        scope.trace.record("Aggregation", {"succeeded": len(succeeded), "failed": len(failed)})

        if not succeeded:
            return NOTHING_COMPLETED + "\n\n" + note

        if len(succeeded) == 1:
            body = output_text(succeeded[0][2])
        else:
            body = await self._synthesize(original_prompt, succeeded, memory, scope)

        return body if not note else f"{body}\n\n{note}"

    async def _synthesize(self, original_prompt, succeeded, memory: ComposedMemory, scope: RequestScope) -> str:
        """Deterministic synthesis call (temperature 0, fixed seed).

        Edge cases:
            - Provider errors and empty replies fall back to `compose_ordered`.
        """
        project = memory.project.knowledge if memory.project else None
        prompt = build_aggregation_prompt(
            original_prompt,
            [(s.domain, s.content, output_text(r)) for _, s, r in succeeded],
            history_text=memory.recent_history_text(),
            preferences=memory.preferences(),
            project_knowledge=project,
        )
        try:
            result = await self.provider.infer(prompt, {"temperature": 0, "seed": self.seed, "purpose": "aggregate"})
            text = (result.text or "").strip()
            if not text:
                raise ValueError("empty synthesis")
            return text
        except Exception as e:
            logger.warning("Synthesis failed: %s", e)
            scope.warn("Synthesis failed, returning parts in order")
            return compose_ordered(succeeded)
