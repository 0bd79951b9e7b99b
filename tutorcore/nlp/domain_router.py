"""Domain router producing a domain tag and subtasks for core orchestration.

Detection logic (first rule that yields a tag wins):
1. Keyword evidence: every registered domain is scored by the number of distinct
   keywords (and, for mathematics, arithmetic expressions) found in the prompt
   plus the multimodal summary. A unique best score wins.
2. Ties between equally scored domains are broken by recent session history,
   then by the user's learned `domain_usage`, then by registration order.
3. Without any keyword evidence the model is asked (when `llm_detection` is on).
   Model failures and answers outside the registered set become `"general"`
   with a warning.
4. Otherwise `"general"`.

Forced domains (`/<domain> text`) are resolved by `tutorcore.nlp.commands`
before detection runs.

Decomposition:
- Prompts that do not look compound yield one subtask carrying the prompt
  verbatim, without a model call.
- Compound prompts are split by the model into a JSON array. Any failure falls
  back to the single-subtask form with a warning.

Determinism:
- Keyword detection and the atomic path are deterministic.
- Model-backed paths run with `temperature=0`.
"""

import json
import logging
import re
from typing import Sequence

from tutorcore.core.errors import DecompositionFailure, DomainDetectionFailure
from tutorcore.core.routing_types import RoutingDecision, Subtask
from tutorcore.core.settings import GENERAL_DOMAIN
from tutorcore.core.trace import RequestScope
from tutorcore.llm.provider import InferenceProvider
from tutorcore.memory.models import ComposedMemory
from tutorcore.prompting.prompt_builder import build_decomposition_prompt, build_detection_prompt


logger = logging.getLogger(__name__)


# =========================================================
# KEYWORD TABLES
# =========================================================

DOMAIN_KEYWORDS = {
    "coding": (
        "code", "coding", "program", "programming", "python", "javascript", "typescript",
        "java", "rust", "function", "method", "class", "variable", "loop", "bug", "debug",
        "compile", "compiler", "algorithm", "recursion", "api", "sql", "script",
        "exception", "stack trace", "refactor", "unit test",
    ),
    "mathematics": (
        "math", "mathematics", "equation", "integral", "derivative", "calculate",
        "algebra", "geometry", "probability", "matrix", "fraction", "percent",
        "percentage", "theorem", "prime", "logarithm", "solve for",
    ),
    "vocabulary": (
        "define", "definition", "meaning", "mean", "means", "word", "synonym", "synonyms",
        "antonym", "antonyms", "vocabulary", "pronounce", "pronunciation", "etymology",
    ),
    "grammar": (
        "grammar", "grammatical", "grammatically", "tense", "verb", "noun", "adjective",
        "adverb", "punctuation", "conjugate", "conjugation", "plural", "preposition",
        "subject-verb", "past participle",
    ),
}

ARITHMETIC_PATTERN = re.compile(r"\d+(?:\.\d+)?\s*[-+*/^=×÷]\s*\d+")

COMPOUND_PATTERN = re.compile(
    r"(\band then\b|\bthen\b|\band also\b|\balso\b|;|\n|\?\s+\S|\.\s+[A-Z])",
    re.IGNORECASE,
)
CONJUNCTION_PATTERN = re.compile(r"\s+and\s+", re.IGNORECASE)


def _keyword_pattern(keyword: str) -> re.Pattern:
    return re.compile(r"(?<![\w-])" + re.escape(keyword) + r"(?![\w-])", re.IGNORECASE)


_COMPILED_KEYWORDS = {
    domain: tuple(_keyword_pattern(k) for k in keywords)
    for domain, keywords in DOMAIN_KEYWORDS.items()
}


def score_domains(text: str, domains: Sequence[str]) -> dict[str, int]:
    """Count distinct keyword hits per registered domain."""
    scores = {}
    for domain in domains:
        patterns = _COMPILED_KEYWORDS.get(domain, ())
        score = sum(1 for p in patterns if p.search(text))
        if domain == "mathematics" and ARITHMETIC_PATTERN.search(text):
            score += 2
        scores[domain] = score
    return scores


def looks_compound(prompt: str) -> bool:
    """Cheap structural check for prompts that may contain several requests."""
    stripped = prompt.strip()
    if COMPOUND_PATTERN.search(stripped):
        return True
    return len(CONJUNCTION_PATTERN.split(stripped)) > 1 and len(stripped.split()) >= 8


def _extract_json_array(text: str):
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end <= start:
        raise DecompositionFailure("no JSON array in decomposition output")
    try:
        data = json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        raise DecompositionFailure(f"invalid JSON in decomposition output: {e.msg}") from e
    if not isinstance(data, list):
        raise DecompositionFailure("decomposition output is not a list")
    return data


class DomainRouter:
    def __init__(self, domains: Sequence[str], provider: InferenceProvider | None = None,
                 llm_detection: bool = True):
        self.domains = tuple(domains)
        self.provider = provider
        self.llm_detection = llm_detection

    def is_known(self, domain: str | None) -> bool:
        return domain == GENERAL_DOMAIN or domain in self.domains

    # -----------------------------------------------------
    # DETECTION
    # -----------------------------------------------------

    async def detect(self, prompt: str, memory: ComposedMemory, scope: RequestScope,
                     multimodal_summary: str | None = None) -> str:
        decision = await self.classify(prompt, memory, scope, multimodal_summary)
        return decision.domain

    async def classify(self, prompt: str, memory: ComposedMemory, scope: RequestScope,
                       multimodal_summary: str | None = None) -> RoutingDecision:
        text = prompt if not multimodal_summary else f"{prompt}\n{multimodal_summary}"
        scores = score_domains(text, self.domains)
        best = max(scores.values(), default=0)

        if best > 0:
            candidates = [d for d in self.domains if scores[d] == best]
            if len(candidates) == 1:
                return RoutingDecision(candidates[0], "keywords", scores)
            return self._break_tie(candidates, memory, scores)

        if self.llm_detection and self.provider is not None:
            try:
                domain = await self._detect_with_model(prompt, multimodal_summary)
                return RoutingDecision(domain, "llm", scores)
            except DomainDetectionFailure as e:
                scope.warn(f"Domain detection failed, using general: {e}")
            except Exception as e:
                logger.warning("Detector call failed: %s", e)
                scope.warn("Domain detection failed, using general: detector unavailable")

        return RoutingDecision(GENERAL_DOMAIN, "fallback", scores)

    def _break_tie(self, candidates: list[str], memory: ComposedMemory, scores: dict[str, int]) -> RoutingDecision:
        recent = memory.session.recent_domains()
        by_history = {d: recent.count(d) for d in candidates}
        top = max(by_history.values())
        if top > 0 and list(by_history.values()).count(top) == 1:
            return RoutingDecision(max(by_history, key=by_history.get), "history", scores)

        usage = memory.user.domain_usage()
        by_usage = {d: usage.get(d, 0) for d in candidates}
        top = max(by_usage.values())
        if top > 0 and list(by_usage.values()).count(top) == 1:
            return RoutingDecision(max(by_usage, key=by_usage.get), "usage", scores)

        return RoutingDecision(candidates[0], "keywords", scores)

    async def _detect_with_model(self, prompt: str, multimodal_summary: str | None) -> str:
        result = await self.provider.infer(
            build_detection_prompt(prompt, self.domains, multimodal_summary),
            {"temperature": 0, "purpose": "detect"},
        )
        words = re.findall(r"[a-z_-]+", (result.text or "").lower())
        if not words:
            raise DomainDetectionFailure("detector returned no tag")
        tag = words[0]
        if not self.is_known(tag):
            raise DomainDetectionFailure(f"detector returned unknown tag {tag!r}")
        return tag

    # -----------------------------------------------------
    # DECOMPOSITION
    # -----------------------------------------------------

    async def decompose(self, prompt: str, domain: str, memory: ComposedMemory,
                        scope: RequestScope) -> list[Subtask]:
        """Split `prompt` into one or more subtasks; never returns an empty list."""
        single = [Subtask(id="st-1", domain=domain, content=prompt, originating_prompt=prompt)]

        if self.provider is None or not looks_compound(prompt):
            return single

        try:
            result = await self.provider.infer(
                build_decomposition_prompt(prompt, domain, self.domains, memory.recent_history_text()),
                {"temperature": 0, "purpose": "decompose"},
            )
            subtasks = self._parse_subtasks(result.text or "", prompt, domain, scope)
        except DecompositionFailure as e:
            scope.warn(f"Decomposition failed, using single task: {e}")
            return single
        except Exception as e:
            logger.warning("Decomposition call failed: %s", e)
            scope.warn("Decomposition failed, using single task: decomposer unavailable")
            return single

        return subtasks

    def _parse_subtasks(self, text: str, prompt: str, domain: str, scope: RequestScope) -> list[Subtask]:
        items = _extract_json_array(text)
        subtasks = []
        for item in items:
            if isinstance(item, str):
                content, tag = item.strip(), domain
            elif isinstance(item, dict):
                content = str(item.get("content", "")).strip()
                tag = str(item.get("domain") or domain).strip().lower()
                if not self.is_known(tag):
                    scope.warn(f"Subtask domain {tag!r} is not registered, using {domain}")
                    tag = domain
            else:
                continue
            if not content:
                continue
            subtasks.append(Subtask(
                id=f"st-{len(subtasks) + 1}",
                domain=tag,
                content=content,
                originating_prompt=prompt,
            ))

        if not subtasks:
            raise DecompositionFailure("decomposition produced no subtasks")
        return subtasks
