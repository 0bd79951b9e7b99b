"""Prompt assembly helpers used by core orchestration.

This module is intentionally narrow: it only builds prompt strings from already
routed inputs. Domain detection, decomposition parsing, memory access and model
invocation happen outside this module.

Design constraints:
    - Deterministic construction for identical inputs.
    - Fixed ordering of prompt components per prompt kind.
    - No hidden side effects (no I/O, no global state mutation).
    - No assistant identity text; `llm.service` sends it once as the system
      message.

Prompt safety model:
    - Safety is instruction-led, not parser-enforced.
    - User text and injected context are interpolated as raw strings.
    - The request gate is responsible for rejecting unsafe prompts before any
      builder runs.
"""

import json
from typing import Iterable, Mapping, Sequence


# =========================================================
# DOMAIN INSTRUCTIONS
# =========================================================
# One instruction block per registered domain. Unknown domains use the
# general block.

DOMAIN_INSTRUCTIONS = {
    "coding": (
        "You are a programming tutor.\n"
        "Explain the concept, then show a short, correct code example.\n"
        "Mention common mistakes when relevant.\n"
    ),
    "mathematics": (
        "You are a mathematics tutor.\n"
        "Solve step by step and state the final result on its own line.\n"
    ),
    "vocabulary": (
        "You are a vocabulary tutor.\n"
        "Give the definition, part of speech, one example sentence and synonyms.\n"
    ),
    "grammar": (
        "You are a grammar tutor.\n"
        "Identify the grammatical issue, give the corrected form, and explain the rule.\n"
    ),
    "general": (
        "You are a technical tutor.\n"
        "Answer using your general knowledge.\n"
        "Provide a clear and structured explanation.\n"
    ),
}


def _context_block(history_text: str, preferences: Mapping, project_knowledge: Mapping | None,
                   multimodal_summary: str | None) -> str:
    parts = []
    if history_text:
        parts.append("Recent conversation:\n" + history_text)
    if preferences:
        parts.append("User preferences:\n" + "\n".join(f"- {k}: {v}" for k, v in sorted(preferences.items())))
    if project_knowledge:
        parts.append("Project context:\n" + json.dumps(dict(project_knowledge), sort_keys=True, ensure_ascii=False))
    if multimodal_summary:
        parts.append("Attached input:\n" + multimodal_summary)
    return "\n\n".join(parts)


# =========================================================
# DOMAIN PROMPT
# =========================================================
# Prompt component order:
#   1) Domain instruction block
#   2) Context block (history, preferences, project, attachment), if any
#   3) Task text
#   4) Assistant cue ("Answer:")

def build_domain_prompt(
    domain: str,
    task: str,
    history_text: str = "",
    preferences: Mapping | None = None,
    project_knowledge: Mapping | None = None,
    multimodal_summary: str | None = None,
) -> str:
    """Build the handler prompt for one subtask.

    Edge cases:
        - Unknown `domain` falls back to the general instruction block.
        - Empty context sections are omitted entirely.
    """
    instructions = DOMAIN_INSTRUCTIONS.get(domain, DOMAIN_INSTRUCTIONS["general"])
    context = _context_block(history_text, preferences or {}, project_knowledge, multimodal_summary)

    return (
        instructions +
        ("\n" + context + "\n" if context else "") +
        "\nTask:\n"
        + task.strip() +
        "\n\nAnswer:\n"
    )


# =========================================================
# DETECTION PROMPT
# =========================================================

def build_detection_prompt(question: str, domains: Sequence[str], multimodal_summary: str | None = None) -> str:
    """Ask the model for exactly one domain tag from `domains` or `general`."""
    options = ", ".join(list(domains) + ["general"])
    attachment = f"\nAttached input:\n{multimodal_summary}\n" if multimodal_summary else ""
    return (
        "Classify the request into exactly one domain.\n"
        f"Allowed domains: {options}\n"
        "Reply with the domain name only.\n"
        + attachment +
        "\nRequest:\n"
        + question.strip() +
        "\n\nDomain:\n"
    )


# =========================================================
# DECOMPOSITION PROMPT
# =========================================================

def build_decomposition_prompt(question: str, domain: str, domains: Sequence[str], history_text: str = "") -> str:
    """Ask the model to split a compound request into independent subtasks.

    Expected reply: a JSON array whose items are either strings or objects with
    `domain` and `content` keys.
    """
    options = ", ".join(list(domains) + ["general"])
    history = f"Recent conversation (for resolving references):\n{history_text}\n\n" if history_text else ""
    return (
        "Split the request into independent subtasks that can be answered separately.\n"
        f"The request was classified as: {domain}\n"
        f"Allowed domains per subtask: {options}\n"
        "Return ONLY a JSON array. Each item is either a string or an object\n"
        '{"domain": "<domain>", "content": "<subtask>"}.\n'
        "If the request cannot be split, return an array with the request as its only item.\n\n"
        + history +
        "Request:\n"
        + question.strip() +
        "\n\nJSON:\n"
    )


# =========================================================
# AGGREGATION PROMPT
# =========================================================
# Prompt component order:
#   1) Synthesis instructions
#   2) Context block
#   3) Original request
#   4) Numbered subtask results in subtask order
#   5) Assistant cue

def build_aggregation_prompt(
    question: str,
    sections: Iterable[tuple[str, str, str]],
    history_text: str = "",
    preferences: Mapping | None = None,
    project_knowledge: Mapping | None = None,
) -> str:
    """Build the synthesis prompt from `(domain, task, output)` sections."""
    context = _context_block(history_text, preferences or {}, project_knowledge, None)
    results_block = "\n\n".join(
        f"[{i + 1}] ({domain}) {task.strip()}\n{output.strip()}"
        for i, (domain, task, output) in enumerate(sections)
    )

    return (
        "Combine the partial answers below into one coherent answer.\n"
        "Keep the order of the parts. Do not invent information that is not in them.\n"
        + ("\n" + context + "\n" if context else "") +
        "\nOriginal request:\n"
        + question.strip() +
        "\n\nPartial answers:\n"
        + results_block +
        "\n\nCombined answer:\n"
    )
