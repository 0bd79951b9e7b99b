"""Rule-based lexical safety check.

Purpose:
    Provide a deterministic pre-dispatch check that blocks prompts containing
    denylisted terms before any cache, memory or inference work happens.

Validation model:
    - Rule-based only (case-insensitive, terms must start at a word boundary),
      no classifier.
    - Built-in `BLOCKED_TOKENS` are extended by the configured denylist.
    - Allow-list phrases are evaluated only against multi-word block phrases:
      "explain how to hack" is still blocked by the single token "hack".

Determinism:
    For the same input text and pattern lists, output is deterministic.

Bypass risk:
    Lexical matching can be bypassed by obfuscation, misspellings, spacing
    tricks, or unsupported languages. Downstream controls are still required.
"""

import re
from typing import Iterable


BLOCKED_TOKENS = [
    "hack",
    "exploit",
    "illegal",
]

BLOCKED_PATTERNS = [

    # English
    "bypass authentication",
    "break into account",
    "steal credentials",

    # German
    "authentifizierung umgehen",
    "in account einbrechen",

    # Spanish
    "omitir autenticacion",
    "entrar en cuenta ajena",

    # French
    "contourner authentification",
    "pirater un compte"
]


ALLOWED_THEORETICAL_PATTERNS = [
    "how does",
    "explain",
    "wie funktioniert",
    "erklaere",
    "como funciona",
    "explique",
]


def _term_pattern(term: str) -> re.Pattern:
    """Match `term` at the start of a word: "hack" blocks "hacking", not "shackle"."""
    return re.compile(r"\b" + re.escape(term.lower()))


def _denylist(extra_denylist: Iterable[str]) -> list[str]:
    return list(BLOCKED_TOKENS) + [t.lower() for t in extra_denylist if t]


def find_blocked_term(question: str, extra_denylist: Iterable[str] = ()) -> str | None:
    """Return the first denylisted term found in `question`, or `None`.

    Evaluation order:
        1. Empty input passes.
        2. Single tokens (built-in + configured) block unconditionally.
        3. Multi-word misuse phrases block unless a theoretical/educational
           phrase is also present.
    """
    if not question:
        return None

    q = question.lower()

    for token in _denylist(extra_denylist):
        if _term_pattern(token).search(q):
            return token

    if any(p in q for p in ALLOWED_THEORETICAL_PATTERNS):
        return None

    for phrase in BLOCKED_PATTERNS:
        if _term_pattern(phrase).search(q):
            return phrase

    return None


def is_allowed(question: str, extra_denylist: Iterable[str] = ()) -> bool:
    return find_blocked_term(question, extra_denylist) is None


def sanitize(text: str, extra_denylist: Iterable[str] = ()) -> str:
    """Mask denylisted tokens for log output."""
    masked = text or ""
    for token in _denylist(extra_denylist):
        masked = re.sub(_term_pattern(token).pattern, "*" * len(token), masked, flags=re.IGNORECASE)
    return masked
