"""Prompt control commands.

A prompt is parsed into exactly one of a closed set of command variants:

- `Ask`: ordinary request, routed by detection.
- `ForceDomain`: `/<domain> text` skips detection and pins the domain.
- `ResetSession`: `/reset` clears the short-term history of the session.

Unknown `/word` prefixes are not commands; the prompt is treated as `Ask` and
passed through unchanged.
"""

from dataclasses import dataclass
from typing import Iterable, Union


RESET_COMMAND = "/reset"


@dataclass(frozen=True)
class Ask:
    text: str


@dataclass(frozen=True)
class ForceDomain:
    domain: str
    text: str


@dataclass(frozen=True)
class ResetSession:
    pass


Command = Union[Ask, ForceDomain, ResetSession]


def parse_command(prompt: str, domains: Iterable[str]) -> Command:
    stripped = (prompt or "").strip()
    if not stripped.startswith("/"):
        return Ask(text=stripped)

    head, _, rest = stripped.partition(" ")
    head = head.lower()

    if head == RESET_COMMAND:
        return ResetSession()

    tag = head[1:]
    if tag in set(domains) and rest.strip():
        return ForceDomain(domain=tag, text=rest.strip())

    return Ask(text=stripped)
