"""Prompt-to-payload adapter for LLM invocation.

Architectural role:
    Provides the canonical text-generation entrypoint used by the inference
    provider. Bridges prompt construction (`tutorcore.prompting`) to transport
    (`tutorcore.llm.client`).

Model call flow:
    prompt + options -> payload construction -> `client.send_request(...)`.

Determinism:
    Payload construction is deterministic for fixed inputs and configuration.
    Passing `temperature=0` and a `seed` asks compatible providers for
    reproducible output; the aggregator relies on this.
"""

from typing import Any, Mapping

from tutorcore.llm.client import send_request
from tutorcore.llm.provider_config import DEFAULT_SAMPLING, MODEL_NAME, PROVIDER, SYSTEM_MESSAGE


PASSTHROUGH_OPTIONS = ("temperature", "top_p", "presence_penalty", "frequency_penalty", "seed", "max_tokens")


def build_payload(prompt: str, options: Mapping[str, Any] | None = None) -> dict:
    """Wrap `prompt` with the shared system message and sampling defaults.

    Unknown option keys are ignored so callers can pass orchestration hints
    (for example `purpose`) without breaking provider schemas.
    """
    options = dict(options or {})
    payload = {
        "model": options.get("model", MODEL_NAME),
        "messages": [
            {"role": "system", "content": options.get("system", SYSTEM_MESSAGE)},
            {"role": "user", "content": prompt},
        ],
        "stream": False,
        **DEFAULT_SAMPLING,
    }
    for key in PASSTHROUGH_OPTIONS:
        if key in options:
            payload[key] = options[key]
    return payload


def generate_answer(prompt: str, options: Mapping[str, Any] | None = None, provider: str = PROVIDER) -> str:
    return send_request(build_payload(prompt, options), provider)
