"""Provider-specific transport client for LLM requests.

Architectural role:
    Executes one blocking HTTP request against the configured model provider and
    returns the completion text.

Model invocation flow:
    `service.generate_answer` -> `send_request(payload)` -> provider branch
    (OpenAI-compatible / Anthropic) -> parsed text.

Retry behavior:
    No retry loop. Each HTTP call is attempted once with the configured timeout;
    the dispatch coordinator decides what a failure means for the request.

Failure handling model:
    Failures raise `InferenceError` with a sanitized, provider-labeled message so
    callers can mark the subtask as failed without leaking raw transport details.
"""

import logging

import requests

from tutorcore.llm.provider_config import (
    ANTHROPIC_FORMAT,
    HTTP_TIMEOUT_SECONDS,
    MODEL_NAME,
    PROVIDER,
    PROVIDERS,
    load_key,
)


logger = logging.getLogger(__name__)


class InferenceError(RuntimeError):
    """Sanitized provider failure."""


def _build_sanitized_http_error(provider_name: str, err: requests.exceptions.RequestException) -> str:
    status_code = None
    if getattr(err, "response", None) is not None:
        status_code = getattr(err.response, "status_code", None)

    label = str(provider_name or "provider").upper()
    if status_code:
        return f"{label} HTTP ERROR ({status_code})"
    return f"{label} HTTP ERROR"


def _to_anthropic_payload(payload: dict) -> dict:
    system_prompt = None
    messages = []

    for msg in payload.get("messages", []):
        if not isinstance(msg, dict):
            continue
        role = msg.get("role")
        content = msg.get("content", "")
        if role == "system" and isinstance(content, str) and content.strip():
            system_prompt = content.strip()
        elif role in ("user", "assistant"):
            messages.append({"role": role, "content": content})

    converted = {
        "model": payload.get("model", MODEL_NAME),
        "max_tokens": payload.get("max_tokens", 1024),
        "messages": messages,
    }
    if system_prompt:
        converted["system"] = system_prompt
    for field in ("temperature", "top_p"):
        if field in payload:
            converted[field] = payload[field]
    return converted


def _extract_text(wire_format: str, data: dict) -> str:
    if wire_format == ANTHROPIC_FORMAT:
        return data["content"][0]["text"].strip()
    choice = data["choices"][0]
    if "message" in choice:
        return (choice["message"].get("content") or "").strip()
    return str(choice.get("text", "")).strip()


def send_request(payload: dict, provider: str = PROVIDER) -> str:
    """Send one non-streaming request and return the completion text.

    Raises:
        InferenceError: unknown provider, missing key, HTTP failure, or a
            response body that does not match the provider's schema.
    """
    endpoint = PROVIDERS.get(provider)
    if endpoint is None:
        raise InferenceError(f"INVALID PROVIDER {provider!r}")

    headers = {"Content-Type": "application/json"}
    anthropic = endpoint.wire_format == ANTHROPIC_FORMAT

    if endpoint.needs_key:
        api_key = load_key(endpoint.key_file(provider))
        if not api_key:
            raise InferenceError(f"{provider.upper()} KEY FILE NOT FOUND")
        if anthropic:
            headers["x-api-key"] = api_key
            headers["anthropic-version"] = "2023-06-01"
        else:
            headers["Authorization"] = f"Bearer {api_key}"

    if anthropic:
        body = _to_anthropic_payload(payload)
    else:
        body = {k: v for k, v in payload.items() if v is not None}

    try:
        response = requests.post(endpoint.url, headers=headers, json=body, timeout=HTTP_TIMEOUT_SECONDS)
        response.raise_for_status()
        data = response.json()
    except requests.exceptions.RequestException as err:
        logger.warning("LLM request to %s failed: %s", provider, err)
        raise InferenceError(_build_sanitized_http_error(provider, err)) from err
    except ValueError as err:
        raise InferenceError(f"{provider.upper()} RETURNED INVALID JSON") from err

    try:
        return _extract_text(endpoint.wire_format, data)
    except (KeyError, IndexError, TypeError, AttributeError) as err:
        raise InferenceError(f"{provider.upper()} RETURNED UNEXPECTED PAYLOAD") from err
