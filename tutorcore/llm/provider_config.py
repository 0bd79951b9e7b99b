"""Provider/runtime configuration for the LLM layer.

Architectural role:
    Centralizes model/provider selection and credential lookup for
    `tutorcore.llm.service`, `tutorcore.llm.client` and the embedding model.

Model call flow integration:
    - `service.generate_answer` consumes `MODEL_NAME`, `SYSTEM_MESSAGE` and the
      sampling defaults.
    - `client.send_request` consumes `PROVIDERS` (endpoint, wire format and key
      location per provider).
    - `memory.embedding_model` consumes `EMBED_MODEL`.

Failure behavior:
    Missing key material is represented as `None`; `client` turns it into an
    `InferenceError`.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

PROVIDER = os.getenv("PROVIDER", "local")
MODEL_NAME = os.getenv("MODEL_NAME", "qwen2.5:3b")
EMBED_MODEL = os.getenv("EMBED_MODEL", "intfloat/multilingual-e5-small")
HTTP_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "120"))
KEY_DIR = os.getenv("LLM_KEY_DIR", "config")

# Wire formats understood by `client.send_request`.
OPENAI_FORMAT = "openai"
ANTHROPIC_FORMAT = "anthropic"


@dataclass(frozen=True)
class ProviderEndpoint:
    url: str
    wire_format: str = OPENAI_FORMAT
    needs_key: bool = True

    def key_file(self, name: str) -> Optional[str]:
        return os.path.join(KEY_DIR, f"{name}.key") if self.needs_key else None


PROVIDERS = {
    "local": ProviderEndpoint(
        os.getenv("LOCAL_LLM_URL", "http://127.0.0.1:8080/v1/chat/completions"),
        needs_key=False,
    ),
    "openai": ProviderEndpoint("https://api.openai.com/v1/chat/completions"),
    "groq": ProviderEndpoint("https://api.groq.com/openai/v1/chat/completions"),
    "together": ProviderEndpoint("https://api.together.xyz/v1/chat/completions"),
    "openrouter": ProviderEndpoint("https://openrouter.ai/api/v1/chat/completions"),
    "mistral": ProviderEndpoint("https://api.mistral.ai/v1/chat/completions"),
    "anthropic": ProviderEndpoint("https://api.anthropic.com/v1/messages", wire_format=ANTHROPIC_FORMAT),
}

SYSTEM_MESSAGE = (
    "You are 'Advanced AI Tutor', a multi-domain tutoring assistant.\n"
    "You help with coding, mathematics, vocabulary and grammar.\n"
    "Do not claim to be a specific commercial model.\n"
    "Answer precisely, clearly and without repetition.\n"
)

# Callers override per request; aggregation and routing force temperature 0.
DEFAULT_SAMPLING = {
    "temperature": 0.45,
    "top_p": 0.9,
    "presence_penalty": 0.4,
    "frequency_penalty": 0.5,
}


def load_key(path):
    """Load an API key from its environment override or key file.

    `config/openai.key` is overridden by `OPENAI_API_KEY`. A `None` path or a
    missing file yields `None`.
    """
    if not path:
        return None
    env_value = os.getenv(os.path.splitext(os.path.basename(path))[0].upper() + "_API_KEY")
    if env_value:
        return env_value
    if not os.path.exists(path):
        return None
    with open(path, "r") as f:
        return f.read().strip()
