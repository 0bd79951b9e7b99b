"""Prompt-backed handlers for the built-in domains.

Each built-in domain builds its own instruction prompt (see
`tutorcore.prompting.prompt_builder.DOMAIN_INSTRUCTIONS`) and calls the shared
inference provider once. The general handler doubles as the fallback for subtasks
whose tag has no registered handler.
"""

import logging
from typing import Mapping, Sequence

from tutorcore.core.routing_types import DomainResult
from tutorcore.core.settings import DEFAULT_DOMAINS, GENERAL_DOMAIN
from tutorcore.domains.base import DomainHandler, HandlerContext
from tutorcore.llm.provider import InferenceProvider
from tutorcore.prompting.prompt_builder import build_domain_prompt


logger = logging.getLogger(__name__)


class PromptedDomainHandler:
    def __init__(self, domain: str, provider: InferenceProvider, temperature: float | None = None):
        self.domain = domain
        self.provider = provider
        self.temperature = temperature

    def build_prompt(self, task_content: str, context: HandlerContext) -> str:
        project = context.memory.project.knowledge if context.memory.project else None
        return build_domain_prompt(
            self.domain,
            task_content,
            history_text=context.memory.recent_history_text(),
            preferences=context.memory.preferences(),
            project_knowledge=project,
            multimodal_summary=context.multimodal_summary,
        )

    async def process(self, task_content: str, context: HandlerContext) -> DomainResult:
        options = {"purpose": self.domain}
        if self.temperature is not None:
            options["temperature"] = self.temperature

        result = await self.provider.infer(self.build_prompt(task_content, context), options)
        text = (result.text or "").strip()
        if not text:
            return DomainResult.failed(f"{self.domain} handler produced an empty answer")
        return DomainResult.ok(text)


class GeneralHandler(PromptedDomainHandler):
    def __init__(self, provider: InferenceProvider):
        super().__init__(GENERAL_DOMAIN, provider)


# Mathematics runs cold so repeated questions produce the same derivation.
DOMAIN_TEMPERATURES = {"mathematics": 0.0, "coding": 0.2}


def default_handlers(provider: InferenceProvider,
                     domains: Sequence[str] = DEFAULT_DOMAINS) -> Mapping[str, DomainHandler]:
    handlers: dict[str, DomainHandler] = {
        domain: PromptedDomainHandler(domain, provider, DOMAIN_TEMPERATURES.get(domain))
        for domain in domains
    }
    handlers[GENERAL_DOMAIN] = GeneralHandler(provider)
    logger.debug("Registered domain handlers: %s", ", ".join(sorted(handlers)))
    return handlers
