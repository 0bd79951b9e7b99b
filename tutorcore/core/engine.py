"""Core request orchestration: one prompt in, one aggregated answer out.

Architectural role:
    Provides the execution pipeline used by the HTTP and CLI adapters. Every
    collaborator (gate, memory, router, dispatcher, aggregator, cache, hooks) is
    injected, and `build_engine` wires the default set from an `EngineConfig`.

Control-flow model:
    1. Request gate (safety, then per-user rate window). Rejection is terminal.
    2. Prompt command parsing (`/reset`, `/<domain> text`).
    3. `PRE_PROCESS` hooks; the cache check hook may answer here.
    4. Memory load (expired sessions are archived and reset).
    5. Multimodal summary of an attached input, when present.
    6. Domain detection (skipped for forced domains) and decomposition.
    7. Concurrent dispatch of subtasks within the request deadline.
    8. Aggregation, then commit of the new turn.
    9. `POST_PROCESS` hooks; the cache store hook runs here.
    10. The trace is drained into the result.

Error handling strategy:
    Stages recover their own failures as warnings on the `RequestScope`. Anything
    that escapes a stage is caught once in `process`, logged with its traceback,
    and converted to a generic apology with `source="error"`; the trace and error
    list are still returned for operators.

Determinism:
    Routing, command parsing and cache keys are deterministic for fixed inputs and
    state. Model outputs depend on the injected provider.
"""

import asyncio
import logging
import time
import uuid
from typing import Callable, Mapping

from tutorcore.api.multimodal.file_input_manager import summarize_input
from tutorcore.cache.hooks import make_cache_check, make_cache_store
from tutorcore.cache.layer import CacheLayer, make_cache_key
from tutorcore.core.aggregator import ResponseAggregator
from tutorcore.core.dispatch import DispatchCoordinator
from tutorcore.core.errors import CriticalOrchestrationError
from tutorcore.core.hooks import HookPayload, HookPhase, HookPipeline
from tutorcore.core.routing_types import (
    MultimodalInput,
    OrchestrationResult,
    RequestContext,
    RoutingDecision,
)
from tutorcore.core.settings import GENERAL_DOMAIN, EngineConfig
from tutorcore.core.streaming import DEFAULT_CHUNK_SIZE, ResponseChannel, StreamEvent, chunk_text
from tutorcore.core.trace import RequestScope
from tutorcore.domains.base import DomainHandler
from tutorcore.domains.handlers import GeneralHandler, default_handlers
from tutorcore.llm.provider import HttpInferenceProvider, InferenceProvider
from tutorcore.memory.manager import MemoryStore
from tutorcore.memory.models import Turn
from tutorcore.memory.store import JsonFileStore, PersistentStore
from tutorcore.nlp.commands import Ask, ForceDomain, ResetSession, parse_command
from tutorcore.nlp.domain_router import DomainRouter
from tutorcore.safety.filter import sanitize
from tutorcore.safety.gate import Reject, RequestGate


logger = logging.getLogger(__name__)

APOLOGY = "I'm sorry, something went wrong while processing your request. Please try again."
RESET_CONFIRMATION = "Your conversation history for this session has been cleared."


def deduplicate_response(text: str) -> str:
    """Remove repeated content patterns from generated text.

    Important behavior:
        - Detects exact first-half/second-half duplication.
        - Deduplicates repeated paragraphs, then repeated sentence fragments.

    Edge cases:
        - Empty input returns an empty string.
        - Heuristic sentence splitting uses `. ` and can be language-dependent.
    """
    if not text:
        return ""

    text = text.strip()

    half = len(text) // 2
    if half > 20:
        first = text[:half].strip()
        second = text[half:].strip()
        if first == second:
            return first

    paragraphs = [p.strip() for p in text.split("\n\n") if p.strip()]
    unique_paragraphs: list[str] = []

    for paragraph in paragraphs:
        if paragraph not in unique_paragraphs:
            unique_paragraphs.append(paragraph)

    if len(unique_paragraphs) < len(paragraphs):
        return "\n\n".join(unique_paragraphs)

    sentences = text.split(". ")
    unique_sentences: list[str] = []

    for sentence in sentences:
        sentence = sentence.strip()
        if sentence and sentence not in unique_sentences:
            unique_sentences.append(sentence)

    if len(unique_sentences) == len(sentences):
        return text
    return ". ".join(unique_sentences).strip()


class OrchestrationEngine:
    def __init__(
        self,
        config: EngineConfig,
        gate: RequestGate,
        memory: MemoryStore,
        router: DomainRouter,
        dispatcher: DispatchCoordinator,
        aggregator: ResponseAggregator,
        hooks: HookPipeline,
        cache: CacheLayer | None = None,
        summarizer: Callable[[MultimodalInput], str] = summarize_input,
    ):
        self.config = config
        self.gate = gate
        self.memory = memory
        self.router = router
        self.dispatcher = dispatcher
        self.aggregator = aggregator
        self.hooks = hooks
        self.cache = cache
        self.summarizer = summarizer

    @property
    def domains(self) -> tuple[str, ...]:
        return self.router.domains + (GENERAL_DOMAIN,)

    # ---------------------------------------------------------
    # PUBLIC ENTRYPOINTS
    # ---------------------------------------------------------

    async def process(self, prompt: str, context: RequestContext) -> OrchestrationResult:
        """Run one request through the full pipeline.

        Never raises for request-level failures: gate rejections, recovered stage
        failures and critical errors are all reported through the returned
        `OrchestrationResult` (`errors`, `warnings`, `source`).
        """
        scope = RequestScope.create(uuid.uuid4().hex)
        scope.trace.record("Request received", {
            "userId": context.user_id,
            "sessionId": context.session_id,
            "projectId": context.project_id,
            "multimodal": context.multimodal_input.type if context.multimodal_input else None,
        })

        try:
            return await self._run(prompt or "", context, scope)
        except Exception as e:
            logger.exception("Critical failure in request %s", scope.request_id)
            error = CriticalOrchestrationError(type(e).__name__)
            scope.fail(f"{type(error).__name__}: {error}")
            return self._finish(scope, APOLOGY, "error")

    def stream(self, prompt: str, context: RequestContext,
               chunk_size: int = DEFAULT_CHUNK_SIZE) -> ResponseChannel:
        """Start processing in a producer task and return the channel it feeds.

        Must be called from a running event loop. The channel yields `chunk`
        events with consecutive slices of the answer, then one `result` event with
        the full `OrchestrationResult`, then ends.
        """
        channel = ResponseChannel()

        async def produce():
            try:
                result = await self.process(prompt, context)
                for piece in chunk_text(result.response, chunk_size):
                    await channel.send(StreamEvent("chunk", piece))
                await channel.send(StreamEvent("result", result))
            finally:
                channel.close()

        channel.attach(asyncio.create_task(produce()))
        return channel

    # ---------------------------------------------------------
    # PIPELINE
    # ---------------------------------------------------------

    async def _run(self, prompt: str, context: RequestContext, scope: RequestScope) -> OrchestrationResult:
        admission = self.gate.admit(context.user_id, prompt)
        if isinstance(admission, Reject):
            error = admission.as_error()
            logger.info("Request %s rejected (%s): %r", scope.request_id,
                        admission.reason.value, sanitize(prompt, self.gate.denylist)[:200])
            scope.trace.record("Gate", {"decision": "reject", "reason": admission.reason.value})
            scope.fail(f"{type(error).__name__}: {error}")
            return self._finish(scope, admission.message, "gate")
        scope.trace.record("Gate", {"decision": "allow"})

        command = parse_command(prompt, self.domains)
        scope.trace.record("Command parsed", {"command": type(command).__name__})

        payload = HookPayload(
            prompt=prompt,
            context=context,
            scope=scope,
            cache_key=make_cache_key(prompt, context.project_id),
            cacheable=context.multimodal_input is None and not isinstance(command, ResetSession),
        )

        outcome = await self.hooks.run(HookPhase.PRE_PROCESS, payload)
        if outcome.handled:
            return self._from_hook(outcome.result, scope)

        memory = await self.memory.load(context.user_id, context.session_id, context.project_id)
        scope.trace.record("Memory loaded", {
            "historyTurns": len(memory.history),
            "expiredSession": memory.expired_session,
            "project": memory.project is not None,
        })

        if isinstance(command, ResetSession):
            await self.memory.reset_session(context.user_id, context.session_id)
            scope.trace.record("Session reset", {"sessionId": context.session_id})
            return self._finish(scope, RESET_CONFIRMATION, "command")

        multimodal_summary = await self._summarize(context.multimodal_input, scope)

        if isinstance(command, ForceDomain):
            text = command.text
            decision = RoutingDecision(command.domain, "prefix")
        elif isinstance(command, Ask):
            text = command.text
            decision = await self.router.classify(text, memory, scope, multimodal_summary)
        else:
            raise TypeError(f"Unhandled command {command!r}")
        scope.trace.record("Domain detected", {
            "domain": decision.domain,
            "reason": decision.reason,
            "scores": decision.scores,
        })

        subtasks = await self.router.decompose(text, decision.domain, memory, scope)
        scope.trace.record("Decomposed", {
            "subtasks": [{"id": s.id, "domain": s.domain} for s in subtasks],
        })

        remaining = self.config.request_timeout_seconds - scope.elapsed()
        results = await self.dispatcher.dispatch(
            subtasks, memory, scope,
            request=context,
            multimodal_summary=multimodal_summary,
            timeout=remaining,
        )

        response = await self.aggregator.aggregate(text, subtasks, results, memory, scope)
        response = deduplicate_response(response)

        await self.memory.commit(
            context.user_id,
            context.session_id,
            Turn(prompt=text, response=response, timestamp=time.time(), domain=decision.domain),
            project_id=context.project_id,
        )
        scope.trace.record("Memory committed", {"sessionId": context.session_id})

        result = OrchestrationResult(
            response=response,
            trace=[],
            warnings=scope.warnings,
            errors=scope.errors,
            source="pipeline",
            request_id=scope.request_id,
            domain=decision.domain,
        )
        payload.domain = decision.domain
        payload.result = result
        payload.cacheable = payload.cacheable and all(r.success for r in results)
        await self.hooks.run(HookPhase.POST_PROCESS, payload)

        return self._seal(result, scope)

    async def _summarize(self, item: MultimodalInput | None, scope: RequestScope) -> str | None:
        if item is None:
            return None
        try:
            summary = await asyncio.to_thread(self.summarizer, item)
        except Exception as e:
            logger.warning("Multimodal input could not be processed: %s", e)
            scope.warn(f"Attached {item.type} input could not be processed")
            return None
        scope.trace.record("Multimodal summarized", {"type": item.type, "chars": len(summary)})
        return summary or None

    # ---------------------------------------------------------
    # RESULT SHAPING
    # ---------------------------------------------------------

    def _from_hook(self, value, scope: RequestScope) -> OrchestrationResult:
        if isinstance(value, OrchestrationResult):
            return self._seal(value, scope)
        if isinstance(value, Mapping):
            source = value.get("source", "cache")
            return self._finish(scope, str(value.get("response", "")), source, value.get("domain"))
        return self._finish(scope, str(value), "hook")

    def _finish(self, scope: RequestScope, response: str, source: str,
                domain: str | None = None) -> OrchestrationResult:
        result = OrchestrationResult(
            response=response,
            trace=[],
            warnings=scope.warnings,
            errors=scope.errors,
            source=source,
            request_id=scope.request_id,
            domain=domain,
        )
        return self._seal(result, scope)

    def _seal(self, result: OrchestrationResult, scope: RequestScope) -> OrchestrationResult:
        scope.trace.record("Response ready", {"source": result.source, "elapsedMs": round(scope.elapsed() * 1000)})
        result.trace = scope.trace.drain()
        result.warnings = list(scope.warnings)
        result.errors = list(scope.errors)
        return result


def build_engine(
    config: EngineConfig | None = None,
    provider: InferenceProvider | None = None,
    store: PersistentStore | None = None,
    handlers: Mapping[str, DomainHandler] | None = None,
    summarizer: Callable[[MultimodalInput], str] = summarize_input,
) -> OrchestrationEngine:
    """Wire the default component set for one process."""
    config = config or EngineConfig()
    provider = provider or HttpInferenceProvider()
    store = store or JsonFileStore(config.memory_dir)
    handlers = dict(handlers) if handlers is not None else dict(default_handlers(provider, config.domains))
    fallback = handlers.get(GENERAL_DOMAIN) or GeneralHandler(provider)

    cache = CacheLayer(
        capacity=config.cache_capacity,
        ttl_seconds=config.cache_ttl_seconds,
        semantic_threshold=config.semantic_threshold,
        embedder=provider.embed,
        semantic_enabled=config.semantic_cache_enabled,
    )
    hooks = HookPipeline()
    hooks.register(HookPhase.PRE_PROCESS, make_cache_check(cache), "cacheCheck")
    hooks.register(HookPhase.POST_PROCESS, make_cache_store(cache), "cacheStore")

    logger.info("Engine ready: domains=%s provider=%s", ",".join(config.domains), type(provider).__name__)

    return OrchestrationEngine(
        config=config,
        gate=RequestGate(config.request_limit, config.window_ms, config.denylist),
        memory=MemoryStore(store, config.session_ttl_seconds, config.history_limit, config.summary_limit),
        router=DomainRouter(config.domains, provider, config.llm_detection),
        dispatcher=DispatchCoordinator(handlers, fallback, config.max_in_flight, config.request_timeout_seconds),
        aggregator=ResponseAggregator(provider, config.aggregation_seed),
        hooks=hooks,
        cache=cache,
        summarizer=summarizer,
    )
