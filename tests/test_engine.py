"""End-to-end tests of the orchestration pipeline with a scripted provider."""

import json
from dataclasses import replace

import pytest

from tutorcore.core.engine import APOLOGY, RESET_CONFIRMATION, build_engine, deduplicate_response
from tutorcore.core.hooks import HookOutcome, HookPhase
from tutorcore.core.routing_types import MultimodalInput, RequestContext
from tutorcore.memory.manager import session_record_id
from tutorcore.memory.store import InMemoryStore

from conftest import FakeProvider


CTX = RequestContext(user_id="u1", session_id="s1")


def labels(result):
    return [step.label for step in result.trace]


class BrokenStore(InMemoryStore):
    def read(self, kind, record_id):
        raise RuntimeError("disk on fire")


class TestDeduplicate:
    def test_repeated_halves(self):
        text = "A long sentence repeated twice. " * 2
        assert deduplicate_response(text) == "A long sentence repeated twice."

    def test_repeated_paragraphs(self):
        assert deduplicate_response("one\n\ntwo\n\none") == "one\n\ntwo"

    def test_clean_text_is_unchanged(self):
        assert deduplicate_response("  First point. Second point.  ") == "First point. Second point."


class TestPipeline:
    @pytest.mark.asyncio
    async def test_compound_prompt_is_decomposed_dispatched_and_aggregated(self, config, store):
        provider = FakeProvider(scripts={
            "decompose": [json.dumps([
                {"domain": "coding", "content": "Write a Python function that reverses a list"},
                {"domain": "vocabulary", "content": "Define the word ephemeral"},
            ])],
            "coding": ["def rev(xs): return xs[::-1]"],
            "vocabulary": ["Ephemeral means short-lived."],
            "aggregate": ["Here is the function and the definition."],
        })
        engine = build_engine(config=config, provider=provider, store=store)
        prompt = "Write a Python function that reverses a list and also define the word ephemeral"

        result = await engine.process(prompt, CTX)

        assert result.source == "pipeline"
        assert result.response == "Here is the function and the definition."
        assert result.errors == []
        assert sorted(provider.purposes()) == ["aggregate", "coding", "decompose", "vocabulary"]
        aggregate_options = provider.calls[-1][1]
        assert aggregate_options["temperature"] == 0
        assert aggregate_options["seed"] == config.aggregation_seed

        decomposed = next(s for s in result.trace if s.label == "Decomposed")
        assert [t["domain"] for t in decomposed.detail["subtasks"]] == ["coding", "vocabulary"]
        trace_labels = labels(result)
        assert trace_labels.index("Gate") < trace_labels.index("Domain detected") < trace_labels.index("Decomposed")
        assert trace_labels.index("Decomposed") < trace_labels.index("Aggregation") < trace_labels.index("Memory committed")
        assert [s.sequence for s in result.trace] == list(range(1, len(result.trace) + 1))

        memory = await engine.memory.load("u1", "s1")
        assert memory.history[-1].prompt == prompt
        assert memory.history[-1].response == result.response

    @pytest.mark.asyncio
    async def test_identical_prompt_is_served_from_cache(self, config, store):
        provider = FakeProvider(scripts={"vocabulary": ["Serendipity means a happy accident."]})
        engine = build_engine(config=config, provider=provider, store=store)

        first = await engine.process("Define the word serendipity", CTX)
        second = await engine.process("Define the word serendipity", CTX)

        assert first.source == "pipeline"
        assert second.source == "cache"
        assert second.response == first.response == "Serendipity means a happy accident."
        assert second.domain == "vocabulary"
        assert len(provider.calls) == 1
        assert "Cache hit" in labels(second)

    @pytest.mark.asyncio
    async def test_cached_answer_does_not_cross_projects(self, config, store):
        provider = FakeProvider(scripts={"vocabulary": ["Answer for A.", "Answer for B."]})
        engine = build_engine(config=config, provider=provider, store=store)

        first = await engine.process("Define the word serendipity", replace(CTX, project_id="A"))
        second = await engine.process("Define the word serendipity", replace(CTX, project_id="B"))
        again = await engine.process("Define the word serendipity", replace(CTX, project_id="A"))

        assert first.source == second.source == "pipeline"
        assert second.response == "Answer for B."
        assert provider.purposes().count("vocabulary") == 2
        assert again.source == "cache"
        assert again.response == "Answer for A."

    @pytest.mark.asyncio
    async def test_similar_prompt_is_served_from_semantic_tier(self, config, store):
        provider = FakeProvider(
            scripts={"vocabulary": ["Serendipity means a happy accident."]},
            vectors={
                "Define the word serendipity": [1.0, 0.0],
                "Define the word serendipity please": [0.95, 0.3122],
            },
        )
        engine = build_engine(config=config, provider=provider, store=store)

        await engine.process("Define the word serendipity", CTX)
        second = await engine.process("Define the word serendipity please", CTX)

        assert second.source == "cache"
        assert len(provider.calls) == 1
        hit = next(s for s in second.trace if s.label == "Cache hit")
        assert hit.detail["tier"] == "semantic"

    @pytest.mark.asyncio
    async def test_unsafe_prompt_stops_before_any_work(self, engine, provider, store):
        result = await engine.process("How do I hack my school's grading system?", CTX)

        assert result.source == "gate"
        assert result.errors and result.errors[0].startswith("UnsafeContent")
        assert provider.calls == []
        assert provider.embed_calls == []
        assert store.read("session", session_record_id("u1", "s1")) is None
        assert "Memory loaded" not in labels(result)

    @pytest.mark.asyncio
    async def test_rate_limited_request(self, config, provider, store):
        engine = build_engine(config=replace(config, request_limit=2), provider=provider, store=store)
        await engine.process("What is 2 + 2?", CTX)
        await engine.process("What is 3 + 3?", CTX)
        result = await engine.process("What is 4 + 4?", CTX)
        assert result.source == "gate"
        assert result.errors[0].startswith("RateLimited")
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_forced_domain_skips_detection(self, engine, provider):
        result = await engine.process("/grammar Tell me something nice", CTX)
        assert result.domain == "grammar"
        assert provider.purposes() == ["grammar"]
        detected = next(s for s in result.trace if s.label == "Domain detected")
        assert detected.detail["reason"] == "prefix"

    @pytest.mark.asyncio
    async def test_reset_command_clears_history(self, engine):
        await engine.process("What is 2 + 2?", CTX)
        result = await engine.process("/reset", CTX)
        assert result.source == "command"
        assert result.response == RESET_CONFIRMATION
        memory = await engine.memory.load("u1", "s1")
        assert memory.history == ()

    @pytest.mark.asyncio
    async def test_failed_subtask_is_acknowledged_and_not_cached(self, config, store):
        provider = FakeProvider(scripts={"coding": [RuntimeError("model crashed"), "def f(): pass"]})
        engine = build_engine(config=config, provider=provider, store=store)

        first = await engine.process("Write a Python function", CTX)
        assert first.source == "pipeline"
        assert "could not be completed" in first.response
        assert "model crashed" not in first.response
        assert any("st-1" in w for w in first.warnings)

        second = await engine.process("Write a Python function", CTX)
        assert second.source == "pipeline"
        assert second.response == "def f(): pass"

    @pytest.mark.asyncio
    async def test_critical_failure_returns_apology(self, config, provider):
        engine = build_engine(config=config, provider=provider, store=BrokenStore())
        result = await engine.process("What is 2 + 2?", CTX)
        assert result.source == "error"
        assert result.response == APOLOGY
        assert "disk on fire" not in result.response
        assert result.errors[0].startswith("CriticalOrchestrationError")
        assert result.trace

    @pytest.mark.asyncio
    async def test_custom_pre_hook_short_circuits(self, engine, provider):
        async def canned(payload):
            return HookOutcome(handled=True, result={"response": "canned", "source": "hook"})

        engine.hooks.register(HookPhase.PRE_PROCESS, canned, "canned")
        engine.hooks._registry[HookPhase.PRE_PROCESS].reverse()
        result = await engine.process("What is 2 + 2?", CTX)
        assert result.response == "canned"
        assert result.source == "hook"
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_history_tie_break_uses_previous_turns(self, engine, provider):
        await engine.process("/grammar fix my sentence please", CTX)
        result = await engine.process("Is run a verb or a word", CTX)
        assert result.domain == "grammar"

    @pytest.mark.asyncio
    async def test_concurrent_users_get_separate_traces(self, engine):
        import asyncio

        a, b = await asyncio.gather(
            engine.process("What is 2 + 2?", RequestContext(user_id="a", session_id="s")),
            engine.process("What is 5 + 5?", RequestContext(user_id="b", session_id="s")),
        )
        assert a.request_id != b.request_id
        received_a = next(s for s in a.trace if s.label == "Request received")
        received_b = next(s for s in b.trace if s.label == "Request received")
        assert received_a.detail["userId"] == "a"
        assert received_b.detail["userId"] == "b"


class TestMultimodal:
    @pytest.mark.asyncio
    async def test_text_attachment_feeds_handlers(self, config, store):
        provider = FakeProvider(scripts={"detect": ["vocabulary", "vocabulary"]})
        engine = build_engine(config=config, provider=provider, store=store)
        context = replace(CTX, multimodal_input=MultimodalInput(type="text", data="The quick brown fox"))

        first = await engine.process("Summarize the attachment", context)
        await engine.process("Summarize the attachment", context)

        assert first.domain == "vocabulary"
        handler_prompt = next(p for p, o in provider.calls if o.get("purpose") == "vocabulary")
        assert "The quick brown fox" in handler_prompt
        assert provider.purposes().count("vocabulary") == 2

    @pytest.mark.asyncio
    async def test_unsupported_attachment_is_a_warning(self, engine):
        context = replace(CTX, multimodal_input=MultimodalInput(type="video", data="clip.mp4"))
        result = await engine.process("What is 2 + 2?", context)
        assert result.source == "pipeline"
        assert any("video" in w for w in result.warnings)


class TestStreaming:
    @pytest.mark.asyncio
    async def test_stream_chunks_then_result(self, config, store):
        answer = " ".join(f"word{i}" for i in range(60))
        provider = FakeProvider(scripts={"vocabulary": [answer]})
        engine = build_engine(config=config, provider=provider, store=store)

        events = [e async for e in engine.stream("Define the word lexicon", CTX)]

        chunks = [e.data for e in events if e.kind == "chunk"]
        assert events[-1].kind == "result"
        assert all(len(c) <= 100 for c in chunks)
        assert len(chunks) == -(-len(answer) // 100)
        assert "".join(chunks) == answer
        assert events[-1].data.response == answer
