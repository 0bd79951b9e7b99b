"""Tests for response aggregation."""

import pytest

from tutorcore.core.aggregator import NOTHING_COMPLETED, ResponseAggregator
from tutorcore.core.routing_types import DomainResult, Subtask
from tutorcore.llm.client import InferenceError

from conftest import FakeProvider


def subtasks(*domains):
    return [Subtask(id=f"st-{i + 1}", domain=d, content=f"part {i + 1}", originating_prompt="p")
            for i, d in enumerate(domains)]


class TestResponseAggregator:
    @pytest.mark.asyncio
    async def test_single_success_is_returned_without_synthesis(self, provider, memory, scope):
        aggregator = ResponseAggregator(provider)
        answer = await aggregator.aggregate("p", subtasks("coding"), [DomainResult.ok("the answer")], memory, scope)
        assert answer == "the answer"
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_multiple_results_are_synthesized_deterministically(self, memory, scope):
        provider = FakeProvider(scripts={"aggregate": ["merged"]})
        aggregator = ResponseAggregator(provider, seed=11)
        answer = await aggregator.aggregate(
            "p", subtasks("coding", "grammar"),
            [DomainResult.ok("first"), DomainResult.ok("second")], memory, scope)
        assert answer == "merged"
        prompt, options = provider.calls[0]
        assert options["temperature"] == 0
        assert options["seed"] == 11
        assert prompt.index("first") < prompt.index("second")

    @pytest.mark.asyncio
    async def test_failed_subtasks_are_acknowledged(self, provider, memory, scope):
        aggregator = ResponseAggregator(provider)
        answer = await aggregator.aggregate(
            "p", subtasks("coding", "grammar"),
            [DomainResult.ok("first"), DomainResult.failed("Timeout")], memory, scope)
        assert answer.startswith("first")
        assert "Part 2 (grammar)" in answer
        assert "timed out" in answer
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_handler_error_details_are_not_shown(self, provider, memory, scope):
        aggregator = ResponseAggregator(provider)
        answer = await aggregator.aggregate(
            "p", subtasks("coding", "grammar"),
            [DomainResult.ok("first"), DomainResult.failed("grammar: KeyError('secret')")], memory, scope)
        assert "secret" not in answer
        assert "[failed]" in answer

    @pytest.mark.asyncio
    async def test_synthesis_failure_falls_back_to_ordered_parts(self, memory, scope):
        provider = FakeProvider(scripts={"aggregate": [InferenceError("down")]})
        aggregator = ResponseAggregator(provider)
        answer = await aggregator.aggregate(
            "p", subtasks("coding", "grammar"),
            [DomainResult.ok("first"), DomainResult.ok("second")], memory, scope)
        assert answer == "1. first\n\n2. second"
        assert len(scope.warnings) == 1

    @pytest.mark.asyncio
    async def test_nothing_succeeded(self, provider, memory, scope):
        aggregator = ResponseAggregator(provider)
        answer = await aggregator.aggregate(
            "p", subtasks("coding"), [DomainResult.failed("boom")], memory, scope)
        assert answer.startswith(NOTHING_COMPLETED)
        assert "Part 1 (coding)" in answer

    @pytest.mark.asyncio
    async def test_structured_output_is_serialized(self, provider, memory, scope):
        aggregator = ResponseAggregator(provider)
        answer = await aggregator.aggregate(
            "p", subtasks("mathematics"), [DomainResult.ok({"result": 4})], memory, scope)
        assert answer == '{"result": 4}'

    @pytest.mark.asyncio
    async def test_misaligned_results(self, provider, memory, scope):
        with pytest.raises(ValueError):
            await ResponseAggregator(provider).aggregate("p", subtasks("coding"), [], memory, scope)
