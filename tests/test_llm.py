"""Tests for payload construction and the provider transport client."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from tutorcore.llm import client
from tutorcore.llm.client import InferenceError, send_request
from tutorcore.llm.provider import HttpInferenceProvider, InferenceProvider
from tutorcore.llm.provider_config import DEFAULT_SAMPLING, SYSTEM_MESSAGE
from tutorcore.llm.service import build_payload
from tutorcore.prompting.prompt_builder import build_aggregation_prompt, build_domain_prompt


def ok_response(data):
    response = MagicMock()
    response.json.return_value = data
    response.raise_for_status.return_value = None
    return response


class TestBuildPayload:
    def test_defaults(self):
        payload = build_payload("hi")
        assert payload["messages"] == [
            {"role": "system", "content": SYSTEM_MESSAGE},
            {"role": "user", "content": "hi"},
        ]
        assert payload["temperature"] == DEFAULT_SAMPLING["temperature"]
        assert payload["stream"] is False

    def test_known_options_override_and_hints_are_dropped(self):
        payload = build_payload("hi", {"temperature": 0, "seed": 7, "purpose": "aggregate"})
        assert payload["temperature"] == 0
        assert payload["seed"] == 7
        assert "purpose" not in payload

    def test_identity_is_sent_only_as_system_message(self):
        prompts = [
            build_domain_prompt("grammar", "Fix: he go home"),
            build_aggregation_prompt("q", [("coding", "task", "output")]),
        ]
        for prompt in prompts:
            payload = build_payload(prompt)
            assert "Advanced AI Tutor" in payload["messages"][0]["content"]
            assert "Advanced AI Tutor" not in payload["messages"][1]["content"]


class TestSendRequest:
    def test_openai_compatible_success(self):
        data = {"choices": [{"message": {"content": "  four  "}}]}
        with patch("tutorcore.llm.client.requests.post", return_value=ok_response(data)) as post:
            assert send_request(build_payload("2+2?"), provider="local") == "four"
        sent = post.call_args.kwargs["json"]
        assert sent["messages"][1]["content"] == "2+2?"

    def test_http_error_is_sanitized(self):
        error = requests.exceptions.HTTPError("500 Server Error: secret upstream detail")
        error.response = MagicMock(status_code=500)
        response = MagicMock()
        response.raise_for_status.side_effect = error
        with patch("tutorcore.llm.client.requests.post", return_value=response):
            with pytest.raises(InferenceError) as exc:
                send_request(build_payload("hi"), provider="local")
        assert str(exc.value) == "LOCAL HTTP ERROR (500)"

    def test_connection_error(self):
        with patch("tutorcore.llm.client.requests.post",
                   side_effect=requests.exceptions.ConnectionError("refused")):
            with pytest.raises(InferenceError, match="LOCAL HTTP ERROR"):
                send_request(build_payload("hi"), provider="local")

    def test_unexpected_payload(self):
        with patch("tutorcore.llm.client.requests.post", return_value=ok_response({"nope": 1})):
            with pytest.raises(InferenceError, match="UNEXPECTED PAYLOAD"):
                send_request(build_payload("hi"), provider="local")

    def test_anthropic_conversion(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")
        data = {"content": [{"text": "bonjour"}]}
        with patch("tutorcore.llm.client.requests.post", return_value=ok_response(data)) as post:
            assert send_request(build_payload("hello", {"temperature": 0}), provider="anthropic") == "bonjour"
        sent = post.call_args.kwargs["json"]
        assert sent["system"] == SYSTEM_MESSAGE.strip()
        assert sent["messages"] == [{"role": "user", "content": "hello"}]
        assert sent["temperature"] == 0
        assert post.call_args.kwargs["headers"]["x-api-key"] == "test-key"

    def test_missing_key(self, monkeypatch, tmp_path):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.chdir(tmp_path)
        with pytest.raises(InferenceError, match="KEY FILE NOT FOUND"):
            send_request(build_payload("hi"), provider="openai")

    def test_invalid_provider(self):
        with pytest.raises(InferenceError, match="INVALID PROVIDER"):
            send_request(build_payload("hi"), provider="nowhere")


class TestHttpInferenceProvider:
    def test_satisfies_protocol(self):
        assert isinstance(HttpInferenceProvider(), InferenceProvider)

    @pytest.mark.asyncio
    async def test_infer_runs_generate_answer(self):
        with patch("tutorcore.llm.provider.generate_answer", return_value="pong") as generate:
            result = await HttpInferenceProvider("local").infer("ping", {"purpose": "general"})
        assert result.text == "pong"
        generate.assert_called_once_with("ping", {"purpose": "general"}, "local")
