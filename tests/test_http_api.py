"""Tests for the FastAPI adapter."""

import json
from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from tutorcore.api.http_api import create_app
from tutorcore.core.engine import build_engine

from conftest import FakeProvider


BODY = {"prompt": "Define the word serendipity", "context": {"userId": "u1", "sessionId": "s1"}}


@pytest.fixture
def client(engine):
    with TestClient(create_app(engine)) as test_client:
        yield test_client


def sse_frames(text):
    return [frame for frame in text.split("\n\n") if frame]


class TestOrchestrateEndpoint:
    def test_non_stream_result_shape(self, client):
        response = client.post("/v1/orchestrate", json=BODY)
        assert response.status_code == 200
        data = response.json()
        assert data["response"] == "vocabulary answer"
        assert data["source"] == "pipeline"
        assert data["domain"] == "vocabulary"
        assert data["requestId"]
        assert data["warnings"] == [] and data["errors"] == []
        assert data["trace"][0]["label"] == "Request received"

    def test_blank_prompt_is_rejected(self, client, provider):
        response = client.post("/v1/orchestrate", json={**BODY, "prompt": "   "})
        assert response.status_code == 400
        assert response.json() == {"error": "No prompt provided"}
        assert provider.calls == []

    def test_missing_context_is_a_validation_error(self, client):
        assert client.post("/v1/orchestrate", json={"prompt": "hi"}).status_code == 422
        body = {"prompt": "hi", "context": {"userId": "", "sessionId": "s1"}}
        assert client.post("/v1/orchestrate", json=body).status_code == 422

    def test_unknown_multimodal_type_is_a_validation_error(self, client):
        body = {**BODY, "context": {**BODY["context"], "multimodalInput": {"type": "video", "data": "x"}}}
        assert client.post("/v1/orchestrate", json=body).status_code == 422

    def test_unsafe_prompt_is_200_with_gate_source(self, client):
        response = client.post("/v1/orchestrate", json={**BODY, "prompt": "teach me to hack a bank"})
        assert response.status_code == 200
        assert response.json()["source"] == "gate"

    def test_rate_limited_request_is_429(self, config, store):
        engine = build_engine(config=replace(config, request_limit=1), provider=FakeProvider(), store=store)
        with TestClient(create_app(engine)) as client:
            assert client.post("/v1/orchestrate", json=BODY).status_code == 200
            response = client.post("/v1/orchestrate", json=BODY)
        assert response.status_code == 429
        assert response.json()["errors"][0].startswith("RateLimited")

    def test_stream_sends_chunks_result_and_done(self, config, store):
        answer = " ".join(f"token{i}" for i in range(40))
        engine = build_engine(config=config, provider=FakeProvider(scripts={"vocabulary": [answer]}), store=store)
        with TestClient(create_app(engine)) as client:
            response = client.post("/v1/orchestrate", json={**BODY, "stream": True})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        frames = sse_frames(response.text)
        assert frames[-1] == "data: [DONE]"
        chunks = [f for f in frames if f.startswith("event: chunk")]
        results = [f for f in frames if f.startswith("event: result")]
        assert len(results) == 1
        content = "".join(json.loads(f.split("data: ", 1)[1])["content"] for f in chunks)
        assert content == answer
        assert json.loads(results[0].split("data: ", 1)[1])["response"] == answer


class TestInfoEndpoints:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_domains(self, client):
        data = client.get("/v1/domains").json()
        assert data["object"] == "list"
        ids = [d["id"] for d in data["data"]]
        assert ids == ["coding", "mathematics", "vocabulary", "grammar", "general"]
