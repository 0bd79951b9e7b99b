"""
HTTP API adapter for the tutorcore orchestration engine.

Architectural role:
- Expose the engine over HTTP (JSON and Server-Sent Events).
- Enforce adapter-level input validation with pydantic models.
- Delegate all orchestration to `OrchestrationEngine.process` / `.stream`.

Endpoint responsibilities:
- `GET /health`: liveness probe.
- `GET /v1/domains`: list the registered domains (plus `general`).
- `POST /v1/orchestrate`: validate input, run the engine, shape the response.

API request lifecycle (`POST /v1/orchestrate`):
1. Parse and validate `{prompt, context: {userId, sessionId, projectId?,
   multimodalInput?}, stream?}`.
2. Convert the payload to a `RequestContext`.
3. Non-stream: return `{response, trace, warnings, errors, source, domain,
   requestId}`. Rate-limited requests use HTTP 429; every other outcome is 200.
4. Stream: SSE `chunk` events, one `result` event, then `data: [DONE]`.

Input validation behavior:
- Schema violations -> HTTP 422 (FastAPI default).
- Blank prompt -> HTTP 400.

Side effects:
- Builds the default engine lazily on first use when none is injected.
- Emits request/response echo logs only when `DEBUG == "true"`.
"""

from dotenv import load_dotenv

load_dotenv()

import asyncio
import json
import logging
import os
from typing import Literal

from fastapi import FastAPI, Request
from fastapi.responses import StreamingResponse, JSONResponse
from pydantic import BaseModel, Field

from tutorcore.core.engine import OrchestrationEngine, build_engine
from tutorcore.core.routing_types import MultimodalInput, OrchestrationResult, RequestContext


logger = logging.getLogger(__name__)

# Sensitive request/response debug logging is opt-in.
DEBUG = os.getenv("DEBUG") == "true"


# ============================================================
# Request Schema
# ============================================================

class MultimodalInputModel(BaseModel):
    type: Literal["text", "image", "document", "audio"]
    data: str
    mimeType: str | None = None


class ContextModel(BaseModel):
    userId: str = Field(min_length=1)
    sessionId: str = Field(min_length=1)
    projectId: str | None = None
    multimodalInput: MultimodalInputModel | None = None


class OrchestrateRequest(BaseModel):
    prompt: str
    context: ContextModel
    stream: bool = False

    def to_context(self) -> RequestContext:
        mm = self.context.multimodalInput
        return RequestContext(
            user_id=self.context.userId,
            session_id=self.context.sessionId,
            project_id=self.context.projectId or None,
            multimodal_input=MultimodalInput(type=mm.type, data=mm.data, mime_type=mm.mimeType) if mm else None,
        )


# ============================================================
# Helpers
# ============================================================

def status_for(result: OrchestrationResult) -> int:
    if result.source == "gate" and any(e.startswith("RateLimited") for e in result.errors):
        return 429
    return 200


def sse_event(event: str | None, data) -> str:
    prefix = f"event: {event}\n" if event else ""
    body = data if isinstance(data, str) else json.dumps(data, ensure_ascii=False)
    return f"{prefix}data: {body}\n\n"


# ============================================================
# App factory
# ============================================================

def create_app(engine: OrchestrationEngine | None = None) -> FastAPI:
    """Build the FastAPI app around `engine` (default engine built on first use)."""
    api = FastAPI(title="tutorcore")
    api.state.engine = engine

    def get_engine() -> OrchestrationEngine:
        if api.state.engine is None:
            api.state.engine = build_engine()
        return api.state.engine

    @api.get("/health")
    def health():
        return {"status": "ok"}

    @api.get("/v1/domains")
    def list_domains():
        """Return registered domains as an OpenAI-style list envelope."""
        return {
            "object": "list",
            "data": [
                {"id": domain, "object": "domain", "owned_by": "local"}
                for domain in get_engine().domains
            ],
        }

    @api.post("/v1/orchestrate")
    async def orchestrate(body: OrchestrateRequest, request: Request):
        """
        Run one prompt through the orchestration engine.

        Error handling strategy:
        - Blank prompts are rejected with a structured 400 JSON error.
        - Engine-level failures never raise; they come back inside the result.
        - Streaming generator stops and cancels the producer on client disconnect.
        """
        if not body.prompt or not body.prompt.strip():
            return JSONResponse(status_code=400, content={"error": "No prompt provided"})

        context = body.to_context()
        engine = get_engine()

        if DEBUG:
            logger.info("API request user=%s session=%s stream=%s prompt=%r",
                        context.user_id, context.session_id, body.stream, body.prompt)

        if not body.stream:
            result = await engine.process(body.prompt, context)
            if DEBUG:
                logger.info("API response request=%s source=%s", result.request_id, result.source)
            return JSONResponse(status_code=status_for(result), content=result.to_dict())

        channel = engine.stream(body.prompt, context)

        async def event_generator():
            """
            Yield SSE frames for one streamed result.

            - `chunk` events carry consecutive answer slices.
            - The `result` event carries trace, warnings and errors.
            - The final sentinel frame is `data: [DONE]`.
            """
            try:
                async for event in channel:
                    if await request.is_disconnected():
                        logger.debug("Client disconnected during stream.")
                        return
                    if event.kind == "chunk":
                        yield sse_event("chunk", {"content": event.data})
                    elif event.kind == "result":
                        yield sse_event("result", event.data.to_dict())
                yield sse_event(None, "[DONE]")
            except (asyncio.CancelledError, BrokenPipeError, ConnectionResetError):
                logger.debug("Streaming cancelled by client.")
                raise
            finally:
                channel.cancel()

        return StreamingResponse(event_generator(), media_type="text/event-stream")

    return api


app = create_app()
