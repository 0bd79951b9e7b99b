"""External surfaces of tutorcore.

- `http_api`: FastAPI app exposing `/v1/orchestrate` (JSON or SSE), `/v1/domains`
  and `/health`.
- `cli`: interactive terminal loop over the same engine.
- `multimodal`: attachment-to-text summarization used by the engine.

Adapters validate and shape transport data only; orchestration lives in
`tutorcore.core`.
"""
