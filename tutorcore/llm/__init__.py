"""LLM access package.

Architectural role:
    Provides provider configuration, request-payload construction, transport
    adapters and the async `InferenceProvider` used by orchestration layers.

Module split:
    - `provider_config`: environment-driven provider and model configuration.
    - `service`: canonical prompt-to-payload adapter.
    - `client`: provider-specific HTTP transport and response parsing.
    - `provider`: `InferenceProvider` protocol and the HTTP-backed implementation.
"""
