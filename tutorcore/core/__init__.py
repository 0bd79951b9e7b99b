"""Core orchestration package.

Architectural role:
    Exposes the request-orchestration layer that sits between API/CLI entrypoints
    and lower-level subsystems (routing, domain handlers, memory, cache and LLM
    adapters).

Composition:
    - `engine`: pipeline implementation and the `build_engine` factory.
    - `dispatch` / `aggregator`: concurrent fan-out and answer synthesis.
    - `hooks`: pre/post extension points.
    - `trace`: request-scoped decision trace and `RequestScope`.
    - `streaming`: `ResponseChannel` for incremental delivery.
    - `routing_types`, `errors`, `settings`: shared contracts and configuration.

Determinism and side effects:
    Package import itself is deterministic and side-effect free.
"""
