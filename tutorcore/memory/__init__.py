"""Memory subsystem package.

Architectural role:
    Groups the stateful memory components used by the application:
    - `models`: session, user profile and project records plus the composed view.
    - `store`: persistent record stores (JSON files, in-memory).
    - `manager`: `MemoryStore`, the locked load/commit facade used by the engine.
    - `embedding_model`: shared embedding model bootstrap/singleton.
"""
