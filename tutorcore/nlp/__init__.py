"""NLP utilities for prompt routing.

Module scope:
- Prompt control commands (`commands`).
- Domain detection and task decomposition (`domain_router`).

Determinism profile:
- Keyword detection and command parsing are deterministic; the model-backed
  fallbacks run at temperature 0.
"""
