"""Prompting package.

Deterministic prompt-construction helpers for domain handlers, detection,
decomposition and aggregation. It does not perform routing, memory access or
model invocation.
"""
