"""Domain handlers package.

- `base`: the `DomainHandler` protocol and the `HandlerContext` passed to it.
- `handlers`: prompt-backed handlers for the built-in domains and the general
  fallback handler.
"""
