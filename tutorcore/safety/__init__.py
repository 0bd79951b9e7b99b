"""Safety package.

Rule-based safety helpers and the request gate that decides whether a request
may enter the pipeline at all (denylist check plus per-user rate limit).
"""
