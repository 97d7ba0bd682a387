"""
rate_limit.py — Global rate limiter instance.

Uses slowapi (a Starlette-compatible wrapper around the `limits` library).
Requests are keyed by client IP address. Only endpoints that fan out to
expensive upstream calls opt in (strike commands, activity trail queries
driven by a time slider).

Usage in routes:
    from fastapi import Request
    from regionwatch.core.rate_limit import limiter

    @router.post("/some-endpoint")
    @limiter.limit("5/minute")
    async def my_endpoint(request: Request, ...):
        ...
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)
