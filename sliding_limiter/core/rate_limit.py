"""Rate limiting dependency for FastAPI routes.

This module wires the sliding-log limiter into the HTTP layer:
- The client identity is the peer address (or the first X-Forwarded-For hop
  when the service runs behind a trusted proxy).
- DENY becomes HTTP 429.
- A poisoned limiter raises RateLimiterAppError, which the exception
  handlers turn into HTTP 500.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status

from sliding_limiter.adapters.rate_limit.base import AbstractRateLimiter, Decision
from sliding_limiter.adapters.rate_limit.clock import WallClock
from sliding_limiter.adapters.rate_limit.in_memory import SlidingLogRateLimiter
from sliding_limiter.core.config import settings
from sliding_limiter.utils.hashing import hash_identifier

logger = logging.getLogger(__name__)


_limiter: AbstractRateLimiter | None = None
_limiter_config: tuple[int, int] | None = None


def get_rate_limiter() -> AbstractRateLimiter:
    """Return a process-wide rate limiter instance.

    The instance is cached in-module to preserve state across requests.
    If configuration changes (primarily in tests), the limiter is rebuilt.

    Returns:
        AbstractRateLimiter: Configured limiter instance.
    """

    global _limiter, _limiter_config

    config = (
        settings.app.rate_limit_requests,
        settings.app.rate_limit_ticks,
    )

    if _limiter is None or _limiter_config != config:
        _limiter = SlidingLogRateLimiter(
            clock=WallClock(),
            limit=settings.app.rate_limit_requests,
            ticks=settings.app.rate_limit_ticks,
        )
        _limiter_config = config
        logger.info(
            "rate_limit.configured",
            extra={"limit": config[0], "ticks": config[1]},
        )

    return _limiter


def client_key(request: Request) -> str:
    """Extract the limiter key for the current request.

    Args:
        request: FastAPI request.

    Returns:
        str: Client address, used verbatim (no canonicalization).
    """

    if settings.app.trust_forwarded_for:
        forwarded_for = request.headers.get("X-Forwarded-For", "")
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop

    return request.client.host if request.client else "unknown"


async def enforce_rate_limit(request: Request) -> None:
    """FastAPI dependency enforcing per-client admission.

    Raises:
        HTTPException: 429 Too Many Requests when the request is denied.
        RateLimiterAppError: When the limiter state is poisoned.
    """

    if not settings.app.rate_limit_enabled:
        return

    limiter = get_rate_limiter()
    key = client_key(request)

    decision = limiter.try_add_request(key)
    if decision is Decision.ALLOW:
        logger.info(
            "rate_limit.allowed",
            extra={"key_hash": hash_identifier(key), "path": request.url.path},
        )
        return

    logger.warning(
        "rate_limit.denied",
        extra={
            "key_hash": hash_identifier(key),
            "path": request.url.path,
            "limit": settings.app.rate_limit_requests,
            "window_ms": settings.app.rate_limit_requests * settings.app.rate_limit_ticks,
        },
    )

    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Rate limit exceeded. Try again later.",
    )
