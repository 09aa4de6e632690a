"""Application-level exception types.

Domain errors raised by adapters and the HTTP layer, mapped to JSON
responses by ``sliding_limiter.core.exception_handlers``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    error_type: str
    limit: int
    ticks: int
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class RateLimiterAppError(AppError):
    """Raised when the limiter's shared state can no longer be trusted.

    This is a server-side fault and must never be reported to clients as a
    rate limit decision.
    """
