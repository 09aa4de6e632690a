"""Pydantic schemas for admission responses."""

from __future__ import annotations

from pydantic import BaseModel, Field

from sliding_limiter.adapters.rate_limit.base import Decision


class AdmissionResponse(BaseModel):
    """Body returned when a request passes the rate limiter."""

    decision: Decision = Field(
        Decision.ALLOW, description="Admission decision for this request."
    )
    request_id: str | None = Field(
        default=None, description="Correlation id of the request."
    )
