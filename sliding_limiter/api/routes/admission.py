from __future__ import annotations

from fastapi import APIRouter, Depends

from sliding_limiter.core.logging import get_request_id
from sliding_limiter.core.rate_limit import enforce_rate_limit
from sliding_limiter.schemas.admission import AdmissionResponse

router = APIRouter(tags=["Admission"])


@router.get(
    "/requests",
    response_model=AdmissionResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
async def admit_request() -> AdmissionResponse:
    """Rate-limited endpoint.

    Reaching the handler means the limiter admitted the request; denials are
    answered with 429 by the dependency.
    """
    return AdmissionResponse(request_id=get_request_id())
