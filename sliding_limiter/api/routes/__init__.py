from __future__ import annotations

from sliding_limiter.api.routes.admission import router as admission_router
from sliding_limiter.api.routes.health import router as health_router

__all__ = ["admission_router", "health_router"]
