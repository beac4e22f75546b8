from __future__ import annotations

from fastapi import APIRouter, Request

from app.core.config import settings
from app.schemas.platform import HealthResponse, RateLimitStatus

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
def health_check(request: Request) -> HealthResponse:
    """Health check endpoint.

    Used by load balancers and monitoring systems to determine service health.
    Never rate limited. Also reports how many keys the limiter is tracking,
    which makes a stalled sweep visible.

    Returns:
        HealthResponse: ``status`` set to "ok" plus rate limiter state.
    """

    limiter = getattr(request.app.state, "rate_limiter", None)
    return HealthResponse(
        rate_limit=RateLimitStatus(
            enabled=settings.rate_limit.enabled,
            tracked_keys=len(limiter) if limiter is not None else 0,
        )
    )
