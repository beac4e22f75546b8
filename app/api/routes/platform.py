from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from app.adapters.rate_limit.presets import RateLimitPreset
from app.core.auth import authenticate
from app.core.rate_limit import RateLimit
from app.schemas.platform import DashboardResponse, DashboardUser, WelcomeResponse
from app.schemas.rate_limit import RateLimitExceededResponse, RateLimiterErrorResponse

router = APIRouter(tags=["Platform"])

RATE_LIMIT_RESPONSES = {
    429: {"model": RateLimitExceededResponse, "description": "Too many requests"},
    500: {"model": RateLimiterErrorResponse, "description": "Rate limiter failure"},
}


@router.get(
    "/",
    response_model=WelcomeResponse,
    responses=RATE_LIMIT_RESPONSES,
    dependencies=[Depends(RateLimit(RateLimitPreset.DEFAULT))],
)
def welcome() -> WelcomeResponse:
    """Public landing endpoint."""
    return WelcomeResponse()


@router.get(
    "/v1/dashboard",
    response_model=DashboardResponse,
    responses=RATE_LIMIT_RESPONSES,
    dependencies=[Depends(authenticate), Depends(RateLimit(RateLimitPreset.API_ACCESS))],
)
def dashboard(identity: Annotated[str | None, Depends(authenticate)]) -> DashboardResponse:
    """Authenticated dashboard endpoint.

    Route-level dependencies run in order, so authentication resolves the
    caller before the rate limit check and the quota is tracked per
    identity rather than per IP. The second ``authenticate`` is served from
    FastAPI's per-request dependency cache.
    """
    return DashboardResponse(user=DashboardUser(id=identity or "anonymous"))
