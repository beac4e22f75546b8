"""Pydantic schemas for platform and health endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class WelcomeResponse(BaseModel):
    message: str = "DeFi Management Platform API"


class RateLimitStatus(BaseModel):
    """Limiter state exposed by the health check."""

    enabled: bool = Field(..., description="Whether rate limiting is enforced.")
    tracked_keys: int = Field(
        ..., ge=0, description="Number of keys currently held in the tracker registry."
    )


class HealthResponse(BaseModel):
    status: str = "ok"
    rate_limit: RateLimitStatus


class DashboardUser(BaseModel):
    id: str = Field(..., description="Identity resolved from the caller's API key.")


class DashboardResponse(BaseModel):
    """Response for the authenticated dashboard endpoint."""

    message: str = "Dashboard accessed successfully"
    user: DashboardUser
