"""Pydantic schemas for rate limiter error responses."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


RATE_LIMIT_MESSAGE = "Too many requests, please try again later."
INTERNAL_ERROR_MESSAGE = "An unexpected error occurred"


class RateLimitExceededResponse(BaseModel):
    """Body returned with HTTP 429 when a key is over quota or blocked."""

    model_config = ConfigDict(populate_by_name=True)

    status: Literal["ERROR"] = "ERROR"
    message: str = Field(
        RATE_LIMIT_MESSAGE,
        description="Human-readable explanation.",
    )
    retry_after: float = Field(
        ...,
        alias="retryAfter",
        ge=0,
        description="Seconds until the block expires (may be fractional).",
    )
    total_blocks: int = Field(
        ...,
        alias="totalBlocks",
        ge=0,
        description="How many times this key has been blocked.",
    )


class RateLimiterErrorResponse(BaseModel):
    """Body returned with HTTP 500 when the limiter fails unexpectedly."""

    status: Literal["ERROR"] = "ERROR"
    message: str = INTERNAL_ERROR_MESSAGE
