"""Application-level exception types.

This module defines domain errors used across adapters and the HTTP layer,
enabling consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context; every field is optional."""

    hint: str
    field: str
    value: Any
    preset: str
    path: str
    retry_after: float
    total_blocks: int
    limit: int
    reset_at: float


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


class ConfigurationAppError(AppError):
    """Raised when rate limit configuration is invalid or a preset is unknown.

    This is a programmer error and is raised at startup or route
    registration, never per request.
    """


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class RateLimitExceededAppError(AppError):
    """Raised by the HTTP layer when a key is over quota or blocked."""


class RateLimiterAppError(AppError):
    """Raised when the limiter fails unexpectedly while checking a request.

    The request is rejected with a generic 500 rather than allowed through.
    """
