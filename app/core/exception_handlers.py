"""Exception handlers mapping application errors to HTTP responses.

Status mapping:
- RateLimitExceededAppError: 429 with the limiter body and headers
- RateLimiterAppError: 500, the request is rejected rather than let through
- AuthenticationAppError: 403
- ConfigurationAppError: 500 without details
- Any other AppError: 400
- Anything else: 500 with a generic message

Bodies of non-limiter errors carry the request id of the failing request.
"""

import logging
import math

from fastapi import Request
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.errors import (
    AppError,
    AuthenticationAppError,
    ConfigurationAppError,
    RateLimitExceededAppError,
    RateLimiterAppError,
)
from app.core.logging import get_request_id
from app.schemas.rate_limit import RateLimitExceededResponse, RateLimiterErrorResponse

logger = logging.getLogger(__name__)


def build_rate_limit_exceeded_response(exc: RateLimitExceededAppError) -> JSONResponse:
    """Render a blocked request as HTTP 429.

    Body: ``{status, message, retryAfter, totalBlocks}``. When header output
    is enabled, ``Retry-After`` and the ``X-RateLimit-*`` headers are added.
    """
    details = exc.details or {}
    retry_after = float(details.get("retry_after", 0.0))
    body = RateLimitExceededResponse(
        message=exc.message,
        retry_after=retry_after,
        total_blocks=int(details.get("total_blocks", 0)),
    )

    headers: dict[str, str] = {}
    if settings.rate_limit.include_headers:
        headers["Retry-After"] = str(int(math.ceil(retry_after)))
        if "limit" in details:
            headers["X-RateLimit-Limit"] = str(details["limit"])
        headers["X-RateLimit-Remaining"] = "0"
        if "reset_at" in details:
            headers["X-RateLimit-Reset"] = str(int(details["reset_at"] * 1000))

    return JSONResponse(
        status_code=429,
        content=body.model_dump(by_alias=True),
        headers=headers or None,
    )


def build_rate_limiter_error_response() -> JSONResponse:
    """Render a limiter failure as a generic HTTP 500."""
    return JSONResponse(
        status_code=500,
        content=RateLimiterErrorResponse().model_dump(),
    )


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceededAppError) -> JSONResponse:
    """Handle requests rejected by the rate limiter dependency."""
    return build_rate_limit_exceeded_response(exc)


async def rate_limiter_error_handler(request: Request, exc: RateLimiterAppError) -> JSONResponse:
    """Handle unexpected limiter failures by rejecting the request.

    The failure was already logged with key and path context where it was
    raised; this adds the request correlation.
    """
    logger.error(
        "rate_limiter_error_handled",
        extra={
            "error_code": exc.code,
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )
    return build_rate_limiter_error_response()


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render an AppError as ``{"error": {code, message, request_id[, details]}}``.

    Rejected API keys map to 403 and bad limiter configuration to 500;
    everything else is treated as a client error.
    """
    status_code = 400
    if isinstance(exc, AuthenticationAppError):
        status_code = 403
    elif isinstance(exc, ConfigurationAppError):
        status_code = 500

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_id": get_request_id(),
        }
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }

    # Configuration details are for operators, not clients
    if exc.details and status_code < 500:
        error_content["details"] = exc.details

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log an unhandled exception and answer with a generic 500."""
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        }
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Attach the handlers above to app.

    Starlette dispatches on the most specific exception class, so the rate
    limiter handlers win over the generic AppError handler.
    """
    app.exception_handler(RateLimitExceededAppError)(rate_limit_exceeded_handler)
    app.exception_handler(RateLimiterAppError)(rate_limiter_error_handler)
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
