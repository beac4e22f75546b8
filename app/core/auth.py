"""API key authentication and caller identity resolution.

Keys are validated against a comma-separated list from environment
variables. A validated caller is identified by a short fingerprint of their
key, stored on ``request.state.user_id`` so the rate limiter can throttle
per caller instead of per IP.

Design principles:
- Dependency Injection: used via FastAPI Depends() ahead of RateLimit
- Configuration-driven: keys managed via env vars, not hardcoded
- Keys are never logged; only their fingerprint is
"""

from __future__ import annotations

import hashlib
import logging
from typing import Annotated

from fastapi import Header, HTTPException, Request, status

from app.core.config import settings
from app.core.errors import AuthenticationAppError

logger = logging.getLogger(__name__)


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Examples:
        >>> parse_api_keys("key1, key2 , key3 ")
        {'key1', 'key2', 'key3'}
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()

    return {key.strip() for key in keys_string.split(",") if key.strip()}


def api_key_fingerprint(api_key: str) -> str:
    """Stable, non-reversible identity for an API key."""
    return hashlib.sha256(api_key.encode()).hexdigest()[:16]


def validate_api_key(provided_key: str) -> None:
    """Validate that provided API key matches configured keys.

    Args:
        provided_key: API key to validate.

    Raises:
        AuthenticationAppError: If the key is invalid or no keys are
            configured.
    """
    valid_keys = parse_api_keys(settings.app.api_keys)

    if not valid_keys:
        logger.error(
            "auth.validation_failed",
            extra={
                "reason": "api_keys_not_configured",
                "auth_required": settings.app.api_key_required,
            },
        )
        raise AuthenticationAppError(
            code="api_keys_not_configured",
            message="API key authentication is enabled but no valid keys are configured",
            details={"hint": "Set APP_API_KEYS or disable auth with APP_API_KEY_REQUIRED=false"},
        )

    if provided_key not in valid_keys:
        logger.warning(
            "auth.validation_failed",
            extra={
                "reason": "invalid_api_key",
                "api_key_hash": api_key_fingerprint(provided_key),
            },
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )


def _set_identity(request: Request, api_key: str) -> str:
    identity = api_key_fingerprint(api_key)
    request.state.user_id = identity
    logger.info("auth.success", extra={"api_key_hash": identity})
    return identity


async def authenticate(
    request: Request,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> str | None:
    """FastAPI dependency resolving the caller identity from X-API-Key.

    On success the identity is stored on ``request.state.user_id`` and
    returned. Only a configured key yields an identity: with
    ``APP_API_KEY_REQUIRED=false`` a missing or unknown key is anonymous
    (None) and the limiter falls back to the client IP.

    Usage:
        @router.get("/v1/dashboard", dependencies=[Depends(authenticate), Depends(RateLimit("api_access"))])

    Raises:
        HTTPException: 403 Forbidden if authentication fails.
    """
    if not settings.app.api_key_required:
        if not x_api_key or x_api_key not in parse_api_keys(settings.app.api_keys):
            logger.debug(
                "auth.anonymous",
                extra={"reason": "auth_required_false", "api_key_present": bool(x_api_key)},
            )
            return None
        return _set_identity(request, x_api_key)

    if not x_api_key:
        logger.warning("auth.missing_key", extra={"api_key_present": False})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing API key. Provide X-API-Key header.",
        )

    try:
        validate_api_key(x_api_key)
    except AuthenticationAppError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.message,
        ) from exc

    return _set_identity(request, x_api_key)
