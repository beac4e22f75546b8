"""Rate limiting dependency and middleware for FastAPI.

This module wires the rate limiting adapter into the HTTP layer.

Design goals:
- Minimal coupling: routes depend on a dependency object only.
- Swap-friendly: the limiter lives behind ``AbstractRateLimiter`` and is
  owned by the application (``app.state.rate_limiter``), not this module.
- Fail fast on configuration: presets are resolved when a route or the
  global middleware is registered.
- Fail closed on errors: an unexpected limiter failure rejects the request
  with a 500, it never lets the request through.

Rate limiting strategy:
- Sliding window per key, where the key is the authenticated identity plus
  the request path, or the client IP plus the request path.
- Keys exceeding their quota are blocked for the preset's block duration.
"""

from __future__ import annotations

import hashlib
import logging
import math
from typing import Awaitable, Callable, Iterable

from fastapi import Request, Response

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitConfig, RateLimitResult
from app.adapters.rate_limit.presets import RateLimitPreset, get_preset_config, parse_preset
from app.core.config import settings
from app.core.errors import RateLimitExceededAppError, RateLimiterAppError
from app.core.exception_handlers import (
    build_rate_limit_exceeded_response,
    build_rate_limiter_error_response,
)

logger = logging.getLogger(__name__)

LOOPBACK_ADDRESS = "127.0.0.1"


def get_client_ip(request: Request) -> str:
    """Resolve the client IP address for a request.

    The first non-empty source wins: ``X-Forwarded-For``, ``X-Real-IP``,
    the transport peer address, then the loopback address.

    Args:
        request: Incoming request.

    Returns:
        str: Client IP (the forwarded-for header is used verbatim).
    """

    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip

    if request.client and request.client.host:
        return request.client.host

    return LOOPBACK_ADDRESS


def resolve_identity(request: Request) -> str | None:
    """Return the authenticated identity set by an auth dependency, if any."""

    return getattr(request.state, "user_id", None)


def generate_key(identity: str | None, ip: str, path: str) -> str:
    """Build the limiter key for an identity (or IP) and a path.

    Examples:
        >>> generate_key("42", "10.0.0.1", "/v1/auth/login")
        'user:42:/v1/auth/login'
        >>> generate_key(None, "10.0.0.1", "/v1/auth/login")
        'ip:10.0.0.1:/v1/auth/login'
    """

    if identity:
        return f"user:{identity}:{path}"
    return f"ip:{ip}:{path}"


def _hash_limiter_key(key: str) -> str:
    """Hash the rate limit key for logging without exposing identities."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def get_rate_limiter(request: Request) -> AbstractRateLimiter:
    """Return the limiter owned by the application handling this request."""

    return request.app.state.rate_limiter


def build_rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Build the X-RateLimit-* (and Retry-After when blocked) headers.

    ``X-RateLimit-Reset`` is a UNIX timestamp in milliseconds.
    """

    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(max(0, result.remaining)),
        "X-RateLimit-Reset": str(int(result.reset_at * 1000)),
    }
    if not result.allowed and result.retry_after_seconds is not None:
        headers["Retry-After"] = str(int(math.ceil(result.retry_after_seconds)))
    return headers


def check_request(
    request: Request,
    config: RateLimitConfig,
    *,
    preset: str,
    namespace: str | None = None,
) -> RateLimitResult:
    """Consume one request from the caller's quota.

    Args:
        request: Incoming request.
        config: Quota to enforce.
        preset: Preset name, for logging.
        namespace: Optional key prefix separating this quota from others
            applied to the same path.

    Returns:
        RateLimitResult for an allowed request.

    Raises:
        RateLimitExceededAppError: When the key is over quota or blocked.
        RateLimiterAppError: When the limiter fails unexpectedly.
    """

    identity = resolve_identity(request)
    path = request.url.path
    key = generate_key(identity, get_client_ip(request), path)
    if namespace:
        key = f"{namespace}:{key}"
    key_hash = _hash_limiter_key(key)
    key_type = "user" if identity else "ip"

    try:
        result = get_rate_limiter(request).check_and_record(key, config)
    except Exception as exc:
        logger.error(
            "rate_limit.error",
            extra={
                "key_hash": key_hash,
                "path": path,
                "preset": preset,
                "error_type": type(exc).__name__,
                "error_msg": str(exc),
            },
        )
        raise RateLimiterAppError(
            code="rate_limiter_failure",
            message="Rate limiter failed while checking the request",
            details={"path": path, "preset": preset},
        ) from exc

    if result.allowed:
        logger.debug(
            "rate_limit.allowed",
            extra={
                "key_type": key_type,
                "key_hash": key_hash,
                "preset": preset,
                "limit": result.limit,
                "remaining": result.remaining,
            },
        )
        return result

    retry_after = result.retry_after_seconds or 0.0
    logger.warning(
        "rate_limit.blocked",
        extra={
            "key_type": key_type,
            "key_hash": key_hash,
            "client_ip": get_client_ip(request),
            "path": path,
            "preset": preset,
            "retry_after_s": retry_after,
            "total_blocks": result.total_blocks,
        },
    )

    raise RateLimitExceededAppError(
        code="rate_limit_exceeded",
        message="Too many requests, please try again later.",
        details={
            "retry_after": retry_after,
            "total_blocks": result.total_blocks,
            "limit": result.limit,
            "reset_at": result.reset_at,
        },
    )


class RateLimit:
    """FastAPI dependency enforcing a named rate limit preset.

    Usage:
        @router.post("/auth/login", dependencies=[Depends(RateLimit("login"))])
        async def login(): ...

    The preset is resolved immediately, so an unknown name raises
    ``ConfigurationAppError`` while routes are being declared. When placed
    after an authentication dependency, the key uses the resolved identity.
    """

    def __init__(self, preset: str | RateLimitPreset = RateLimitPreset.DEFAULT) -> None:
        self.preset = parse_preset(preset)
        self.config = get_preset_config(self.preset, settings.rate_limit)

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"RateLimit(preset={self.preset.value!r}, config={self.config!r})"

    async def __call__(self, request: Request, response: Response) -> None:
        """Check the quota and attach rate limit headers to the response.

        Raises:
            RateLimitExceededAppError: 429, rendered by the exception handler.
            RateLimiterAppError: 500, rendered by the exception handler.
        """

        if not settings.rate_limit.enabled:
            return

        result = check_request(request, self.config, preset=self.preset.value)

        if settings.rate_limit.include_headers:
            response.headers.update(build_rate_limit_headers(result))


def parse_exempt_paths(paths: str | None) -> set[str]:
    """Parse a comma-separated path list into a set of trimmed paths."""
    if not paths:
        return set()
    return {path.strip() for path in paths.split(",") if path.strip()}


def rate_limit_middleware(
    preset: str | RateLimitPreset = RateLimitPreset.DEFAULT,
    *,
    exempt_paths: Iterable[str] = (),
) -> Callable[[Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]]:
    """Build an HTTP middleware applying a preset to every request.

    Exceptions raised inside HTTP middleware bypass the app exception
    handlers, so blocked and failed checks are rendered here directly.
    Keys are prefixed with ``global:<preset>`` so a route that also declares
    a ``RateLimit`` dependency keeps its own tracker for the same path.

    Usage:
        app.middleware("http")(rate_limit_middleware("api_access"))

    Args:
        preset: Preset applied to all non-exempt paths.
        exempt_paths: Exact paths that are never rate limited.

    Returns:
        Middleware coroutine function.

    Raises:
        ConfigurationAppError: If the preset is unknown.
    """

    resolved = parse_preset(preset)
    config = get_preset_config(resolved, settings.rate_limit)
    exempt = frozenset(exempt_paths)
    namespace = f"global:{resolved.value}"

    async def middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if not settings.rate_limit.enabled or request.url.path in exempt:
            return await call_next(request)

        try:
            result = check_request(request, config, preset=resolved.value, namespace=namespace)
        except RateLimitExceededAppError as exc:
            return build_rate_limit_exceeded_response(exc)
        except RateLimiterAppError:
            return build_rate_limiter_error_response()

        response = await call_next(request)
        if settings.rate_limit.include_headers:
            response.headers.update(build_rate_limit_headers(result))
        return response

    return middleware
