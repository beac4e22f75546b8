"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) and
owns the lifetime of the rate limiter: the limiter is created here, stored on
``app.state.rate_limiter`` and handed to the HTTP layer by reference, and the
background sweep is started and stopped by the lifespan.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from app.adapters.rate_limit.base import AbstractRateLimiter
from app.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter
from app.adapters.rate_limit.sweeper import RateLimitSweeper
from app.api.routes import health_router, platform_router
from app.core.config import settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import parse_exempt_paths, rate_limit_middleware

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Start the tracker sweep on startup and stop it on shutdown."""

    sweeper: RateLimitSweeper | None = None
    if settings.rate_limit.enabled and settings.rate_limit.cleanup_enabled:
        sweeper = RateLimitSweeper(
            app.state.rate_limiter,
            interval_seconds=settings.rate_limit.cleanup_interval_seconds,
        )
        sweeper.start()
    app.state.rate_limit_sweeper = sweeper

    logger.info(
        "app.started",
        extra={
            "env": settings.app_env,
            "rate_limit_enabled": settings.rate_limit.enabled,
            "global_preset": settings.rate_limit.global_preset,
        },
    )

    yield

    if sweeper is not None:
        await sweeper.stop()
    logger.info("app.stopped")


def create_app(rate_limiter: AbstractRateLimiter | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        rate_limiter: Limiter to use; a fresh in-memory limiter by default.
            Tests pass their own (e.g. with a fake clock).

    Returns:
        Configured FastAPI app with middleware, handlers and routers.

    Raises:
        ConfigurationAppError: If the configured global preset is unknown.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="DeFi Platform API",
        description=(
            "REST backend for the DeFi management platform. Endpoints are "
            "protected by a per-caller sliding-window rate limiter that blocks "
            "abusive keys for a cooldown period."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=lifespan,
    )

    if rate_limiter is None:
        rate_limiter = InMemorySlidingWindowRateLimiter()
    app.state.rate_limiter = rate_limiter

    # Middleware (the last registered runs first)
    if settings.rate_limit.global_preset:
        app.middleware("http")(
            rate_limit_middleware(
                settings.rate_limit.global_preset,
                exempt_paths=parse_exempt_paths(settings.rate_limit.exempt_paths),
            )
        )
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(platform_router)
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
