from __future__ import annotations

from app.api.routes.health import router as health_router
from app.api.routes.platform import router as platform_router

__all__ = ["health_router", "platform_router"]
