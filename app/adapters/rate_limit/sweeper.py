"""Background sweep of idle rate limit trackers.

The sweeper is an asyncio task owned by the application lifespan: it is
started after the limiter is created and stopped on shutdown, so tests can
simply leave it off.
"""

from __future__ import annotations

import asyncio
import logging
import time

from app.adapters.rate_limit.base import AbstractRateLimiter

logger = logging.getLogger(__name__)


class RateLimitSweeper:
    """Periodically calls ``limiter.sweep()`` on a fixed interval."""

    def __init__(self, limiter: AbstractRateLimiter, *, interval_seconds: float = 3600) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._limiter = limiter
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> int:
        """Run a single sweep and log the outcome."""
        start = time.perf_counter()
        removed = self._limiter.sweep()
        logger.info(
            "rate_limit.sweep",
            extra={
                "removed": removed,
                "tracked_keys": len(self._limiter),
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self.run_once()
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "rate_limit.sweep_failed",
                    extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
                )

    def start(self) -> None:
        """Start the sweep loop on the running event loop (idempotent)."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="rate-limit-sweeper")
        logger.info("rate_limit.sweeper_started", extra={"interval_s": self._interval})

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("rate_limit.sweeper_stopped")
