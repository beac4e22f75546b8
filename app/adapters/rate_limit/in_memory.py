"""In-memory sliding-window rate limiter with blocking.

Notes:
- Per-process only: running multiple workers multiplies the effective limit,
  and a restart resets every counter.
- Thread-safe: the registry has its own lock for insert-if-absent and each
  tracker has a lock covering the check-then-record sequence.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitConfig, RateLimitResult


@dataclass
class _Tracker:
    requests: list[float] = field(default_factory=list)
    blocked_until: float | None = None
    total_blocks: int = 0
    window: float = 0.0
    evicted: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def is_blocked(self, now: float) -> bool:
        return self.blocked_until is not None and now < self.blocked_until

    def trim(self, now: float, window: float) -> None:
        cutoff = now - window
        self.requests = [ts for ts in self.requests if ts >= cutoff]


class InMemorySlidingWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter counting requests per key over a rolling window.

    Each key keeps the timestamps of its counted requests. When a request
    pushes the count above ``points`` the key is blocked for
    ``block_duration`` seconds; every request during the block is rejected
    without being counted. The block lifts on its own once it expires.

    Important:
        This limiter is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            clock: Time source function returning UNIX time in seconds.
        """
        self._clock = clock
        self._lock = threading.Lock()
        self._trackers: dict[str, _Tracker] = {}

    def __len__(self) -> int:
        return len(self._trackers)

    def __contains__(self, key: object) -> bool:
        return key in self._trackers

    def _get_or_create_tracker(self, key: str) -> _Tracker:
        """Return the tracker for key, creating it atomically when missing."""
        with self._lock:
            tracker = self._trackers.get(key)
            if tracker is None:
                tracker = _Tracker()
                self._trackers[key] = tracker
            return tracker

    def _build_allowed_result(
        self, *, config: RateLimitConfig, tracker: _Tracker, now: float
    ) -> RateLimitResult:
        """Build a RateLimitResult for an allowed request."""
        return RateLimitResult(
            allowed=True,
            limit=config.points,
            remaining=max(0, config.points - len(tracker.requests)),
            reset_at=now + config.duration,
            retry_after_seconds=None,
            total_blocks=tracker.total_blocks,
        )

    def _build_blocked_result(
        self, *, config: RateLimitConfig, tracker: _Tracker, now: float
    ) -> RateLimitResult:
        """Build a RateLimitResult for a blocked key."""
        blocked_until = tracker.blocked_until if tracker.blocked_until is not None else now
        return RateLimitResult(
            allowed=False,
            limit=config.points,
            remaining=0,
            reset_at=blocked_until,
            retry_after_seconds=max(0.0, blocked_until - now),
            total_blocks=tracker.total_blocks,
        )

    def check_and_record(
        self,
        key: str,
        config: RateLimitConfig,
        now: float | None = None,
    ) -> RateLimitResult:
        """Check the quota for key and record the request.

        A blocked key is rejected without recording the attempt. Otherwise
        the window is trimmed, the request is appended, and the key is
        blocked when the count exceeds ``config.points``.

        Args:
            key: Unique identifier for rate limiting.
            config: Quota to enforce.
            now: Current UNIX time in seconds; defaults to the limiter clock.

        Returns:
            RateLimitResult with allowance decision and metadata.

        Raises:
            ValueError: If key is empty.
        """
        if not key:
            raise ValueError("key must be a non-empty string")

        if now is None:
            now = self._clock()

        while True:
            tracker = self._get_or_create_tracker(key)
            with tracker.lock:
                if tracker.evicted:
                    # Swept between lookup and lock; retry on a fresh tracker.
                    continue

                if tracker.is_blocked(now):
                    return self._build_blocked_result(config=config, tracker=tracker, now=now)

                if tracker.blocked_until is not None:
                    tracker.blocked_until = None

                tracker.window = config.duration
                tracker.trim(now, config.duration)
                tracker.requests.append(now)

                if len(tracker.requests) > config.points:
                    tracker.blocked_until = now + config.block_duration
                    tracker.total_blocks += 1
                    return self._build_blocked_result(config=config, tracker=tracker, now=now)

                return self._build_allowed_result(config=config, tracker=tracker, now=now)

    def sweep(self, now: float | None = None) -> int:
        """Remove trackers with no in-window requests and no active block.

        Stale timestamps are trimmed with the tracker's last window before
        the emptiness check, so a key idle for longer than its window is
        reclaimed even though its request list was never trimmed by traffic.

        Keys are snapshotted first so the registry lock is never held for a
        full scan. Each candidate is re-checked under its own lock before
        removal.

        Args:
            now: Current UNIX time in seconds; defaults to the limiter clock.

        Returns:
            Number of trackers removed.
        """
        if now is None:
            now = self._clock()

        with self._lock:
            keys = list(self._trackers)

        removed = 0
        for key in keys:
            with self._lock:
                tracker = self._trackers.get(key)
            if tracker is None:
                continue

            with tracker.lock:
                tracker.trim(now, tracker.window)
                if tracker.requests or tracker.is_blocked(now):
                    continue
                with self._lock:
                    if self._trackers.get(key) is tracker:
                        del self._trackers[key]
                        tracker.evicted = True
                        removed += 1

        return removed

    def snapshot(self, key: str) -> dict | None:
        """Return a copy of the tracker state for key (None when untracked)."""
        with self._lock:
            tracker = self._trackers.get(key)
        if tracker is None:
            return None
        with tracker.lock:
            return {
                "requests": list(tracker.requests),
                "blocked_until": tracker.blocked_until,
                "total_blocks": tracker.total_blocks,
            }
