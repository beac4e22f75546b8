"""Rate limiter interfaces.

The API should depend on this abstraction (not the concrete implementation)
so we can swap storage backends later (e.g., Redis) with minimal changes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from app.core.errors import ConfigurationAppError


@dataclass(frozen=True)
class RateLimitConfig:
    """Quota applied to a rate limit key.

    Attributes:
        points: Max accepted requests per window.
        duration: Window length in seconds.
        block_duration: Seconds a key stays blocked once it exceeds ``points``.

    Raises:
        ConfigurationAppError: If any field is out of range.
    """

    points: int = 100
    duration: float = 60
    block_duration: float = 900

    def __post_init__(self) -> None:
        if isinstance(self.points, bool) or not isinstance(self.points, int) or self.points < 1:
            raise ConfigurationAppError(
                code="invalid_rate_limit_config",
                message="points must be an integer >= 1",
                details={"field": "points", "value": self.points},
            )
        if self.duration <= 0:
            raise ConfigurationAppError(
                code="invalid_rate_limit_config",
                message="duration must be > 0 seconds",
                details={"field": "duration", "value": self.duration},
            )
        if self.block_duration < 0:
            raise ConfigurationAppError(
                code="invalid_rate_limit_config",
                message="block_duration must be >= 0 seconds",
                details={"field": "block_duration", "value": self.block_duration},
            )


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check/record operation.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the window resets, or when the
            block expires for a blocked key.
        retry_after_seconds: Seconds until the block expires (None when allowed).
        total_blocks: How many times this key has been blocked so far.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after_seconds: float | None
    total_blocks: int = 0


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    def check_and_record(
        self,
        key: str,
        config: RateLimitConfig,
        now: float | None = None,
    ) -> RateLimitResult:
        """Check the quota for a key and record the request when counted.

        Args:
            key: Unique identifier (e.g., ``user:42:/login``).
            config: Quota to enforce for this key.
            now: Current UNIX time in seconds; defaults to the limiter clock.

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

    @abstractmethod
    def sweep(self, now: float | None = None) -> int:
        """Remove idle, unblocked keys.

        Returns:
            Number of keys removed.
        """
        raise NotImplementedError

    @abstractmethod
    def __len__(self) -> int:
        """Number of keys currently tracked."""
        raise NotImplementedError
