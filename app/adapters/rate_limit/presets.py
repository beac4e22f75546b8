"""Named rate limit presets for the platform endpoints.

Presets are resolved once, when a route or middleware is registered, so a
typo in a preset name fails at startup instead of on the first request.
"""

from __future__ import annotations

from enum import Enum

from app.adapters.rate_limit.base import RateLimitConfig
from app.core.config import RateLimitSettings
from app.core.errors import ConfigurationAppError


class RateLimitPreset(str, Enum):
    LOGIN = "login"
    PASSWORD_RESET = "password_reset"
    API_ACCESS = "api_access"
    DEFAULT = "default"


# camelCase names used by the clients of the previous Node server
_ALIASES = {
    "passwordReset": RateLimitPreset.PASSWORD_RESET,
    "apiAccess": RateLimitPreset.API_ACCESS,
}

_FIXED_PRESETS: dict[RateLimitPreset, RateLimitConfig] = {
    RateLimitPreset.LOGIN: RateLimitConfig(points=5, duration=900, block_duration=3600),
    RateLimitPreset.PASSWORD_RESET: RateLimitConfig(points=3, duration=3600, block_duration=86400),
    RateLimitPreset.API_ACCESS: RateLimitConfig(points=100, duration=3600),
}


def parse_preset(name: str | RateLimitPreset) -> RateLimitPreset:
    """Normalize a preset name (enum, snake_case or camelCase alias).

    Raises:
        ConfigurationAppError: If the name matches no preset.
    """
    if isinstance(name, RateLimitPreset):
        return name
    if name in _ALIASES:
        return _ALIASES[name]
    try:
        return RateLimitPreset(name)
    except ValueError as exc:
        raise ConfigurationAppError(
            code="unknown_rate_limit_preset",
            message=f"Unknown rate limit preset: {name!r}",
            details={
                "preset": str(name),
                "hint": "Use one of: " + ", ".join(p.value for p in RateLimitPreset),
            },
        ) from exc


def get_preset_config(
    name: str | RateLimitPreset,
    rate_limit_settings: RateLimitSettings | None = None,
) -> RateLimitConfig:
    """Return the configuration for a named preset.

    The ``default`` preset is built from settings so it can be tuned per
    environment; the others are fixed.

    Args:
        name: Preset name.
        rate_limit_settings: Settings providing the default preset values.
            When omitted, the built-in defaults (100 / 60s / 900s) are used.

    Returns:
        Validated RateLimitConfig.

    Raises:
        ConfigurationAppError: If the preset is unknown or the configured
            default values are invalid.
    """
    preset = parse_preset(name)
    if preset is not RateLimitPreset.DEFAULT:
        return _FIXED_PRESETS[preset]

    if rate_limit_settings is None:
        return RateLimitConfig()

    return RateLimitConfig(
        points=rate_limit_settings.default_points,
        duration=rate_limit_settings.default_duration_seconds,
        block_duration=rate_limit_settings.default_block_duration_seconds,
    )
