"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any app import so the settings
singleton is built for the test environment.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"

os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123,test-api-key-456")
os.environ.setdefault("RATE_LIMIT_CLEANUP_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from unittest.mock import Mock  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter  # noqa: E402
from app.core.app_factory import create_app  # noqa: E402


@pytest.fixture
def clock() -> Mock:
    """Controllable time source starting at t=1000s."""
    return Mock(return_value=1000.0)


@pytest.fixture
def limiter(clock: Mock) -> InMemorySlidingWindowRateLimiter:
    """Fresh limiter per test, driven by the fake clock."""
    return InMemorySlidingWindowRateLimiter(clock=clock)


@pytest.fixture
def client(limiter: InMemorySlidingWindowRateLimiter) -> TestClient:
    """Test client for a fresh app wired to the fake-clock limiter."""
    return TestClient(create_app(rate_limiter=limiter))


@pytest.fixture
def valid_api_key_headers() -> dict[str, str]:
    return {"X-API-Key": "test-api-key-123"}
