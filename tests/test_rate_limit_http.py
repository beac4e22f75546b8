"""Tests for the HTTP side of rate limiting: keys, dependency, middleware."""

from unittest.mock import MagicMock, Mock, patch

import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient
from starlette.requests import Request as StarletteRequest

from app.adapters.rate_limit.base import RateLimitConfig, RateLimitResult
from app.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter
from app.core.errors import ConfigurationAppError
from app.core.exception_handlers import setup_exception_handlers
from app.core.rate_limit import (
    RateLimit,
    build_rate_limit_headers,
    generate_key,
    get_client_ip,
    parse_exempt_paths,
    rate_limit_middleware,
)


def _make_request(headers: dict[str, str] | None = None, client: tuple[str, int] | None = ("10.0.0.9", 5000)):
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return StarletteRequest(scope)


async def _identify(request: Request) -> None:
    user = request.headers.get("X-User")
    if user:
        request.state.user_id = user


def _build_app(limiter, *, preset: str = "login") -> FastAPI:
    app = FastAPI()
    setup_exception_handlers(app)
    app.state.rate_limiter = limiter

    @app.post("/login", dependencies=[Depends(_identify), Depends(RateLimit(preset))])
    async def login() -> dict:
        return {"ok": True}

    @app.post("/reset", dependencies=[Depends(RateLimit("passwordReset"))])
    async def reset() -> dict:
        return {"ok": True}

    return app


@pytest.fixture
def app_client(limiter: InMemorySlidingWindowRateLimiter) -> TestClient:
    return TestClient(_build_app(limiter))


class TestKeyGeneration:
    def test_identity_takes_precedence(self) -> None:
        assert generate_key("42", "10.0.0.1", "/login") == "user:42:/login"

    def test_falls_back_to_ip(self) -> None:
        assert generate_key(None, "10.0.0.1", "/login") == "ip:10.0.0.1:/login"
        assert generate_key("", "10.0.0.1", "/login") == "ip:10.0.0.1:/login"


class TestClientIp:
    def test_forwarded_for_wins(self) -> None:
        request = _make_request({"X-Forwarded-For": "203.0.113.7", "X-Real-IP": "198.51.100.1"})
        assert get_client_ip(request) == "203.0.113.7"

    def test_real_ip_second(self) -> None:
        request = _make_request({"X-Real-IP": "198.51.100.1"})
        assert get_client_ip(request) == "198.51.100.1"

    def test_transport_address_third(self) -> None:
        assert get_client_ip(_make_request()) == "10.0.0.9"

    def test_loopback_when_nothing_is_known(self) -> None:
        assert get_client_ip(_make_request(client=None)) == "127.0.0.1"

    def test_empty_headers_are_skipped(self) -> None:
        request = _make_request({"X-Forwarded-For": "", "X-Real-IP": ""})
        assert get_client_ip(request) == "10.0.0.9"


class TestHeaders:
    def test_allowed_headers(self) -> None:
        result = RateLimitResult(
            allowed=True, limit=5, remaining=3, reset_at=1900.0, retry_after_seconds=None
        )

        assert build_rate_limit_headers(result) == {
            "X-RateLimit-Limit": "5",
            "X-RateLimit-Remaining": "3",
            "X-RateLimit-Reset": "1900000",
        }

    def test_blocked_headers_include_retry_after(self) -> None:
        result = RateLimitResult(
            allowed=False, limit=5, remaining=0, reset_at=4600.0, retry_after_seconds=3599.2
        )

        headers = build_rate_limit_headers(result)

        assert headers["Retry-After"] == "3600"
        assert headers["X-RateLimit-Remaining"] == "0"

    def test_remaining_is_floored_at_zero(self) -> None:
        result = RateLimitResult(
            allowed=True, limit=5, remaining=-2, reset_at=0.0, retry_after_seconds=None
        )

        assert build_rate_limit_headers(result)["X-RateLimit-Remaining"] == "0"


class TestRateLimitDependency:
    def test_allowed_requests_carry_headers(self, app_client: TestClient) -> None:
        response = app_client.post("/login")

        assert response.status_code == 200
        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.headers["X-RateLimit-Remaining"] == "4"
        assert response.headers["X-RateLimit-Reset"] == "1900000"

    def test_sixth_login_is_blocked_with_429(self, app_client: TestClient, clock: Mock) -> None:
        for i in range(5):
            clock.return_value = 1000.0 + i
            assert app_client.post("/login").status_code == 200

        clock.return_value = 1005.0
        response = app_client.post("/login")

        assert response.status_code == 429
        assert response.json() == {
            "status": "ERROR",
            "message": "Too many requests, please try again later.",
            "retryAfter": 3600.0,
            "totalBlocks": 1,
        }
        assert response.headers["Retry-After"] == "3600"
        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert response.headers["X-RateLimit-Reset"] == str(4605 * 1000)

    def test_retry_after_is_fractional_while_blocked(self, app_client: TestClient, clock: Mock) -> None:
        for _ in range(6):
            app_client.post("/login")

        clock.return_value = 1010.5
        response = app_client.post("/login")

        assert response.status_code == 429
        assert response.json()["retryAfter"] == pytest.approx(3589.5)
        assert response.headers["Retry-After"] == "3590"

    def test_block_lifts_after_block_duration(self, app_client: TestClient, clock: Mock) -> None:
        for _ in range(6):
            app_client.post("/login")

        clock.return_value = 1000.0 + 3600 + 1
        response = app_client.post("/login")

        assert response.status_code == 200
        assert response.headers["X-RateLimit-Remaining"] == "4"

    def test_paths_are_limited_independently(self, app_client: TestClient) -> None:
        for _ in range(6):
            app_client.post("/login")

        response = app_client.post("/reset")

        assert response.status_code == 200
        assert response.headers["X-RateLimit-Limit"] == "3"

    def test_identities_are_limited_independently(self, app_client: TestClient) -> None:
        for _ in range(6):
            app_client.post("/login", headers={"X-User": "alice"})

        assert app_client.post("/login", headers={"X-User": "alice"}).status_code == 429
        assert app_client.post("/login", headers={"X-User": "bob"}).status_code == 200
        # Anonymous callers from the same IP have their own key too
        assert app_client.post("/login").status_code == 200

    def test_forwarded_ips_are_limited_independently(self, app_client: TestClient) -> None:
        for _ in range(6):
            app_client.post("/login", headers={"X-Forwarded-For": "203.0.113.1"})

        assert app_client.post("/login", headers={"X-Forwarded-For": "203.0.113.1"}).status_code == 429
        assert app_client.post("/login", headers={"X-Forwarded-For": "203.0.113.2"}).status_code == 200

    def test_limiter_failure_rejects_request_with_500(self) -> None:
        broken = MagicMock()
        broken.check_and_record.side_effect = RuntimeError("registry corrupted")
        client = TestClient(_build_app(broken))

        response = client.post("/login")

        assert response.status_code == 500
        assert response.json() == {"status": "ERROR", "message": "An unexpected error occurred"}
        assert "registry corrupted" not in response.text

    def test_missing_limiter_rejects_request_with_500(self) -> None:
        app = _build_app(None)
        del app.state.rate_limiter
        client = TestClient(app)

        assert client.post("/login").status_code == 500

    def test_disabled_rate_limiting_is_a_noop(self, limiter: InMemorySlidingWindowRateLimiter) -> None:
        client = TestClient(_build_app(limiter))

        with patch("app.core.rate_limit.settings") as mock_settings:
            mock_settings.rate_limit.enabled = False
            for _ in range(10):
                response = client.post("/login")
                assert response.status_code == 200
                assert "X-RateLimit-Limit" not in response.headers

        assert len(limiter) == 0

    def test_headers_can_be_disabled(self, limiter: InMemorySlidingWindowRateLimiter) -> None:
        client = TestClient(_build_app(limiter))

        with patch("app.core.rate_limit.settings") as mock_settings:
            mock_settings.rate_limit.enabled = True
            mock_settings.rate_limit.include_headers = False
            response = client.post("/login")

        assert response.status_code == 200
        assert "X-RateLimit-Limit" not in response.headers
        assert len(limiter) == 1

    def test_unknown_preset_fails_at_registration(self) -> None:
        with pytest.raises(ConfigurationAppError):
            RateLimit("signup")

    def test_default_preset_uses_settings(self) -> None:
        assert RateLimit().config == RateLimitConfig(points=100, duration=60, block_duration=900)


class TestRateLimitMiddleware:
    @pytest.fixture
    def mw_client(self, limiter: InMemorySlidingWindowRateLimiter) -> TestClient:
        app = FastAPI()
        app.state.rate_limiter = limiter
        app.middleware("http")(rate_limit_middleware("password_reset", exempt_paths={"/health"}))

        @app.get("/items")
        async def items() -> dict:
            return {"items": []}

        @app.get("/health")
        async def health() -> dict:
            return {"status": "ok"}

        return TestClient(app)

    def test_applies_preset_to_every_request(self, mw_client: TestClient) -> None:
        for remaining in ("2", "1", "0"):
            response = mw_client.get("/items")
            assert response.status_code == 200
            assert response.headers["X-RateLimit-Remaining"] == remaining

        blocked = mw_client.get("/items")
        assert blocked.status_code == 429
        assert blocked.json()["totalBlocks"] == 1
        assert blocked.json()["retryAfter"] == 86400

    def test_exempt_paths_are_not_limited(self, mw_client: TestClient, limiter) -> None:
        for _ in range(10):
            response = mw_client.get("/health")
            assert response.status_code == 200
            assert "X-RateLimit-Limit" not in response.headers

        assert len(limiter) == 0

    def test_limiter_headers_override_handler_values(self, limiter) -> None:
        app = FastAPI()
        app.state.rate_limiter = limiter
        app.middleware("http")(rate_limit_middleware("password_reset"))

        @app.get("/items")
        async def items() -> JSONResponse:
            return JSONResponse(
                {"items": []},
                headers={"X-RateLimit-Limit": "999", "X-RateLimit-Remaining": "999"},
            )

        response = TestClient(app).get("/items")

        assert response.headers["X-RateLimit-Limit"] == "3"
        assert response.headers["X-RateLimit-Remaining"] == "2"

    def test_keys_are_namespaced_by_preset(self, mw_client: TestClient, limiter) -> None:
        mw_client.get("/items")

        assert "global:password_reset:ip:testclient:/items" in limiter
        assert "ip:testclient:/items" not in limiter

    def test_failure_rejects_request_with_500(self) -> None:
        broken = MagicMock()
        broken.check_and_record.side_effect = KeyError("boom")
        app = FastAPI()
        app.state.rate_limiter = broken
        app.middleware("http")(rate_limit_middleware("default"))

        @app.get("/items")
        async def items() -> dict:
            return {"items": []}

        response = TestClient(app).get("/items")

        assert response.status_code == 500
        assert response.json() == {"status": "ERROR", "message": "An unexpected error occurred"}

    def test_unknown_preset_fails_at_registration(self) -> None:
        with pytest.raises(ConfigurationAppError):
            rate_limit_middleware("bogus")


class TestExemptPaths:
    def test_parse(self) -> None:
        assert parse_exempt_paths(" /health , /docs,,") == {"/health", "/docs"}

    def test_parse_empty(self) -> None:
        assert parse_exempt_paths(None) == set()
        assert parse_exempt_paths("") == set()
