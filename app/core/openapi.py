"""OpenAPI customization utilities.

Enriches the generated OpenAPI schema with:
- Tags metadata
- API Key security scheme (``X-API-Key``) on the authenticated ``/v1`` paths
- ``X-RateLimit-*`` and ``Retry-After`` header docs on rate limited operations

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

TAGS_METADATA = [
    {
        "name": "Platform",
        "description": "DeFi management platform endpoints (rate limited).",
    },
    {
        "name": "Health",
        "description": "Liveness and readiness checks (never rate limited).",
    },
]

RATE_LIMIT_HEADERS: Dict[str, Any] = {
    "X-RateLimit-Limit": {
        "description": "Requests allowed per window.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Remaining": {
        "description": "Requests left in the current window (never negative).",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Reset": {
        "description": "UNIX time in milliseconds when the window resets or the block expires.",
        "schema": {"type": "integer"},
    },
}

RETRY_AFTER_HEADER: Dict[str, Any] = {
    "description": "Seconds to wait before retrying.",
    "schema": {"type": "integer"},
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata and security."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Provide your API key via the X-API-Key header.",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in TAGS_METADATA:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            for operation in methods.values():
                if not isinstance(operation, dict):
                    continue
                if path.startswith("/v1/"):
                    operation["security"] = [{"ApiKeyAuth": []}]

                responses = operation.get("responses", {})
                if "429" not in responses:
                    continue
                for status_code, response in responses.items():
                    if status_code.startswith("2") or status_code == "429":
                        response.setdefault("headers", {}).update(RATE_LIMIT_HEADERS)
                responses["429"]["headers"]["Retry-After"] = RETRY_AFTER_HEADER

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
