"""OpenAPI customization.

Adds the bearer token security scheme, tag descriptions, and documents the
429 response produced by the rate limiter on every rate-limited operation.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

TAGS_METADATA = [
    {"name": "Auth", "description": "Token verification. Limited to 5 requests per 15 minutes."},
    {"name": "API", "description": "Authenticated endpoints. Limited to 100 requests per 15 minutes."},
    {"name": "Health", "description": "Liveness checks. Not rate limited."},
]

RATE_LIMITED_RESPONSE = {
    "description": "Too many requests in the current window",
    "headers": {
        "Retry-After": {"schema": {"type": "integer"}},
        "X-RateLimit-Limit": {"schema": {"type": "integer"}},
        "X-RateLimit-Remaining": {"schema": {"type": "integer"}},
        "X-RateLimit-Reset": {"schema": {"type": "integer"}},
    },
    "content": {
        "application/json": {
            "example": {"error": "Too Many Requests", "message": "...", "retryAfter": 42}
        }
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation with security and rate limit docs."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        security_schemes = schema.setdefault("components", {}).setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "BearerAuth",
            {"type": "http", "scheme": "bearer", "description": "Session token."},
        )

        tags = schema.setdefault("tags", [])
        known = {t.get("name") for t in tags}
        tags.extend(tag for tag in TAGS_METADATA if tag["name"] not in known)

        for path, methods in schema.get("paths", {}).items():
            if not path.startswith("/api/"):
                continue
            for operation in methods.values():
                if not isinstance(operation, dict):
                    continue
                operation.setdefault("security", [{"BearerAuth": []}])
                operation.setdefault("responses", {}).setdefault("429", RATE_LIMITED_RESPONSE)

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
