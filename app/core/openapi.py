"""OpenAPI metadata and customization utilities.

Enriches the generated OpenAPI schema with:
- Tags metadata
- Documentation of the X-RateLimit-* and Retry-After response headers

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

RATE_LIMIT_HEADERS: Dict[str, Dict[str, Any]] = {
    "X-RateLimit-Limit": {
        "description": "Limit of the dimension that rejected the request.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Remaining": {
        "description": "Quota left in that dimension.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Reset": {
        "description": "UNIX epoch seconds when the dimension frees up.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Type": {
        "description": "Rejecting dimension: burst, requests, tokens or sessions.",
        "schema": {"type": "string"},
    },
    "Retry-After": {
        "description": "Seconds to wait before retrying.",
        "schema": {"type": "integer"},
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add tags and header docs.

    - Adds tags metadata if not present
    - Documents rate-limit headers on every operation that declares a 429
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Chat",
                "description": "Conversation endpoint guarded by admission control.",
            },
            {
                "name": "Admission",
                "description": "Read-only views of quotas and usage-store size.",
            },
            {
                "name": "Health",
                "description": "Liveness checks.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for methods in schema.get("paths", {}).values():
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                throttled = method_obj.get("responses", {}).get("429")
                if throttled is not None:
                    throttled.setdefault("headers", dict(RATE_LIMIT_HEADERS))

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
