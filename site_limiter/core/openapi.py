"""OpenAPI customization.

Adds the admin API Key security scheme (``X-API-Key``) and tag metadata.
Only the admin reset operation requires the key; every other operation is
documented as public.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_TAGS = [
    {
        "name": "Rate Limit",
        "description": "Caller quota reporting and admin counter resets.",
    },
    {
        "name": "Health",
        "description": "Liveness and limiter backend health.",
    },
]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add tags and admin security."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        security_schemes = schema.setdefault("components", {}).setdefault(
            "securitySchemes", {}
        )
        security_schemes.setdefault(
            "AdminApiKey",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Admin API key, required to reset counters.",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        tags.extend(t for t in _TAGS if t["name"] not in existing_tag_names)

        for methods in schema.get("paths", {}).values():
            for method, operation in methods.items():
                if isinstance(operation, dict) and method == "delete":
                    operation["security"] = [{"AdminApiKey": []}]

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
