"""OpenAPI metadata and customization utilities.

Enriches the generated OpenAPI schema with:
- Tags metadata
- Two header security schemes: ``X-Admin-Key`` for the operational
  endpoints and ``X-Tenant-ID`` for tenant-limited endpoints

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

ADMIN_PATH_PREFIXES = ("/v1/jobs", "/v1/audit-logs")
TENANT_PATH_PREFIXES = ("/v1/client",)

TAGS_METADATA = [
    {"name": "Jobs", "description": "Scheduler status and monthly reset job control."},
    {"name": "Retention", "description": "Audit log retention policy and cleanup."},
    {"name": "Client", "description": "Tenant-facing endpoints subject to rate and monthly limits."},
    {"name": "Health", "description": "Liveness checks."},
]


def _security_for(path: str) -> list[dict[str, list]]:
    if path.startswith(ADMIN_PATH_PREFIXES):
        return [{"AdminKeyAuth": []}]
    if path.startswith(TENANT_PATH_PREFIXES):
        return [{"TenantIdHeader": []}]
    return []


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add tags and security schemes.

    Each operation gets the scheme matching its path prefix; everything else
    (health) is marked ``security: []``.
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "AdminKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-Admin-Key",
                "description": "Admin key configured through APP_ADMIN_API_KEYS.",
            },
        )
        security_schemes.setdefault(
            "TenantIdHeader",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-Tenant-ID",
                "description": "Tenant id forwarded by the authenticating gateway.",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in TAGS_METADATA:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            security = _security_for(path)
            for method_obj in methods.values():
                if isinstance(method_obj, dict):
                    method_obj["security"] = security

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
