# Elastic License 2.0
# Copyright (c) 2025 sliptonic
# SPDX-License-Identifier: Elastic-2.0

"""
Main FastAPI application entry point.

This module creates and configures the FastAPI application.

Assumptions:
- FastAPI instance should include OpenAPI documentation
- API versioning is handled via path prefix
- Database schema is created on startup
- Log context is cleared after every request
"""
import argparse

import uvicorn
from fastapi import FastAPI, Request

from handoff.api.auth import router as auth_router
from handoff.api.oauth import router as oauth_router
from handoff.config import DEFAULT_HMAC_SECRET, Settings, settings
from handoff.logging_config import clear_context
from handoff.logging_utils import log_application_event, log_security_event

VERSION = "0.1.0"


def warn_if_default_secret(config: Settings) -> bool:
    """Log a security warning if any tenant signs with the built-in secret.

    Returns:
        bool: True if the default secret is in use
    """
    if config.oauth_hmac_secret != DEFAULT_HMAC_SECRET:
        return False
    tenants = [config.default_tenant, *config.tenants]
    if config.tenants and all(config.tenant_secrets.get(tenant) for tenant in tenants):
        return False
    log_security_event(
        "default_hmac_secret_in_use",
        reason="OAUTH_HMAC_SECRET is not set; signed tokens can be forged"
    )
    return True


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    from handoff.database.session import init_db
    init_db()

    app = FastAPI(
        title="OAuth Handoff",
        description="Cross-device OAuth login handoff for detached clients",
        version=VERSION,
        docs_url=f"/api/{settings.api_version}/docs",
        redoc_url=f"/api/{settings.api_version}/redoc",
        openapi_url=f"/api/{settings.api_version}/openapi.json",
    )

    @app.middleware("http")
    async def clear_log_context(request: Request, call_next):
        """Drop per-request log context once the response is ready."""
        try:
            return await call_next(request)
        finally:
            clear_context()

    @app.get("/api/health")
    async def health_check():
        """API health check endpoint.

        Returns:
            dict: Service status information
        """
        return {
            "service": "oauth-handoff",
            "version": VERSION,
            "status": "running"
        }

    app.include_router(auth_router)
    app.include_router(oauth_router)

    warn_if_default_secret(settings)

    log_application_event(
        "app_created",
        cache_backend=settings.cache_backend,
        providers=settings.oauth_providers
    )
    return app


def cli() -> None:
    """Run the API server with uvicorn."""
    parser = argparse.ArgumentParser(description="Run the OAuth handoff server")
    parser.add_argument("--host", default=settings.api_host)
    parser.add_argument("--port", type=int, default=settings.api_port)
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args()

    uvicorn.run(
        "handoff.main:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
    )


if __name__ == "__main__":
    cli()
