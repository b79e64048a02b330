# Elastic License 2.0
# Copyright (c) 2025 sliptonic
# SPDX-License-Identifier: Elastic-2.0

"""
Configuration management for the OAuth handoff service.

This module handles application configuration from environment variables.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_HMAC_SECRET = "change-me"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Assumptions:
    - Environment variables override defaults
    - Lists and dicts are given as JSON in the environment
      (e.g. OAUTH_PROVIDERS='["google", "github"]')
    - TTLs are in seconds
    - The client nonce outlives the server token
    """

    # Database
    database_url: str = "sqlite:///./handoff.db"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_version: str = "v1"

    # Cache backend: "memory", "database" or "redis"
    cache_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"

    # Tenancy
    default_tenant: str = "default"
    tenants: list[str] = []

    # Handoff protocol
    oauth_hmac_secret: str = DEFAULT_HMAC_SECRET
    tenant_secrets: dict[str, str] = {}
    server_token_ttl: int = 300
    client_nonce_ttl: int = 900

    # Sessions
    session_cookie: str = "session"
    session_lifetime: int = 86400

    # Providers
    oauth_providers: list[str] = ["google"]
    oauth_credentials: dict[str, dict[str, str]] = {}
    oauth_redirect_base_url: str = "http://localhost:8000"
    provider_timeout: float = 10.0

    # Where the callback sends the browser (session mode) or the app (stateless mode)
    frontend_url: str = "http://localhost:9000"
    app_callback_url: str = "handoff://oauth/callback"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False
    )


settings = Settings()
