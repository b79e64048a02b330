# Elastic License 2.0
# Copyright (c) 2025 sliptonic
# SPDX-License-Identifier: Elastic-2.0

"""
Dependency injection utilities for FastAPI endpoints.

Builds the per-request handoff core: tenant, cache, stores and coordinator.

Assumptions:
- The tenant comes from the X-Tenant header (default tenant otherwise)
- Memory and Redis caches are process-wide; the database cache uses the
  request's database session
- Providers are built once per process
"""
from functools import lru_cache
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from handoff.auth.client_nonce import ClientNonceStore
from handoff.auth.coordinator import OAuthHandoffCoordinator
from handoff.auth.oauth2 import ProviderRegistry
from handoff.auth.server_token import ServerTokenStore
from handoff.auth.session import CacheSessionLayer
from handoff.auth.signer import Signer
from handoff.auth.user import SqlUserDirectory
from handoff.cache import Cache, DatabaseCache, MemoryCache, RedisCache
from handoff.config import Settings, settings
from handoff.database.session import get_db
from handoff.logging_config import bind_context
from handoff.tenancy import (
    SettingsSecretProvider, UnknownTenantError, resolve_tenant, tenant_namespace
)

__all__ = [
    'get_settings',
    'get_tenant',
    'get_cache',
    'get_providers',
    'get_sessions',
    'get_coordinator',
]

_memory_cache = MemoryCache()
_provider_registry: Optional[ProviderRegistry] = None


def get_settings() -> Settings:
    """Return application settings (overridable in tests)."""
    return settings


def get_tenant(
    x_tenant: Annotated[Optional[str], Header()] = None,
    config: Settings = Depends(get_settings)
) -> str:
    """Resolve the tenant for the request and bind it to the log context.

    Raises:
        HTTPException: 404 if the tenant is unknown
    """
    try:
        tenant = resolve_tenant(x_tenant, config)
    except UnknownTenantError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Unknown tenant"
        )
    bind_context(tenant=tenant)
    return tenant


@lru_cache
def _redis_cache(url: str) -> RedisCache:
    return RedisCache.from_url(url)


def get_cache(
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings)
) -> Cache:
    """Return the configured cache backend.

    Raises:
        ValueError: If settings.cache_backend is not recognized
    """
    backend = config.cache_backend.lower()
    if backend == "memory":
        return _memory_cache
    if backend == "database":
        return DatabaseCache(db)
    if backend == "redis":
        return _redis_cache(config.redis_url)
    raise ValueError(f"Unknown cache backend: {config.cache_backend}")


def get_providers(config: Settings = Depends(get_settings)) -> ProviderRegistry:
    """Return the provider registry, built on first use."""
    global _provider_registry
    if _provider_registry is None:
        _provider_registry = ProviderRegistry.from_settings(config)
    return _provider_registry


def get_sessions(
    cache: Cache = Depends(get_cache),
    tenant: str = Depends(get_tenant),
    config: Settings = Depends(get_settings)
) -> CacheSessionLayer:
    """Return the session layer for the tenant."""
    return CacheSessionLayer(cache, tenant_namespace(tenant), config.session_lifetime)


def get_coordinator(
    tenant: str = Depends(get_tenant),
    cache: Cache = Depends(get_cache),
    providers: ProviderRegistry = Depends(get_providers),
    sessions: CacheSessionLayer = Depends(get_sessions),
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings)
) -> OAuthHandoffCoordinator:
    """Build the handoff coordinator for the tenant of this request."""
    namespace = tenant_namespace(tenant)
    signer = Signer(SettingsSecretProvider(config).secret_for(tenant))

    return OAuthHandoffCoordinator(
        providers=providers,
        server_tokens=ServerTokenStore(cache, signer, namespace, config.server_token_ttl),
        client_nonces=ClientNonceStore(cache, signer, namespace, config.client_nonce_ttl),
        users=SqlUserDirectory(db, tenant),
        sessions=sessions,
        enabled_providers=config.oauth_providers,
        tenant=tenant
    )
