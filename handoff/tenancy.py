# Elastic License 2.0
# Copyright (c) 2025 sliptonic
# SPDX-License-Identifier: Elastic-2.0

"""
Tenant resolution and per-tenant secrets.

Assumptions:
- The tenant is chosen before the handoff core is built
- Cache namespace is derived from the tenant name only
- A tenant without its own secret falls back to the global secret
"""
import re
from typing import Optional

from handoff.config import Settings

TENANT_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,100}$")


class UnknownTenantError(Exception):
    """Raised when a request names a tenant that is not configured."""
    pass


def resolve_tenant(requested: Optional[str], settings: Settings) -> str:
    """Resolve the tenant for a request.

    Args:
        requested: Tenant named by the request (header), may be empty
        settings: Application settings

    Returns:
        str: Tenant name

    Raises:
        UnknownTenantError: If the name is malformed or not in settings.tenants

    Assumptions:
    - Empty settings.tenants accepts any well-formed name
    """
    tenant = requested or settings.default_tenant
    if not TENANT_PATTERN.match(tenant):
        raise UnknownTenantError(tenant)
    if settings.tenants and tenant not in settings.tenants and tenant != settings.default_tenant:
        raise UnknownTenantError(tenant)
    return tenant


def tenant_namespace(tenant: str) -> str:
    """Return the cache key prefix for a tenant."""
    return f"tenant:{tenant}"


class SettingsSecretProvider:
    """Supplies the HMAC secret for a tenant from settings."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def secret_for(self, tenant: str) -> str:
        return self.settings.tenant_secrets.get(tenant) or self.settings.oauth_hmac_secret
