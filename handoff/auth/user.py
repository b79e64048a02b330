# Elastic License 2.0
# Copyright (c) 2025 sliptonic
# SPDX-License-Identifier: Elastic-2.0

"""
Local user directory for OAuth logins.

Finds or creates the local user for a remote identity.

Assumptions:
- Users are scoped to a tenant
- Email is case-insensitive and stored lowercase
- An existing account can only be entered from the provider identity it
  was created with (prevents takeover through another provider)
- A matched account must have a verified email
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from handoff.auth.oauth2 import RemoteIdentity
from handoff.auth.status import OAuthStatus
from handoff.database.schema import User


def provider_identifier(identity: RemoteIdentity) -> str:
    """Return the stored provider id for an identity (e.g. "google_123456")."""
    return f"{identity.provider}_{identity.subject}"


def get_user_by_id(session: Session, tenant: str, user_id: str) -> Optional[User]:
    """Get user by ID within a tenant.

    Args:
        session: Database session
        tenant: Tenant namespace
        user_id: User ID

    Returns:
        User: User object if found, None otherwise
    """
    user = session.get(User, user_id)
    if user is None or user.tenant != tenant:
        return None
    return user


def get_user_by_email(session: Session, tenant: str, email: str) -> Optional[User]:
    """Get user by email address within a tenant.

    Args:
        session: Database session
        tenant: Tenant namespace
        email: User email (case-insensitive)

    Returns:
        User: User object if found, None otherwise
    """
    stmt = select(User).where(User.tenant == tenant, User.email == email.lower())
    return session.scalar(stmt)


def create_oauth_user(session: Session, tenant: str, identity: RemoteIdentity) -> User:
    """Create a user from a remote identity.

    Args:
        session: Database session
        tenant: Tenant namespace
        identity: Identity returned by the provider

    Returns:
        User: Created user object

    Raises:
        IntegrityError: If the email is already registered in the tenant
    """
    user = User(
        tenant=tenant,
        email=identity.email.lower(),
        provider_id=provider_identifier(identity),
        name=identity.name,
        avatar_url=identity.avatar_url,
        email_verified=identity.email_verified,
        is_active=True
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


class SqlUserDirectory:
    """User directory backed by the users table."""

    def __init__(self, session: Session, tenant: str):
        self.session = session
        self.tenant = tenant

    def resolve_identity(self, provider: str, identity: RemoteIdentity) -> tuple[Optional[str], OAuthStatus]:
        """Find or create the local user for a remote identity.

        Args:
            provider: Provider name the identity came from
            identity: Normalized remote identity

        Returns:
            tuple: (user_id or None, status)

        Assumptions:
        - Existing user with another provider id -> ACCOUNT_CONFLICT
        - Existing user with unverified email -> EMAIL_NOT_VERIFIED
        - Inactive users are treated as a conflict
        - New user -> created, LOGIN_SUCCESS
        """
        user = get_user_by_email(self.session, self.tenant, identity.email)

        if user is None:
            try:
                user = create_oauth_user(self.session, self.tenant, identity)
            except IntegrityError:
                # Lost a race with a concurrent first login for the same email
                self.session.rollback()
                user = get_user_by_email(self.session, self.tenant, identity.email)
                if user is None:
                    raise
            else:
                return user.id, OAuthStatus.LOGIN_SUCCESS

        if user.provider_id != provider_identifier(identity) or not user.is_active:
            return None, OAuthStatus.ACCOUNT_CONFLICT

        if not user.email_verified:
            return None, OAuthStatus.EMAIL_NOT_VERIFIED

        return user.id, OAuthStatus.LOGIN_SUCCESS
