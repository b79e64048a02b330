# Elastic License 2.0
# Copyright (c) 2025 sliptonic
# SPDX-License-Identifier: Elastic-2.0

"""
Database schema for the handoff service using SQLAlchemy.

Defines the local user directory and the key-value table backing
the database cache.

Assumptions:
- Users are scoped to a tenant; (tenant, email) is unique
- provider_id is "{provider}_{subject}" (e.g. "google_123456")
- Cache entries hold JSON-encoded strings with an absolute expiry
"""
from datetime import datetime, UTC
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean, DateTime, Float, String, Text, UniqueConstraint,
    create_engine
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class TimestampMixin:
    """Mixin for timestamp fields.

    Assumptions:
    - created_at is set on insert
    - updated_at is updated on every change
    """
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC), nullable=False)


class User(Base, TimestampMixin):
    """Local user account created or matched from a remote OAuth identity.

    Assumptions:
    - Email is stored lowercase
    - OAuth-only accounts have no password
    - email_verified mirrors what the provider reported at creation
    """
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("tenant", "email", name="uq_users_tenant_email"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    tenant: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    provider_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class CacheEntry(Base):
    """Key-value row used by DatabaseCache.

    Assumptions:
    - key is the fully namespaced cache key
    - expires_at is a unix timestamp; rows past it are treated as absent
    """
    __tablename__ = "cache_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[float] = mapped_column(Float, nullable=False, index=True)


def init_db(engine=None):
    """Initialize database by creating all tables.

    Args:
        engine: SQLAlchemy engine (optional, creates default if not provided)

    Assumptions:
    - Creates all tables defined in Base.metadata
    - Safe to call multiple times (no-op if tables exist)
    """
    if engine is None:
        from handoff.config import settings
        engine = create_engine(settings.database_url)

    Base.metadata.create_all(engine)
    return engine
