# Elastic License 2.0
# Copyright (c) 2025 sliptonic
# SPDX-License-Identifier: Elastic-2.0

"""
Database session management.

This module provides database session management utilities including
the get_db dependency for FastAPI and session factory.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from handoff.config import settings

engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    pool_recycle=3600,  # Recycle connections after 1 hour
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Session:
    """Dependency for getting database session.

    Yields:
        Session: Database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create database tables if they don't exist.

    Assumptions:
    - Safe to call multiple times
    - Does not drop or modify existing tables
    """
    from handoff.database.schema import init_db as create_tables  # Import here to avoid circular imports
    from handoff.logging_utils import log_application_event

    create_tables(engine)
    log_application_event("database_initialized", database_url=settings.database_url)
