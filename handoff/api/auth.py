# Elastic License 2.0
# Copyright (c) 2025 sliptonic
# SPDX-License-Identifier: Elastic-2.0

"""
Session API endpoints.

Lets a browser or a detached client check and end the session produced
by an OAuth login.

Assumptions:
- All endpoints under /api/v1/auth
- The session ID travels in the cookie named settings.session_cookie
- Returns JSON responses
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from handoff.api.dependencies import get_sessions, get_settings, get_tenant
from handoff.auth.session import CacheSessionLayer
from handoff.auth.user import get_user_by_id
from handoff.config import Settings
from handoff.database.session import get_db


class UserResponse(BaseModel):
    """Response model for a user."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    is_active: bool
    created_at: datetime


def set_session_cookie(response: Response, session_id: str, config: Settings) -> None:
    """Attach the session cookie to a response.

    Assumptions:
    - Cookie is httponly, samesite=lax, and lives as long as the session
    """
    response.set_cookie(
        key=config.session_cookie,
        value=session_id,
        httponly=True,
        max_age=config.session_lifetime,
        samesite="lax"
    )


router = APIRouter(prefix="/api/v1/auth", tags=["authentication"])


@router.get("/me", response_model=UserResponse)
def get_current_user(
    request: Request,
    tenant: str = Depends(get_tenant),
    sessions: CacheSessionLayer = Depends(get_sessions),
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings)
):
    """Get current authenticated user.

    Returns:
        UserResponse: Current user object

    Raises:
        HTTPException: 401 if not authenticated
    """
    user_id = sessions.user_id_for(request.cookies.get(config.session_cookie))
    user = get_user_by_id(db, tenant, user_id) if user_id else None

    if user is None or not user.is_active:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated"
        )

    return UserResponse.model_validate(user)


@router.post("/logout")
def logout(
    request: Request,
    response: Response,
    sessions: CacheSessionLayer = Depends(get_sessions),
    config: Settings = Depends(get_settings)
):
    """Logout and clear session.

    Returns:
        dict: Success message
    """
    session_id = request.cookies.get(config.session_cookie)
    if session_id:
        sessions.destroy(session_id)

    response.delete_cookie(key=config.session_cookie)

    return {"message": "Logged out successfully"}
