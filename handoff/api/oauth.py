# Elastic License 2.0
# Copyright (c) 2025 sliptonic
# SPDX-License-Identifier: Elastic-2.0

"""
OAuth handoff API endpoints.

Assumptions:
- All endpoints under /api/v1/auth/oauth
- Errors are JSON {"error": <status code>, "message": <text>}
- Callbacks always answer with a redirect; the outcome travels in ?message=
- Session mode sets the session cookie on the callback response; stateless
  mode hands the signed nonce to the app through app_callback_url
"""
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Form, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from handoff.api.auth import UserResponse, set_session_cookie
from handoff.api.dependencies import get_coordinator, get_settings, get_tenant
from handoff.auth.coordinator import OAuthHandoffCoordinator
from handoff.auth.server_token import TokenCollisionError
from handoff.auth.status import LoginMode, OAuthCallbackResult, OAuthError, OAuthStatus
from handoff.auth.user import get_user_by_id
from handoff.config import Settings
from handoff.database.session import get_db


class NonceResponse(BaseModel):
    """Response model for nonce creation."""
    nonce: str


class RedeemRequest(BaseModel):
    """Request model for nonce redemption."""
    nonce: str


class RedeemResponse(BaseModel):
    """Response model for a successful redemption."""
    status: str
    message: str
    user: UserResponse


def error_response(oauth_status: OAuthStatus, status_code: int = status.HTTP_400_BAD_REQUEST) -> JSONResponse:
    """Build the JSON error body for a failed handoff step."""
    return JSONResponse(
        status_code=status_code,
        content={"error": oauth_status.code, "message": oauth_status.message}
    )


def _with_query(url: str, params: dict[str, str]) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(params)}"


def callback_response(result: OAuthCallbackResult, config: Settings) -> RedirectResponse:
    """Turn a callback result into the redirect for the user agent.

    Args:
        result: Outcome from the coordinator
        config: Application settings

    Returns:
        RedirectResponse: 302 to the frontend or to the app deep link
    """
    if result.mode is LoginMode.STATELESS and result.signed_nonce:
        target = _with_query(
            config.app_callback_url,
            {"message": result.status.code, "nonce": result.signed_nonce}
        )
        return RedirectResponse(target, status_code=status.HTTP_302_FOUND)

    response = RedirectResponse(
        _with_query(config.frontend_url, {"message": result.status.code}),
        status_code=status.HTTP_302_FOUND
    )
    if result.session_id:
        set_session_cookie(response, result.session_id, config)
    return response


router = APIRouter(prefix="/api/v1/auth/oauth", tags=["oauth"])


@router.post("/nonce", response_model=NonceResponse, status_code=status.HTTP_201_CREATED)
def create_nonce(coordinator: OAuthHandoffCoordinator = Depends(get_coordinator)):
    """Create a client nonce for a detached client.

    Returns:
        NonceResponse: Raw nonce to pass to the redirect endpoint
    """
    try:
        return NonceResponse(nonce=coordinator.create_nonce())
    except TokenCollisionError:
        return error_response(OAuthStatus.INTERNAL_ERROR, status.HTTP_500_INTERNAL_SERVER_ERROR)


@router.get("/{provider}/redirect")
def redirect(
    provider: str,
    nonce: Optional[str] = None,
    coordinator: OAuthHandoffCoordinator = Depends(get_coordinator)
):
    """Redirect to the provider's authorization page.

    Args:
        provider: Provider name
        nonce: Raw client nonce (stateless mode); omit for session mode

    Returns:
        302 to the provider, or 400 JSON error
    """
    try:
        url = coordinator.build_redirect(provider, nonce)
    except OAuthError as e:
        return error_response(e.status)
    except TokenCollisionError:
        return error_response(OAuthStatus.INTERNAL_ERROR, status.HTTP_500_INTERNAL_SERVER_ERROR)
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


@router.get("/{provider}/callback")
def callback(
    provider: str,
    request: Request,
    coordinator: OAuthHandoffCoordinator = Depends(get_coordinator),
    config: Settings = Depends(get_settings)
):
    """Handle the provider callback (query parameters)."""
    params = dict(request.query_params)
    result = coordinator.handle_callback(provider, params.get("state", ""), params)
    return callback_response(result, config)


@router.post("/{provider}/callback")
def callback_form_post(
    provider: str,
    state: str = Form(""),
    code: Optional[str] = Form(None),
    error: Optional[str] = Form(None),
    coordinator: OAuthHandoffCoordinator = Depends(get_coordinator),
    config: Settings = Depends(get_settings)
):
    """Handle the provider callback (response_mode=form_post)."""
    params = {key: value for key, value in {"state": state, "code": code, "error": error}.items() if value}
    result = coordinator.handle_callback(provider, state, params)
    return callback_response(result, config)


@router.post("/redeem", response_model=RedeemResponse)
def redeem(
    body: RedeemRequest,
    tenant: str = Depends(get_tenant),
    coordinator: OAuthHandoffCoordinator = Depends(get_coordinator),
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings)
):
    """Redeem a signed nonce for a session.

    Returns:
        RedeemResponse: Logged-in user; the session cookie is set

    Assumptions:
    - 400 with INVALID_NONCE while the login is still pending, so the
      client can poll until the nonce expires
    """
    try:
        redemption = coordinator.redeem_nonce(body.nonce)
    except OAuthError as e:
        return error_response(e.status)

    user = get_user_by_id(db, tenant, redemption.user_id)
    if user is None:
        return error_response(OAuthStatus.INTERNAL_ERROR)

    response = JSONResponse(
        content=RedeemResponse(
            status=OAuthStatus.LOGIN_SUCCESS.code,
            message=OAuthStatus.LOGIN_SUCCESS.message,
            user=UserResponse.model_validate(user)
        ).model_dump(mode="json")
    )
    set_session_cookie(response, redemption.session_id, config)
    return response
