# Elastic License 2.0
# Copyright (c) 2025 sliptonic
# SPDX-License-Identifier: Elastic-2.0

"""
Public outcome types of the OAuth handoff flow.

Assumptions:
- OAuthStatus values are stable machine-readable codes; messages are
  English display text and may change
- Only the coordinator turns internal failures into an OAuthStatus
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class OAuthStatus(str, Enum):
    """Closed set of outcomes reported to clients."""

    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    INVALID_NONCE = "INVALID_NONCE"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_PROVIDER = "INVALID_PROVIDER"
    PROVIDER_DENIED = "PROVIDER_DENIED"
    ACCOUNT_CONFLICT = "ACCOUNT_CONFLICT"
    EMAIL_NOT_VERIFIED = "EMAIL_NOT_VERIFIED"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    @property
    def code(self) -> str:
        return self.value

    @property
    def message(self) -> str:
        return _MESSAGES[self]

    @property
    def is_success(self) -> bool:
        return self is OAuthStatus.LOGIN_SUCCESS


_MESSAGES = {
    OAuthStatus.LOGIN_SUCCESS: "Logged in successfully.",
    OAuthStatus.INVALID_NONCE: "The login request is invalid or has expired.",
    OAuthStatus.INVALID_TOKEN: "The login response is invalid or has already been used.",
    OAuthStatus.INVALID_PROVIDER: "This login provider is not available.",
    OAuthStatus.PROVIDER_DENIED: "The login provider did not authorize the request.",
    OAuthStatus.ACCOUNT_CONFLICT: "An account with this email already exists.",
    OAuthStatus.EMAIL_NOT_VERIFIED: "The email address for this account is not verified.",
    OAuthStatus.INTERNAL_ERROR: "Login failed due to an internal error.",
}


class LoginMode(str, Enum):
    """How the login result is delivered."""

    SESSION = "SESSION"
    STATELESS = "STATELESS"


class OAuthError(Exception):
    """Raised by the coordinator for validation failures the caller must report."""

    def __init__(self, status: OAuthStatus):
        super().__init__(status.message)
        self.status = status


@dataclass(frozen=True)
class OAuthCallbackResult:
    """Outcome of a provider callback.

    Assumptions:
    - signed_nonce is set exactly when mode is STATELESS
    - session_id is set only for a successful SESSION mode login
    """

    status: OAuthStatus
    mode: LoginMode
    user_id: Optional[str] = None
    signed_nonce: Optional[str] = None
    session_id: Optional[str] = None


@dataclass(frozen=True)
class Redemption:
    """A redeemed client nonce and the session it produced."""

    user_id: str
    session_id: str
