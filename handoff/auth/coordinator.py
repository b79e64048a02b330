# Elastic License 2.0
# Copyright (c) 2025 sliptonic
# SPDX-License-Identifier: Elastic-2.0

"""
Orchestration of the cross-device OAuth handoff.

The HTTP layer calls only this module. Two login paths share one callback:

Session mode (browser keeps a cookie):
    build_redirect(provider)          -> provider URL, no state bound here
    handle_callback(provider, "")     -> user logged in, session established

Stateless mode (detached client holds a nonce):
    create_nonce()                    -> raw nonce
    build_redirect(provider, nonce)   -> provider URL with signed server token as state
    handle_callback(provider, state)  -> token consumed, user bound to nonce,
                                         signed nonce returned for the deep link
    redeem_nonce(signed_nonce)        -> nonce deleted, session established

Assumptions:
- Stores never raise for absence; this module maps absence to OAuthStatus
- handle_callback never raises; everything becomes a status
- build_redirect and redeem_nonce raise OAuthError for caller mistakes
- Protocol violations are logged as security events
"""
from typing import Iterable, Mapping, Optional, Protocol

import structlog

from handoff.auth.client_nonce import ClientNonceStore
from handoff.auth.oauth2 import ProviderDeniedError, ProviderError, RemoteIdentity
from handoff.auth.server_token import ServerTokenStore
from handoff.auth.status import (
    LoginMode, OAuthCallbackResult, OAuthError, OAuthStatus, Redemption
)
from handoff.logging_utils import log_application_event, log_audit_event, log_security_event

logger = structlog.get_logger()


class ProviderClient(Protocol):
    def get_authorization_url(self, state: Optional[str] = None) -> str: ...

    def fetch_identity(self, params: Mapping[str, str]) -> RemoteIdentity: ...


class ProviderLookup(Protocol):
    def get(self, name: str) -> Optional[ProviderClient]: ...


class UserDirectory(Protocol):
    def resolve_identity(self, provider: str, identity: RemoteIdentity) -> tuple[Optional[str], OAuthStatus]: ...


class SessionLayer(Protocol):
    def establish(self, user_id: str) -> str: ...


class OAuthHandoffCoordinator:
    """Runs the redirect, callback and redemption steps for one tenant."""

    def __init__(
        self,
        providers: ProviderLookup,
        server_tokens: ServerTokenStore,
        client_nonces: ClientNonceStore,
        users: UserDirectory,
        sessions: SessionLayer,
        enabled_providers: Optional[Iterable[str]] = None,
        tenant: Optional[str] = None
    ):
        """Initialize coordinator.

        Args:
            providers: Provider lookup by name
            server_tokens: Server token store for the tenant
            client_nonces: Client nonce store for the tenant
            users: User directory for the tenant
            sessions: Session layer for the tenant
            enabled_providers: Allowed provider names (None allows any known provider)
            tenant: Tenant name, used for logging only
        """
        self.providers = providers
        self.server_tokens = server_tokens
        self.client_nonces = client_nonces
        self.users = users
        self.sessions = sessions
        self.enabled_providers = set(enabled_providers) if enabled_providers is not None else None
        self.tenant = tenant

    def _provider(self, name: str) -> Optional[ProviderClient]:
        if self.enabled_providers is not None and name not in self.enabled_providers:
            return None
        return self.providers.get(name)

    def create_nonce(self) -> str:
        """Create a client nonce for a detached client."""
        nonce = self.client_nonces.create()
        log_application_event("oauth_nonce_created", tenant=self.tenant, nonce=nonce)
        return nonce

    def build_redirect(self, provider: str, nonce: Optional[str] = None) -> str:
        """Build the provider authorization URL.

        Args:
            provider: Provider name
            nonce: Raw client nonce for stateless mode, empty for session mode

        Returns:
            str: URL to redirect the user agent to

        Raises:
            OAuthError: INVALID_PROVIDER for unknown/disabled providers,
                INVALID_NONCE for unknown, expired or already bound nonces
        """
        client = self._provider(provider)
        if client is None:
            raise OAuthError(OAuthStatus.INVALID_PROVIDER)

        if not nonce:
            log_application_event("oauth_redirect_built", tenant=self.tenant, provider=provider, mode=LoginMode.SESSION.value)
            return client.get_authorization_url(None)

        if not self.client_nonces.is_pending(nonce):
            log_security_event("oauth_invalid_nonce", reason="redirect requested for unknown nonce", provider=provider, nonce=nonce)
            raise OAuthError(OAuthStatus.INVALID_NONCE)

        # The token must not outlive the nonce it points at
        signed_token = self.server_tokens.issue(nonce, ttl=self.client_nonces.remaining_lifetime(nonce))
        log_application_event("oauth_redirect_built", tenant=self.tenant, provider=provider, mode=LoginMode.STATELESS.value)
        return client.get_authorization_url(signed_token)

    def handle_callback(
        self,
        provider: str,
        state: Optional[str],
        params: Optional[Mapping[str, str]] = None
    ) -> OAuthCallbackResult:
        """Complete a login from a provider callback.

        Args:
            provider: Provider name from the callback route
            state: Value of the state parameter ("" or None in session mode)
            params: All callback parameters (code, error, ...)

        Returns:
            OAuthCallbackResult: Status, mode, user and delivery handles
        """
        params = params or {}
        nonce = None
        mode = LoginMode.SESSION

        try:
            if state:
                nonce = self.server_tokens.resolve(state)
            if nonce is not None:
                mode = LoginMode.STATELESS
            if state and nonce is None:
                log_security_event("oauth_invalid_state", reason="unknown, expired or replayed state", provider=provider, state=state)
                return OAuthCallbackResult(status=OAuthStatus.INVALID_TOKEN, mode=mode)
            return self._complete_callback(provider, state, params, nonce, mode)
        except Exception:
            logger.exception("oauth_callback_failed", provider=provider, mode=mode.value, tenant=self.tenant)
            return self._result(OAuthStatus.INTERNAL_ERROR, mode, None, nonce)

    def _complete_callback(
        self,
        provider: str,
        state: Optional[str],
        params: Mapping[str, str],
        nonce: Optional[str],
        mode: LoginMode
    ) -> OAuthCallbackResult:
        client = self._provider(provider)
        if client is None:
            return self._result(OAuthStatus.INVALID_PROVIDER, mode, None, nonce)

        try:
            identity = client.fetch_identity(params)
        except ProviderDeniedError as e:
            log_application_event("oauth_provider_denied", tenant=self.tenant, provider=provider, reason=str(e))
            return self._result(OAuthStatus.PROVIDER_DENIED, mode, None, nonce)
        except ProviderError as e:
            logger.error("oauth_provider_error", provider=provider, error=str(e), tenant=self.tenant)
            return self._result(OAuthStatus.INTERNAL_ERROR, mode, None, nonce)

        user_id, status = self.users.resolve_identity(provider, identity)
        if not status.is_success or user_id is None:
            log_application_event("oauth_login_rejected", tenant=self.tenant, provider=provider, status=status.code)
            return self._result(status, mode, None, nonce)

        if mode is LoginMode.SESSION:
            session_id = self.sessions.establish(user_id)
            log_audit_event(user_id, "oauth_login", tenant=self.tenant, provider=provider, mode=mode.value)
            return OAuthCallbackResult(
                status=OAuthStatus.LOGIN_SUCCESS,
                mode=mode,
                user_id=user_id,
                session_id=session_id
            )

        if not self.server_tokens.consume(state):
            log_security_event("oauth_protocol_violation", user_id=user_id, reason="server token consumed concurrently", provider=provider)
            return self._result(OAuthStatus.INTERNAL_ERROR, mode, user_id, nonce)

        if self.client_nonces.remaining_lifetime(nonce) is None:
            log_application_event("oauth_nonce_expired", tenant=self.tenant, provider=provider, nonce=nonce)
            return self._result(OAuthStatus.INVALID_NONCE, mode, None, nonce)

        if not self.client_nonces.bind_user(nonce, user_id):
            log_security_event("oauth_protocol_violation", user_id=user_id, reason="client nonce already bound", provider=provider, nonce=nonce)
            return self._result(OAuthStatus.INTERNAL_ERROR, mode, user_id, nonce)

        log_audit_event(user_id, "oauth_login", tenant=self.tenant, provider=provider, mode=mode.value)
        return self._result(OAuthStatus.LOGIN_SUCCESS, mode, user_id, nonce)

    def _result(
        self,
        status: OAuthStatus,
        mode: LoginMode,
        user_id: Optional[str],
        nonce: Optional[str]
    ) -> OAuthCallbackResult:
        signed_nonce = None
        if mode is LoginMode.STATELESS and nonce is not None:
            signed_nonce = self.client_nonces.signed_handle(nonce)
        return OAuthCallbackResult(status=status, mode=mode, user_id=user_id, signed_nonce=signed_nonce)

    def redeem_nonce(self, signed_nonce: Optional[str]) -> Redemption:
        """Redeem a signed nonce for a session.

        Args:
            signed_nonce: Signed handle delivered to the detached client

        Returns:
            Redemption: User ID and the new session ID

        Raises:
            OAuthError: INVALID_NONCE if the nonce is invalid, pending,
                expired or already redeemed
        """
        user_id = self.client_nonces.redeem(signed_nonce)
        if user_id is None:
            # Also reached while a client polls a nonce that is still pending
            log_application_event("oauth_redeem_rejected", tenant=self.tenant, nonce=signed_nonce)
            raise OAuthError(OAuthStatus.INVALID_NONCE)

        session_id = self.sessions.establish(user_id)
        log_audit_event(user_id, "oauth_nonce_redeemed", tenant=self.tenant, nonce=signed_nonce)
        return Redemption(user_id=user_id, session_id=session_id)
