# Elastic License 2.0
# Copyright (c) 2025 sliptonic
# SPDX-License-Identifier: Elastic-2.0

"""
OAuth2 authentication providers (Google, GitHub, Microsoft).

Each provider builds its authorization URL and turns a callback
(code or error) into a normalized RemoteIdentity.

Assumptions:
- Authorization code flow with a confidential client
- state is optional: session-mode redirects carry no state bound here
- Provider tokens are used once to read the profile and never stored
- Any failure leaves this module as ProviderError or ProviderDeniedError
"""
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import urlencode

import httpx
import structlog

logger = structlog.get_logger()


class ProviderError(Exception):
    """Raised when a provider cannot be reached or answers unexpectedly."""
    pass


class ProviderDeniedError(ProviderError):
    """Raised when the user or provider refused the authorization."""
    pass


@dataclass(frozen=True)
class RemoteIdentity:
    """Normalized user info returned by any provider."""

    provider: str
    subject: str
    email: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    email_verified: bool = True


class OAuth2Provider:
    """Base class for OAuth2 providers."""

    name: str = ""
    authorize_url: str = ""
    token_url: str = ""
    userinfo_url: str = ""
    scopes: tuple[str, ...] = ()

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        http_client: Optional[httpx.Client] = None
    ):
        """Initialize OAuth2 provider.

        Args:
            client_id: OAuth2 client ID
            client_secret: OAuth2 client secret
            redirect_uri: Callback URL registered with the provider
            http_client: Shared HTTP client (created if not given)
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.http = http_client or httpx.Client(timeout=10.0)

    def extra_authorization_params(self) -> dict[str, str]:
        """Provider-specific query parameters for the authorization URL."""
        return {}

    def get_authorization_url(self, state: Optional[str] = None) -> str:
        """Get OAuth2 authorization URL.

        Args:
            state: Value for the state parameter, omitted when None

        Returns:
            str: Authorization URL to redirect user to
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
        }
        params.update(self.extra_authorization_params())
        if state:
            params["state"] = state
        return f"{self.authorize_url}?{urlencode(params)}"

    def exchange_code_for_token(self, code: str) -> dict:
        """Exchange authorization code for access token.

        Args:
            code: Authorization code from the callback

        Returns:
            dict: Token response with access_token, etc.

        Raises:
            ProviderDeniedError: If the provider rejects the code
            ProviderError: On transport or server errors
        """
        data = {
            "grant_type": "authorization_code",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": self.redirect_uri,
            "code": code,
        }
        response = self._request("POST", self.token_url, data=data, headers={"Accept": "application/json"})
        tokens = response.json()
        if "error" in tokens or not tokens.get("access_token"):
            raise ProviderDeniedError(tokens.get("error", "missing access token"))
        return tokens

    def get_user_info(self, access_token: str) -> RemoteIdentity:
        """Get user information from the provider.

        Args:
            access_token: OAuth2 access token

        Returns:
            RemoteIdentity: Normalized identity
        """
        response = self._request("GET", self.userinfo_url, headers=self._auth_headers(access_token))
        return self.parse_user_info(response.json(), access_token)

    def parse_user_info(self, data: dict, access_token: str) -> RemoteIdentity:
        """Map a provider profile payload to a RemoteIdentity."""
        raise NotImplementedError

    def fetch_identity(self, params: Mapping[str, str]) -> RemoteIdentity:
        """Turn callback parameters into a remote identity.

        Args:
            params: Query or form parameters of the callback

        Returns:
            RemoteIdentity: Identity with subject and email set

        Raises:
            ProviderDeniedError: If consent was refused or the identity is incomplete
            ProviderError: On transport or server errors
        """
        if params.get("error"):
            raise ProviderDeniedError(params["error"])

        code = params.get("code")
        if not code:
            raise ProviderDeniedError("missing authorization code")

        tokens = self.exchange_code_for_token(code)
        identity = self.get_user_info(tokens["access_token"])

        if not identity.subject or not identity.email:
            raise ProviderDeniedError("identity without subject or email")
        return identity

    def _auth_headers(self, access_token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = self.http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name} request failed: {e}") from e

        if 400 <= response.status_code < 500:
            logger.info("provider_rejected_request", provider=self.name, status_code=response.status_code)
            raise ProviderDeniedError(f"{self.name} answered {response.status_code}")
        if response.status_code >= 500:
            raise ProviderError(f"{self.name} answered {response.status_code}")
        return response


class GoogleOAuth2Provider(OAuth2Provider):
    """Google OAuth2 provider (OpenID Connect userinfo)."""

    name = "google"
    authorize_url = "https://accounts.google.com/o/oauth2/v2/auth"
    token_url = "https://oauth2.googleapis.com/token"
    userinfo_url = "https://openidconnect.googleapis.com/v1/userinfo"
    scopes = ("openid", "email", "profile")

    def extra_authorization_params(self) -> dict[str, str]:
        return {"prompt": "select_account"}

    def parse_user_info(self, data: dict, access_token: str) -> RemoteIdentity:
        return RemoteIdentity(
            provider=self.name,
            subject=str(data.get("sub") or ""),
            email=data.get("email") or "",
            name=data.get("name"),
            avatar_url=data.get("picture"),
            email_verified=bool(data.get("email_verified", False)),
        )


class GitHubOAuth2Provider(OAuth2Provider):
    """GitHub OAuth2 provider.

    Assumptions:
    - /user may hide the email; the primary verified address is then
      read from /user/emails
    """

    name = "github"
    authorize_url = "https://github.com/login/oauth/authorize"
    token_url = "https://github.com/login/oauth/access_token"
    userinfo_url = "https://api.github.com/user"
    emails_url = "https://api.github.com/user/emails"
    scopes = ("read:user", "user:email")

    def parse_user_info(self, data: dict, access_token: str) -> RemoteIdentity:
        email = data.get("email")
        verified = False
        if email is None:
            response = self._request("GET", self.emails_url, headers=self._auth_headers(access_token))
            for entry in response.json():
                if entry.get("primary") and entry.get("verified"):
                    email = entry.get("email")
                    verified = True
                    break

        return RemoteIdentity(
            provider=self.name,
            subject=str(data.get("id") or ""),
            email=email or "",
            name=data.get("name") or data.get("login"),
            avatar_url=data.get("avatar_url"),
            email_verified=verified,
        )


class MicrosoftOAuth2Provider(OAuth2Provider):
    """Microsoft identity platform provider (common tenant)."""

    name = "microsoft"
    authorize_url = "https://login.microsoftonline.com/common/oauth2/v2.0/authorize"
    token_url = "https://login.microsoftonline.com/common/oauth2/v2.0/token"
    userinfo_url = "https://graph.microsoft.com/oidc/userinfo"
    scopes = ("openid", "email", "profile")

    def parse_user_info(self, data: dict, access_token: str) -> RemoteIdentity:
        return RemoteIdentity(
            provider=self.name,
            subject=str(data.get("sub") or ""),
            email=data.get("email") or "",
            name=data.get("name"),
            avatar_url=data.get("picture"),
            email_verified=True,
        )


PROVIDER_CLASSES: dict[str, type[OAuth2Provider]] = {
    GoogleOAuth2Provider.name: GoogleOAuth2Provider,
    GitHubOAuth2Provider.name: GitHubOAuth2Provider,
    MicrosoftOAuth2Provider.name: MicrosoftOAuth2Provider,
}


class ProviderRegistry:
    """Enabled providers, looked up by name."""

    def __init__(self, providers: Mapping[str, OAuth2Provider]):
        self._providers = dict(providers)

    @classmethod
    def from_settings(cls, settings, http_client: Optional[httpx.Client] = None) -> "ProviderRegistry":
        """Build providers listed in settings.oauth_providers.

        Args:
            settings: Application settings
            http_client: Shared HTTP client

        Returns:
            ProviderRegistry: Registry of configured providers

        Assumptions:
        - Unknown names and providers without credentials are skipped
        """
        http = http_client or httpx.Client(timeout=settings.provider_timeout)
        providers = {}
        for name in settings.oauth_providers:
            provider_class = PROVIDER_CLASSES.get(name)
            credentials = settings.oauth_credentials.get(name)
            if provider_class is None or not credentials:
                logger.warning("oauth_provider_skipped", provider=name)
                continue
            redirect_uri = (
                f"{settings.oauth_redirect_base_url.rstrip('/')}"
                f"/api/{settings.api_version}/auth/oauth/{name}/callback"
            )
            providers[name] = provider_class(
                client_id=credentials.get("client_id", ""),
                client_secret=credentials.get("client_secret", ""),
                redirect_uri=redirect_uri,
                http_client=http,
            )
        return cls(providers)

    def get(self, name: str) -> Optional[OAuth2Provider]:
        return self._providers.get(name)

    def names(self) -> list[str]:
        return sorted(self._providers)
