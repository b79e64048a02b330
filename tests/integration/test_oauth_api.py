# Elastic License 2.0
# Copyright (c) 2025 sliptonic
# SPDX-License-Identifier: Elastic-2.0

"""
Integration tests for the OAuth handoff HTTP API.

Assumptions:
- The client fixture overrides settings, providers, cache and database
- Fake providers turn ?code=<name> into <name>@example.com
- Redirects are inspected, never followed
"""
from urllib.parse import parse_qs, urlparse

import pytest

OAUTH = "/api/v1/auth/oauth"


def query(url):
    """Return the query parameters of a URL as a flat dict."""
    return {key: values[0] for key, values in parse_qs(urlparse(url).query).items()}


def start_login(client, provider="google", headers=None):
    """Create a nonce and follow it to the provider; return (nonce, state)."""
    response = client.post(f"{OAUTH}/nonce", headers=headers)
    assert response.status_code == 201
    nonce = response.json()["nonce"]

    response = client.get(
        f"{OAUTH}/{provider}/redirect",
        params={"nonce": nonce},
        headers=headers,
        follow_redirects=False
    )
    assert response.status_code == 302
    return nonce, query(response.headers["location"])["state"]


@pytest.mark.integration
def test_health_check(client):
    """Test the health endpoint."""
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["service"] == "oauth-handoff"
    assert response.json()["status"] == "running"


@pytest.mark.integration
def test_stateless_login_via_http(client):
    """Test the complete detached-client flow over HTTP.

    Assumptions:
    - The callback redirects to the app deep link with the signed nonce
    - Redeem returns the user and sets the session cookie
    - The session cookie authenticates /me
    """
    _, state = start_login(client)

    response = client.get(
        f"{OAUTH}/google/callback",
        params={"code": "alice", "state": state},
        follow_redirects=False
    )
    assert response.status_code == 302
    location = response.headers["location"]
    assert location.startswith("handoff://oauth/callback?")
    params = query(location)
    assert params["message"] == "LOGIN_SUCCESS"
    assert "session" not in response.cookies

    response = client.post(f"{OAUTH}/redeem", json={"nonce": params["nonce"]})
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "LOGIN_SUCCESS"
    assert body["user"]["email"] == "alice@example.com"
    assert response.cookies.get("session")

    response = client.get("/api/v1/auth/me")
    assert response.status_code == 200
    assert response.json()["email"] == "alice@example.com"


@pytest.mark.integration
def test_session_login_via_http(client):
    """Test the browser flow.

    Assumptions:
    - Redirect without nonce carries no state
    - Callback sets the cookie and redirects to the frontend
    """
    response = client.get(f"{OAUTH}/google/redirect", follow_redirects=False)
    assert response.status_code == 302
    assert "state" not in query(response.headers["location"])

    response = client.get(f"{OAUTH}/google/callback", params={"code": "bob"}, follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "http://frontend.test/login?message=LOGIN_SUCCESS"
    assert response.cookies.get("session")

    assert client.get("/api/v1/auth/me").json()["email"] == "bob@example.com"


@pytest.mark.integration
def test_form_post_callback(client):
    """Test callbacks delivered with response_mode=form_post."""
    _, state = start_login(client)

    response = client.post(
        f"{OAUTH}/google/callback",
        data={"code": "carol", "state": state},
        follow_redirects=False
    )

    assert response.status_code == 302
    assert query(response.headers["location"])["message"] == "LOGIN_SUCCESS"


@pytest.mark.integration
def test_replayed_callback_is_invalid_token(client):
    """Test that the same state cannot complete two logins."""
    _, state = start_login(client)
    client.get(f"{OAUTH}/google/callback", params={"code": "alice", "state": state}, follow_redirects=False)

    response = client.get(
        f"{OAUTH}/google/callback",
        params={"code": "alice", "state": state},
        follow_redirects=False
    )

    assert response.status_code == 302
    assert response.headers["location"] == "http://frontend.test/login?message=INVALID_TOKEN"
    assert "session" not in response.cookies


@pytest.mark.integration
def test_denied_consent_reports_provider_denied(client):
    """Test that refusing consent reaches the app as PROVIDER_DENIED."""
    _, state = start_login(client)

    response = client.get(
        f"{OAUTH}/google/callback",
        params={"error": "access_denied", "state": state},
        follow_redirects=False
    )

    params = query(response.headers["location"])
    assert params["message"] == "PROVIDER_DENIED"
    assert params["nonce"]


@pytest.mark.integration
def test_redirect_unknown_provider(client):
    """Test 400 JSON for a provider that is not enabled."""
    response = client.get(f"{OAUTH}/myspace/redirect", follow_redirects=False)

    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_PROVIDER"
    assert response.json()["message"]


@pytest.mark.integration
def test_redirect_unknown_nonce(client):
    """Test 400 JSON for a nonce the server never issued."""
    response = client.get(f"{OAUTH}/google/redirect", params={"nonce": "f" * 64}, follow_redirects=False)

    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_NONCE"


@pytest.mark.integration
def test_redeem_pending_then_bound(client, signer):
    """Test polling redeem before and after the callback.

    Assumptions:
    - A pending nonce answers 400 INVALID_NONCE and stays usable
    """
    nonce, state = start_login(client)
    signed = signer.signed_form(nonce)

    response = client.post(f"{OAUTH}/redeem", json={"nonce": signed})
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_NONCE"

    client.get(f"{OAUTH}/google/callback", params={"code": "alice", "state": state}, follow_redirects=False)

    assert client.post(f"{OAUTH}/redeem", json={"nonce": signed}).status_code == 200
    assert client.post(f"{OAUTH}/redeem", json={"nonce": signed}).status_code == 400


@pytest.mark.integration
def test_redeem_requires_nonce_field(client):
    """Test request validation of the redeem body."""
    response = client.post(f"{OAUTH}/redeem", json={})

    assert response.status_code == 422


@pytest.mark.integration
def test_tenant_header_isolates_logins(client):
    """Test that a nonce created for one tenant is unknown to another.

    Assumptions:
    - acme has its own secret and namespace
    """
    acme = {"X-Tenant": "acme"}
    response = client.post(f"{OAUTH}/nonce")
    nonce = response.json()["nonce"]

    response = client.get(
        f"{OAUTH}/google/redirect",
        params={"nonce": nonce},
        headers=acme,
        follow_redirects=False
    )
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_NONCE"

    _, state = start_login(client)
    response = client.get(
        f"{OAUTH}/google/callback",
        params={"code": "alice", "state": state},
        headers=acme,
        follow_redirects=False
    )
    assert query(response.headers["location"])["message"] == "INVALID_TOKEN"


@pytest.mark.integration
def test_tenant_login_and_session_scope(client):
    """Test a full login in a non-default tenant.

    Assumptions:
    - The session is only valid for the tenant it was created in
    """
    acme = {"X-Tenant": "acme"}
    _, state = start_login(client, headers=acme)

    response = client.get(
        f"{OAUTH}/google/callback",
        params={"code": "dave", "state": state},
        headers=acme,
        follow_redirects=False
    )
    signed = query(response.headers["location"])["nonce"]

    response = client.post(f"{OAUTH}/redeem", json={"nonce": signed}, headers=acme)
    assert response.status_code == 200

    assert client.get("/api/v1/auth/me", headers=acme).status_code == 200
    assert client.get("/api/v1/auth/me").status_code == 401


@pytest.mark.integration
def test_unknown_tenant_is_404(client):
    """Test that tenants outside the allow-list are refused."""
    response = client.post(f"{OAUTH}/nonce", headers={"X-Tenant": "nobody"})

    assert response.status_code == 404


@pytest.mark.integration
def test_account_conflict_via_http(client):
    """Test that a second provider cannot log into an existing email."""
    client.get(f"{OAUTH}/google/callback", params={"code": "erin"}, follow_redirects=False)

    response = client.get(f"{OAUTH}/github/callback", params={"code": "erin"}, follow_redirects=False)

    assert response.headers["location"] == "http://frontend.test/login?message=ACCOUNT_CONFLICT"


@pytest.mark.integration
def test_me_requires_session(client):
    """Test that /me is protected."""
    assert client.get("/api/v1/auth/me").status_code == 401


@pytest.mark.integration
def test_logout_ends_session(client):
    """Test that logout invalidates the cookie's session."""
    client.get(f"{OAUTH}/google/callback", params={"code": "frank"}, follow_redirects=False)
    assert client.get("/api/v1/auth/me").status_code == 200

    response = client.post("/api/v1/auth/logout")
    assert response.status_code == 200

    assert client.get("/api/v1/auth/me").status_code == 401


@pytest.mark.integration
def test_log_context_cleared_after_request(client, monkeypatch):
    """Test that every request clears the bound log context."""
    from unittest.mock import MagicMock
    from handoff import main

    clear = MagicMock()
    monkeypatch.setattr(main, "clear_context", clear)

    client.post(f"{OAUTH}/nonce", headers={"X-Tenant": "acme"})
    client.get("/api/health")

    assert clear.call_count == 2
