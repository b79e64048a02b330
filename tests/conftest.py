# Elastic License 2.0
# Copyright (c) 2025 sliptonic
# SPDX-License-Identifier: Elastic-2.0

"""
Pytest configuration and shared fixtures.

This module provides test fixtures that are shared across the test suite.

Assumptions:
- Database fixtures use in-memory SQLite
- Provider HTTP is never called; FakeProvider stands in for it
- The handoff stores share one MemoryCache driven by a controllable clock
- Each test gets a fresh TestClient instance
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LOG_JSON", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from handoff.auth.oauth2 import ProviderDeniedError, ProviderError, RemoteIdentity

TEST_SECRET = "test-secret-0123456789abcdef"
TEST_TENANT = "default"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider:
    """Provider stand-in that maps authorization codes to identities.

    Codes:
    - "server-error" raises ProviderError
    - "crash" raises RuntimeError
    - "unverified-<name>" yields an identity with an unverified email
    - "<name>" yields subject "<name>-sub" and email "<name>@example.com"
    """

    def __init__(self, name: str = "google"):
        self.name = name
        self.identity_calls = 0

    def get_authorization_url(self, state=None) -> str:
        url = f"https://{self.name}.provider.test/authorize?client_id=test"
        if state:
            url += f"&state={state}"
        return url

    def fetch_identity(self, params) -> RemoteIdentity:
        self.identity_calls += 1
        if params.get("error"):
            raise ProviderDeniedError(params["error"])

        code = params.get("code")
        if not code:
            raise ProviderDeniedError("missing authorization code")
        if code == "server-error":
            raise ProviderError("provider answered 503")
        if code == "crash":
            raise RuntimeError("unexpected failure")

        verified = True
        if code.startswith("unverified-"):
            code = code[len("unverified-"):]
            verified = False

        return RemoteIdentity(
            provider=self.name,
            subject=f"{code}-sub",
            email=f"{code}@example.com",
            name=code.title(),
            email_verified=verified,
        )


@pytest.fixture
def clock():
    """Controllable clock shared by the cache and the stores."""
    return FakeClock()


@pytest.fixture
def memory_cache(clock):
    """Fresh in-memory cache using the test clock."""
    from handoff.cache import MemoryCache
    return MemoryCache(clock=clock)


@pytest.fixture
def signer():
    """Signer with the test secret."""
    from handoff.auth.signer import Signer
    return Signer(TEST_SECRET)


@pytest.fixture
def server_tokens(memory_cache, signer, clock):
    """Server token store for the default tenant."""
    from handoff.auth.server_token import ServerTokenStore
    from handoff.tenancy import tenant_namespace
    return ServerTokenStore(memory_cache, signer, tenant_namespace(TEST_TENANT), ttl=300, clock=clock)


@pytest.fixture
def client_nonces(memory_cache, signer, clock):
    """Client nonce store for the default tenant."""
    from handoff.auth.client_nonce import ClientNonceStore
    from handoff.tenancy import tenant_namespace
    return ClientNonceStore(memory_cache, signer, tenant_namespace(TEST_TENANT), ttl=900, clock=clock)


@pytest.fixture
def fake_providers():
    """Registry with fake google and github providers."""
    from handoff.auth.oauth2 import ProviderRegistry
    return ProviderRegistry({
        "google": FakeProvider("google"),
        "github": FakeProvider("github"),
    })


@pytest.fixture
def sessions(memory_cache):
    """Session layer for the default tenant."""
    from handoff.auth.session import CacheSessionLayer
    from handoff.tenancy import tenant_namespace
    return CacheSessionLayer(memory_cache, tenant_namespace(TEST_TENANT))


@pytest.fixture
def coordinator(fake_providers, server_tokens, client_nonces, sessions, db_session):
    """Handoff coordinator wired to the fakes and the test database."""
    from handoff.auth.coordinator import OAuthHandoffCoordinator
    from handoff.auth.user import SqlUserDirectory
    return OAuthHandoffCoordinator(
        providers=fake_providers,
        server_tokens=server_tokens,
        client_nonces=client_nonces,
        users=SqlUserDirectory(db_session, TEST_TENANT),
        sessions=sessions,
        enabled_providers=["google", "github"],
        tenant=TEST_TENANT
    )


@pytest.fixture
def test_settings():
    """Settings for API tests, independent of the environment."""
    from handoff.config import Settings
    return Settings(
        _env_file=None,
        database_url="sqlite:///:memory:",
        cache_backend="memory",
        oauth_hmac_secret=TEST_SECRET,
        tenant_secrets={"acme": "acme-secret-0123456789"},
        tenants=["default", "acme"],
        oauth_providers=["google", "github"],
        frontend_url="http://frontend.test/login",
        app_callback_url="handoff://oauth/callback",
    )


@pytest.fixture
def client(db_session, test_settings, fake_providers, memory_cache):
    """Create test client sharing the database session and cache.

    Args:
        db_session: Shared database session fixture
        test_settings: Settings override
        fake_providers: Provider registry override
        memory_cache: Cache override

    Returns:
        TestClient: FastAPI test client

    Assumptions:
    - Overrides get_db, get_settings, get_providers and get_cache
    - Redirects are not followed automatically by the tests
    """
    from fastapi.testclient import TestClient
    from handoff.api.dependencies import get_cache, get_providers, get_settings
    from handoff.database.session import get_db
    from handoff.main import create_app

    app = create_app()

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close, let the fixture handle it

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_providers] = lambda: fake_providers
    app.dependency_overrides[get_cache] = lambda: memory_cache

    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def db_session():
    """Create an in-memory SQLite database for testing.

    Returns:
        Session: SQLAlchemy session

    Assumptions:
    - Uses in-memory SQLite for fast tests
    - StaticPool keeps connection alive across threads
    - check_same_thread=False allows TestClient to use same connection
    - Schema is created fresh for each test
    - Session is closed after test
    """
    from sqlalchemy.pool import StaticPool
    from handoff.database.schema import init_db

    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )

    init_db(engine)

    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = SessionLocal()

    try:
        yield session
    finally:
        session.close()
