# Elastic License 2.0
# Copyright (c) 2025 sliptonic
# SPDX-License-Identifier: Elastic-2.0

"""
Unit tests for server tokens.

Assumptions:
- Tokens are issued for a nonce and come back as the OAuth state
- resolve() reads without deleting; consume() deletes once
- Tampered, expired and consumed tokens all read as absent
"""
import pytest


@pytest.mark.unit
def test_issue_returns_signed_token(server_tokens, signer):
    """Test the shape of an issued token.

    Assumptions:
    - 64 random bytes hex encoded = 128 characters
    """
    signed = server_tokens.issue("nonce-1")
    token = signer.verify_and_extract(signed)

    assert token is not None
    assert len(token) == 128


@pytest.mark.unit
def test_issued_tokens_are_distinct(server_tokens):
    """Test that every issue produces a new token."""
    tokens = {server_tokens.issue("nonce-1") for _ in range(20)}

    assert len(tokens) == 20


@pytest.mark.unit
def test_resolve_returns_bound_nonce(server_tokens):
    """Test lookup of the nonce behind a token."""
    signed = server_tokens.issue("nonce-1")

    assert server_tokens.resolve(signed) == "nonce-1"
    assert server_tokens.resolve(signed) == "nonce-1"


@pytest.mark.unit
def test_consume_is_single_use(server_tokens):
    """Test that a token can be consumed exactly once."""
    signed = server_tokens.issue("nonce-1")

    assert server_tokens.consume(signed) is True
    assert server_tokens.consume(signed) is False
    assert server_tokens.resolve(signed) is None


@pytest.mark.unit
def test_tampered_token_is_rejected(server_tokens):
    """Test that changing the token part invalidates the signature."""
    signed = server_tokens.issue("nonce-1")
    token, signature = signed.rsplit(".", 1)
    flipped = ("0" if token[0] != "0" else "1") + token[1:]

    assert server_tokens.resolve(f"{flipped}.{signature}") is None
    assert server_tokens.consume(f"{flipped}.{signature}") is False
    assert server_tokens.resolve(signed) == "nonce-1"


@pytest.mark.unit
@pytest.mark.parametrize("candidate", [None, "", "garbage", "abc.def"])
def test_garbage_state_is_absent(server_tokens, candidate):
    """Test that unusable states never raise."""
    assert server_tokens.resolve(candidate) is None
    assert server_tokens.consume(candidate) is False


@pytest.mark.unit
def test_validly_signed_unknown_token_is_absent(server_tokens, signer):
    """Test that a signature alone does not make a token valid."""
    assert server_tokens.resolve(signer.signed_form("f" * 128)) is None


@pytest.mark.unit
def test_token_expires_after_ttl(server_tokens, clock):
    """Test expiry after the 300 second lifetime."""
    signed = server_tokens.issue("nonce-1")

    clock.advance(299)
    assert server_tokens.resolve(signed) == "nonce-1"

    clock.advance(1)
    assert server_tokens.resolve(signed) is None
    assert server_tokens.consume(signed) is False


@pytest.mark.unit
def test_issue_caps_ttl_at_store_lifetime(server_tokens, clock):
    """Test a per-token TTL shorter than, and longer than, the default.

    Assumptions:
    - A shorter TTL is honoured
    - A longer TTL is capped at the store TTL
    """
    short = server_tokens.issue("nonce-1", ttl=50)
    long = server_tokens.issue("nonce-2", ttl=10000)

    clock.advance(50)
    assert server_tokens.resolve(short) is None
    assert server_tokens.resolve(long) == "nonce-2"

    clock.advance(250)
    assert server_tokens.resolve(long) is None


@pytest.mark.unit
def test_expiry_holds_when_cache_keeps_entries(signer):
    """Test that the store's own clock enforces expiry.

    Assumptions:
    - The cache clock is frozen, so the cache never expires the entry
    - The store clock moves past expires_at
    """
    from handoff.auth.server_token import ServerTokenStore
    from handoff.cache import MemoryCache

    frozen_cache = MemoryCache(clock=lambda: 0.0)
    store_time = [1000.0]
    store = ServerTokenStore(frozen_cache, signer, "tenant:default", ttl=300, clock=lambda: store_time[0])

    signed = store.issue("nonce-1")
    store_time[0] += 300

    assert store.resolve(signed) is None
    assert store.consume(signed) is False


@pytest.mark.unit
def test_keys_are_namespaced(memory_cache, server_tokens, signer):
    """Test that records live under the tenant namespace."""
    signed = server_tokens.issue("nonce-1")
    token = signer.verify_and_extract(signed)

    assert memory_cache.keys() == [f"tenant:default:server_token:{token}"]


@pytest.mark.unit
def test_collision_exhaustion_raises(signer):
    """Test that a cache that never accepts a new key fails loudly.

    Assumptions:
    - issue() tries a bounded number of fresh values
    """
    from unittest.mock import MagicMock
    from handoff.auth.server_token import MAX_ATTEMPTS, ServerTokenStore, TokenCollisionError

    cache = MagicMock()
    cache.add.return_value = False
    store = ServerTokenStore(cache, signer, "tenant:default")

    with pytest.raises(TokenCollisionError):
        store.issue("nonce-1")
    assert cache.add.call_count == MAX_ATTEMPTS


@pytest.mark.unit
def test_other_tenant_cannot_resolve(memory_cache, server_tokens, clock):
    """Test that a token from one tenant is absent in another.

    Assumptions:
    - Tenants differ in both secret and namespace
    """
    from handoff.auth.server_token import ServerTokenStore
    from handoff.auth.signer import Signer

    other = ServerTokenStore(memory_cache, Signer("acme-secret"), "tenant:acme", clock=clock)
    signed = server_tokens.issue("nonce-1")

    assert other.resolve(signed) is None
    assert other.consume(signed) is False
    assert server_tokens.resolve(signed) == "nonce-1"
