# Elastic License 2.0
# Copyright (c) 2025 sliptonic
# SPDX-License-Identifier: Elastic-2.0

"""
Server tokens: short-lived, single-use handles for an in-flight redirect.

A server token is issued for a client nonce when the detached client asks
for a provider redirect. Its signed form travels through the provider as
the OAuth state parameter and comes back on the callback.

Assumptions:
- Token values are 64 random bytes, hex encoded
- Records are JSON {"nonce": ..., "expires_at": ...}
- Expiry is checked against the store clock as well as the cache TTL
- Tampered, unknown, expired and consumed tokens all read as absent
"""
import json
import secrets
import time
from typing import Callable, Optional

from handoff.auth.signer import Signer
from handoff.cache import Cache

TOKEN_BYTES = 64
MAX_ATTEMPTS = 3


class TokenCollisionError(Exception):
    """Raised when a fresh random value keeps colliding with a stored one."""
    pass


class ServerTokenStore:
    """Issue, resolve and consume server tokens for one tenant namespace."""

    def __init__(
        self,
        cache: Cache,
        signer: Signer,
        namespace: str,
        ttl: float = 300,
        clock: Callable[[], float] = time.time
    ):
        self.cache = cache
        self.signer = signer
        self.namespace = namespace
        self.ttl = ttl
        self._clock = clock

    def _key(self, token: str) -> str:
        return f"{self.namespace}:server_token:{token}"

    def _nonce_from_record(self, raw: Optional[str]) -> Optional[str]:
        if raw is None:
            return None
        record = json.loads(raw)
        if self._clock() >= record["expires_at"]:
            return None
        return record["nonce"]

    def issue(self, nonce: str, ttl: Optional[float] = None) -> str:
        """Issue a server token bound to a client nonce.

        Args:
            nonce: Client nonce value the redirect is for
            ttl: Lifetime in seconds, capped at the store TTL

        Returns:
            str: Signed token, ready to use as the OAuth state parameter

        Raises:
            TokenCollisionError: If no unused token value could be generated
        """
        ttl = self.ttl if ttl is None else min(ttl, self.ttl)
        record = json.dumps({"nonce": nonce, "expires_at": self._clock() + ttl})
        for _ in range(MAX_ATTEMPTS):
            token = secrets.token_hex(TOKEN_BYTES)
            if self.cache.add(self._key(token), record, ttl):
                return self.signer.signed_form(token)
        raise TokenCollisionError("Could not allocate a unique server token")

    def resolve(self, signed_token: Optional[str]) -> Optional[str]:
        """Return the client nonce a signed token was issued for.

        Args:
            signed_token: Value of the state parameter

        Returns:
            str: Bound client nonce, or None if invalid, expired or consumed

        Assumptions:
        - Does not delete the token; see consume()
        """
        token = self.signer.verify_and_extract(signed_token)
        if token is None:
            return None
        return self._nonce_from_record(self.cache.get(self._key(token)))

    def consume(self, signed_token: Optional[str]) -> bool:
        """Remove a token so it cannot be replayed.

        Args:
            signed_token: Value of the state parameter

        Returns:
            bool: True if this call removed a live token
        """
        token = self.signer.verify_and_extract(signed_token)
        if token is None:
            return False
        return self._nonce_from_record(self.cache.pull(self._key(token))) is not None
