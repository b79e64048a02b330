# Elastic License 2.0
# Copyright (c) 2025 sliptonic
# SPDX-License-Identifier: Elastic-2.0

"""
Client nonces: the handle a detached client holds across the OAuth round trip.

Lifecycle:
    create()      -> pending record, no user
    bind_user()   -> record carries the user id (once)
    redeem()      -> record deleted, user id handed out (once)

Assumptions:
- Nonce values are 32 random bytes, hex encoded
- create() returns the raw value; it goes straight to the trusted client
- signed_handle() is what travels back through deep links
- Records are JSON {"user_id", "created_at", "expires_at"}
- A separate guard key makes binding happen at most once
- Missing, tampered, pending and expired nonces are indistinguishable
  from the outside
"""
import json
import secrets
import time
from typing import Any, Callable, Optional

from handoff.auth.server_token import MAX_ATTEMPTS, TokenCollisionError
from handoff.auth.signer import Signer
from handoff.cache import Cache

NONCE_BYTES = 32


class ClientNonceStore:
    """Create, bind and redeem client nonces for one tenant namespace."""

    def __init__(
        self,
        cache: Cache,
        signer: Signer,
        namespace: str,
        ttl: float = 900,
        clock: Callable[[], float] = time.time
    ):
        self.cache = cache
        self.signer = signer
        self.namespace = namespace
        self.ttl = ttl
        self._clock = clock

    def _key(self, nonce: str) -> str:
        return f"{self.namespace}:client_nonce:{nonce}"

    def _bind_key(self, nonce: str) -> str:
        return f"{self.namespace}:client_nonce_bind:{nonce}"

    def _live(self, raw: Optional[str]) -> Optional[dict[str, Any]]:
        if raw is None:
            return None
        record = json.loads(raw)
        if self._clock() >= record["expires_at"]:
            return None
        return record

    def _record(self, nonce: Any) -> Optional[dict[str, Any]]:
        if not isinstance(nonce, str) or not nonce:
            return None
        return self._live(self.cache.get(self._key(nonce)))

    def create(self) -> str:
        """Create a pending nonce.

        Returns:
            str: Raw nonce value

        Raises:
            TokenCollisionError: If no unused nonce value could be generated
        """
        now = self._clock()
        record = json.dumps({"user_id": None, "created_at": now, "expires_at": now + self.ttl})
        for _ in range(MAX_ATTEMPTS):
            nonce = secrets.token_hex(NONCE_BYTES)
            if self.cache.add(self._key(nonce), record, self.ttl):
                return nonce
        raise TokenCollisionError("Could not allocate a unique client nonce")

    def is_pending(self, nonce: Any) -> bool:
        """Return True if nonce exists, is unexpired and has no user yet."""
        record = self._record(nonce)
        return record is not None and record["user_id"] is None

    def remaining_lifetime(self, nonce: Any) -> Optional[float]:
        """Return seconds until nonce expires, or None if it is unknown or expired."""
        record = self._record(nonce)
        if record is None:
            return None
        return record["expires_at"] - self._clock()

    def bind_user(self, nonce: str, user_id: str) -> bool:
        """Attach a user to a pending nonce.

        Args:
            nonce: Raw nonce value
            user_id: Local user id from a successful login

        Returns:
            bool: False if the nonce is unknown, expired or already bound

        Assumptions:
        - Not idempotent: binding the same user twice also fails
        """
        record = self._record(nonce)
        if record is None or record["user_id"] is not None:
            return False

        remaining = record["expires_at"] - self._clock()
        if not self.cache.add(self._bind_key(nonce), user_id, remaining):
            return False

        record["user_id"] = user_id
        self.cache.put(self._key(nonce), json.dumps(record), remaining)
        return True

    def signed_handle(self, nonce: str) -> str:
        """Return the signed form of nonce for delivery back to the client."""
        return self.signer.signed_form(nonce)

    def redeem(self, signed_nonce: Any) -> Optional[str]:
        """Exchange a signed nonce for its bound user id, once.

        Args:
            signed_nonce: Signed handle received by the client

        Returns:
            str: User id if this call consumed a bound nonce, None otherwise

        Assumptions:
        - A pending nonce is left in place so the client can retry
        - Under concurrent redemption exactly one caller gets the user id
        """
        nonce = self.signer.verify_and_extract(signed_nonce)
        if nonce is None:
            return None

        record = self._record(nonce)
        if record is None or record["user_id"] is None:
            return None

        pulled = self._live(self.cache.pull(self._key(nonce)))
        if pulled is None or pulled["user_id"] is None:
            return None

        self.cache.forget(self._bind_key(nonce))
        return pulled["user_id"]
