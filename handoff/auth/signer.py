# Elastic License 2.0
# Copyright (c) 2025 sliptonic
# SPDX-License-Identifier: Elastic-2.0

"""
HMAC signing for values that cross an untrusted boundary.

A signed form is "{value}.{hex hmac-sha256(value)}". The OAuth provider
passes it back untouched as the state parameter, and deep links carry
signed nonces back to the client.

Assumptions:
- One Signer per tenant secret
- verify_and_extract never raises; garbage input reads as None
- Comparison is constant-time (hmac.compare_digest)
"""
import hashlib
import hmac
from typing import Any, Optional

SEPARATOR = "."


class Signer:
    """Sign and verify opaque strings with a tenant secret."""

    def __init__(self, secret: str):
        """Initialize signer.

        Args:
            secret: HMAC key for the current tenant

        Raises:
            ValueError: If secret is empty
        """
        if not secret:
            raise ValueError("HMAC secret must not be empty")
        self._key = secret.encode("utf-8")

    def sign(self, value: str) -> str:
        """Return the hex HMAC-SHA256 of value."""
        return hmac.new(
            self._key,
            value.encode("utf-8", "surrogatepass"),
            hashlib.sha256
        ).hexdigest()

    def signed_form(self, value: str) -> str:
        """Return value with its signature appended."""
        return f"{value}{SEPARATOR}{self.sign(value)}"

    def verify_and_extract(self, signed: Any) -> Optional[str]:
        """Return the value inside a signed form, or None.

        Args:
            signed: Candidate signed form (usually untrusted input)

        Returns:
            str: The value if the signature matches, None otherwise

        Assumptions:
        - Splits on the last separator so values may contain dots
        - Missing separator, empty value or empty signature is None
        """
        if not isinstance(signed, str) or SEPARATOR not in signed:
            return None

        value, signature = signed.rsplit(SEPARATOR, 1)
        if not value or not signature:
            return None

        try:
            expected = self.sign(value).encode("ascii")
            supplied = signature.encode("utf-8", "surrogatepass")
        except UnicodeError:
            return None

        if not hmac.compare_digest(expected, supplied):
            return None
        return value
