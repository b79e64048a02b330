# Elastic License 2.0
# Copyright (c) 2025 sliptonic
# SPDX-License-Identifier: Elastic-2.0

"""
Login sessions kept in the namespaced cache.

Assumptions:
- Session ID is cryptographically secure (32 bytes, urlsafe)
- One cache entry per session: "{namespace}:session:{id}" -> user_id
- Sessions expire with the cache TTL (settings.session_lifetime)
"""
import secrets
from typing import Optional

from handoff.cache import Cache


class CacheSessionLayer:
    """Create, look up and delete login sessions."""

    def __init__(self, cache: Cache, namespace: str, lifetime: float = 86400):
        self.cache = cache
        self.namespace = namespace
        self.lifetime = lifetime

    def _key(self, session_id: str) -> str:
        return f"{self.namespace}:session:{session_id}"

    def establish(self, user_id: str) -> str:
        """Create a new session for a user.

        Args:
            user_id: User ID

        Returns:
            str: Session ID
        """
        session_id = secrets.token_urlsafe(32)
        self.cache.put(self._key(session_id), user_id, self.lifetime)
        return session_id

    def user_id_for(self, session_id: Optional[str]) -> Optional[str]:
        """Get user ID from session ID.

        Args:
            session_id: Session ID from cookie

        Returns:
            str: User ID if session is valid, None otherwise
        """
        if not session_id:
            return None
        return self.cache.get(self._key(session_id))

    def destroy(self, session_id: str) -> None:
        """Delete a session."""
        self.cache.forget(self._key(session_id))
