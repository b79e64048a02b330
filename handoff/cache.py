# Elastic License 2.0
# Copyright (c) 2025 sliptonic
# SPDX-License-Identifier: Elastic-2.0

"""
Key-value cache backends shared by the handoff stores.

All protocol state (client nonces, server tokens, sessions) lives in one of
these backends. Callers pass fully namespaced keys; the backends know
nothing about tenants.

Assumptions:
- Values are strings (stores JSON-encode their records)
- TTLs are in seconds and always positive
- add() and pull() are the atomic check-then-act primitives
- A missing or expired key reads as None
- Writes sweep out expired entries at most once per purge interval
"""
import math
import threading
import time
from typing import Callable, Optional

import redis
from sqlalchemy import delete, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from handoff.database.schema import CacheEntry


Clock = Callable[[], float]
PURGE_INTERVAL = 60


def _ttl_seconds(ttl: float) -> int:
    """Round a TTL up to whole seconds, never below one."""
    return max(1, int(math.ceil(ttl)))


class Cache:
    """Base class for cache backends."""

    def put(self, key: str, value: str, ttl: float) -> None:
        """Store value under key, replacing any existing value.

        Args:
            key: Namespaced cache key
            value: String value
            ttl: Time to live in seconds
        """
        raise NotImplementedError

    def get(self, key: str) -> Optional[str]:
        """Return the value for key, or None if missing or expired."""
        raise NotImplementedError

    def has(self, key: str) -> bool:
        """Return True if key holds an unexpired value."""
        return self.get(key) is not None

    def forget(self, key: str) -> bool:
        """Delete key.

        Returns:
            bool: True if a value was removed
        """
        raise NotImplementedError

    def add(self, key: str, value: str, ttl: float) -> bool:
        """Store value only if key is absent (set-if-absent).

        Returns:
            bool: True if this call stored the value
        """
        raise NotImplementedError

    def pull(self, key: str) -> Optional[str]:
        """Atomically read and delete key.

        Returns:
            str: The value, if this call removed it; None otherwise

        Assumptions:
        - Under concurrent pulls of the same key exactly one caller
          receives the value
        """
        raise NotImplementedError


class MemoryCache(Cache):
    """In-process cache guarded by a lock.

    Used for tests and single-process deployments. The clock is injectable
    so tests can move time forward.
    """

    def __init__(self, clock: Clock = time.time, purge_interval: float = PURGE_INTERVAL):
        self._clock = clock
        self._data: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()
        self.purge_interval = purge_interval
        self._last_purge = float("-inf")

    def _maybe_purge(self) -> None:
        now = self._clock()
        if now - self._last_purge < self.purge_interval:
            return
        self._last_purge = now
        expired = [key for key, (_, expires_at) in self._data.items() if now >= expires_at]
        for key in expired:
            del self._data[key]

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def put(self, key: str, value: str, ttl: float) -> None:
        with self._lock:
            self._maybe_purge()
            self._data[key] = (value, self._clock() + ttl)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._live(key)

    def forget(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def add(self, key: str, value: str, ttl: float) -> bool:
        with self._lock:
            self._maybe_purge()
            if self._live(key) is not None:
                return False
            self._data[key] = (value, self._clock() + ttl)
            return True

    def pull(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._live(key)
            if value is not None:
                del self._data[key]
            return value

    def keys(self) -> list[str]:
        """Return all stored keys, expired or not."""
        with self._lock:
            return list(self._data)


class DatabaseCache(Cache):
    """Cache stored in the cache_entries table.

    Assumptions:
    - The primary key on cache_entries.key makes add() atomic
    - pull() deletes by (key, value) and trusts the affected row count
    - Every operation commits its own transaction
    """

    def __init__(self, session: Session, clock: Clock = time.time, purge_interval: float = PURGE_INTERVAL):
        self.session = session
        self._clock = clock
        self.purge_interval = purge_interval
        self._last_purge = float("-inf")

    def _maybe_purge(self) -> None:
        now = self._clock()
        if now - self._last_purge < self.purge_interval:
            return
        self._last_purge = now
        self.session.execute(delete(CacheEntry).where(CacheEntry.expires_at <= now))

    def _value(self, key: str) -> Optional[str]:
        row = self.session.execute(
            select(CacheEntry.value, CacheEntry.expires_at).where(CacheEntry.key == key)
        ).first()
        if row is None or self._clock() >= row.expires_at:
            return None
        return row.value

    def put(self, key: str, value: str, ttl: float) -> None:
        self._maybe_purge()
        self.session.execute(delete(CacheEntry).where(CacheEntry.key == key))
        self.session.execute(
            insert(CacheEntry).values(key=key, value=value, expires_at=self._clock() + ttl)
        )
        self.session.commit()

    def get(self, key: str) -> Optional[str]:
        value = self._value(key)
        self.session.commit()
        return value

    def forget(self, key: str) -> bool:
        result = self.session.execute(delete(CacheEntry).where(CacheEntry.key == key))
        self.session.commit()
        return result.rowcount > 0

    def add(self, key: str, value: str, ttl: float) -> bool:
        self._maybe_purge()
        now = self._clock()
        self.session.execute(
            delete(CacheEntry).where(CacheEntry.key == key, CacheEntry.expires_at <= now)
        )
        try:
            self.session.execute(
                insert(CacheEntry).values(key=key, value=value, expires_at=now + ttl)
            )
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            return False
        return True

    def pull(self, key: str) -> Optional[str]:
        value = self._value(key)
        if value is None:
            self.session.commit()
            return None
        result = self.session.execute(
            delete(CacheEntry).where(CacheEntry.key == key, CacheEntry.value == value)
        )
        self.session.commit()
        if result.rowcount != 1:
            return None
        return value


class RedisCache(Cache):
    """Cache backed by Redis.

    Assumptions:
    - Redis expires keys natively (SET ... EX)
    - add() uses SET NX, pull() uses GETDEL (Redis >= 6.2)
    - The client is created with decode_responses=True
    """

    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        """Create a cache from a redis:// URL."""
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def put(self, key: str, value: str, ttl: float) -> None:
        self.client.set(key, value, ex=_ttl_seconds(ttl))

    def get(self, key: str) -> Optional[str]:
        return self.client.get(key)

    def has(self, key: str) -> bool:
        return self.client.exists(key) > 0

    def forget(self, key: str) -> bool:
        return self.client.delete(key) > 0

    def add(self, key: str, value: str, ttl: float) -> bool:
        return bool(self.client.set(key, value, ex=_ttl_seconds(ttl), nx=True))

    def pull(self, key: str) -> Optional[str]:
        return self.client.getdel(key)
