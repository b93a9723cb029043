"""
Cache stores consumed by the cache policy.

The cache policy owns no storage: it computes keys and TTLs and delegates
to a ``CacheBackend``. Two backends ship with rampart; anything with the
same ``get``/``set`` shape works (methods may also return awaitables, which
the async execution path awaits).

Architecture:
    ::

        CacheBackend (Protocol)
        ├── InMemoryCache  : single-process, bounded LRU, absolute + sliding TTL
        └── RedisCache     : distributed, JSON values, sliding via EXPIRE on read

        API: get(key) → value | None
             set(key, value, *, ttl_seconds=None, sliding=False)
             delete(key)
             exists(key) → bool
             clear()

Examples:
    >>> cache = InMemoryCache(max_size=1000, default_ttl_seconds=3600)
    >>> cache.set("user:123", {"name": "Alice"})
    >>> cache.get("user:123")
    {'name': 'Alice'}

Guardrails:
    ❌ DON'T: Cache ``None``; ``get`` returns ``None`` for a miss
    ✅ DO: Wrap optional values if absence itself must be cached

    ❌ DON'T: Use InMemoryCache in multi-process deployments (no sharing)
    ✅ DO: Use RedisCache for distributed caching

Tags:
    cache, caching, redis, in-memory, ttl, sliding-expiration, rampart-core

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import json
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any, Protocol


class CacheBackend(Protocol):
    """Protocol for cache backend implementations."""

    def get(self, key: str) -> Any | None:
        """Return the cached value, or ``None`` if missing or expired.

        For sliding entries a successful read extends the expiry.
        """
        ...

    def set(
        self,
        key: str,
        value: Any,
        *,
        ttl_seconds: float | None = None,
        sliding: bool = False,
    ) -> None:
        """Store a value.

        Args:
            key: Cache key.
            value: Value to cache.
            ttl_seconds: Time-to-live in seconds. ``None`` → backend default.
            sliding: Extend the expiry by ``ttl_seconds`` on every read.
        """
        ...

    def delete(self, key: str) -> None:
        ...

    def exists(self, key: str) -> bool:
        ...

    def clear(self) -> None:
        ...


# ------------------------------------------------------------------ #
# In-Memory Cache
# ------------------------------------------------------------------ #


class InMemoryCache:
    """Bounded, thread-safe in-memory cache with TTL support.

    Uses LRU eviction when ``max_size`` is reached. Expiry is checked
    lazily on access against ``clock`` (wall clock by default, so absolute
    expirations line up with ``datetime`` instants).

    Example:
        cache = InMemoryCache(max_size=500, default_ttl_seconds=1800)
        cache.set("session:abc", {"user_id": 42}, ttl_seconds=60, sliding=True)
    """

    def __init__(
        self,
        *,
        max_size: int = 10_000,
        default_ttl_seconds: float | None = 3600,
        clock: Callable[[], float] = time.time,
    ):
        # key -> (value, expires_at, sliding_seconds)
        self._store: OrderedDict[str, tuple[Any, float | None, float | None]] = OrderedDict()
        self._max_size = max_size
        self._default_ttl = default_ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        """Retrieve a value by key."""
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return None
            value, expires_at, sliding = entry
            if sliding is not None:
                self._store[key] = (value, self._clock() + sliding, sliding)
            self._store.move_to_end(key)
            return value

    def set(
        self,
        key: str,
        value: Any,
        *,
        ttl_seconds: float | None = None,
        sliding: bool = False,
    ) -> None:
        """Store a value with optional TTL."""
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        expires_at = (self._clock() + ttl) if ttl else None
        with self._lock:
            if key not in self._store and len(self._store) >= self._max_size:
                self._store.popitem(last=False)
            self._store[key] = (value, expires_at, ttl if sliding and ttl else None)
            self._store.move_to_end(key)

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def exists(self, key: str) -> bool:
        """Check if key exists and is not expired (does not slide)."""
        with self._lock:
            return self._live_entry(key) is not None

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def size(self) -> int:
        """Return current number of cached keys (including not-yet-reaped expired ones)."""
        with self._lock:
            return len(self._store)

    def _live_entry(self, key: str) -> tuple[Any, float | None, float | None] | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        expires_at = entry[1]
        if expires_at is not None and self._clock() >= expires_at:
            del self._store[key]
            return None
        return entry


# ------------------------------------------------------------------ #
# Redis Cache (optional)
# ------------------------------------------------------------------ #


class RedisCache:
    """Redis-backed distributed cache.

    Requires the ``redis`` package (``pip install rampart[redis]``) unless a
    ready client is passed in. Values are stored as JSON. Sliding entries
    carry a companion ``<key>:sliding`` marker holding the window length;
    reads of such entries re-issue ``EXPIRE``.

    Raises:
        ImportError: If no client is given and ``redis`` is not installed.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        default_ttl_seconds: int | None = 3600,
        client: Any = None,
    ):
        if client is None:
            try:
                import redis
            except ImportError as exc:
                msg = (
                    "Redis backend requires 'redis' package. "
                    "Install with: pip install rampart[redis]"
                )
                raise ImportError(msg) from exc
            client = redis.from_url(url, decode_responses=False)
        self._client = client
        self._default_ttl = default_ttl_seconds

    @staticmethod
    def _sliding_key(key: str) -> str:
        return f"{key}:sliding"

    def get(self, key: str) -> Any | None:
        raw = self._client.get(key)
        if raw is None:
            return None
        window = self._client.get(self._sliding_key(key))
        if window is not None:
            seconds = int(window)
            self._client.expire(key, seconds)
            self._client.expire(self._sliding_key(key), seconds)
        return json.loads(raw)

    def set(
        self,
        key: str,
        value: Any,
        *,
        ttl_seconds: float | None = None,
        sliding: bool = False,
    ) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        serialized = json.dumps(value)
        if ttl:
            seconds = max(1, int(ttl))
            self._client.setex(key, seconds, serialized)
            if sliding:
                self._client.setex(self._sliding_key(key), seconds, str(seconds))
        else:
            self._client.set(key, serialized)

    def delete(self, key: str) -> None:
        self._client.delete(key, self._sliding_key(key))

    def exists(self, key: str) -> bool:
        return bool(self._client.exists(key))

    def clear(self) -> None:
        """Remove all keys from the current Redis database.

        Warning: This flushes the entire Redis DB, use with caution!
        """
        self._client.flushdb()


__all__ = [
    "CacheBackend",
    "InMemoryCache",
    "RedisCache",
]
