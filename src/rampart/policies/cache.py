"""Cache-aside policy.

Looks the call's key up in a ``CacheBackend`` and skips the unit of work on
a hit. Successful values are stored on a miss with a TTL chosen by a
``TtlStrategy``. The store is treated as best-effort: any exception it
raises is logged, reported to ``on_cache_error`` and then handled as a
miss (on read) or ignored (on write).

    ctx.operation_key ─► key_strategy ─► store.get ─ hit ─► Ok(value, policy=name)
                                           │ miss
                                           ▼
                                         unit(ctx) ─ Ok ─► store.set(ttl) ─► outcome

TTL strategies:
    RelativeTtl(seconds)         fixed lifetime from the moment of caching
    AbsoluteTtl(expires_at)      expires at a wall-clock instant
    SlidingTtl(seconds)          lifetime restarted by every read
    ResultTtl(fn)                ``fn(ctx, value)`` picks the TTL per value
"""

from __future__ import annotations

import inspect
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from rampart.core.cache import CacheBackend
from rampart.core.context import CACHE_KEY, ExecutionContext
from rampart.core.errors import PolicyConfigError
from rampart.core.logging import get_logger
from rampart.core.result import Ok, Outcome
from rampart.policies.base import AsyncUnit, Policy, SyncUnit, build_config

logger = get_logger(__name__)

CacheObserver = Callable[[ExecutionContext, str], None]
CacheErrorObserver = Callable[[ExecutionContext, str, Exception], None]


@dataclass(frozen=True)
class Ttl:
    """Lifetime of one cache entry."""

    seconds: float
    sliding: bool = False


class TtlStrategy(Protocol):
    def ttl_for(self, ctx: ExecutionContext, value: Any) -> Ttl:
        ...


@dataclass(frozen=True)
class RelativeTtl:
    seconds: float

    def ttl_for(self, ctx: ExecutionContext, value: Any) -> Ttl:
        return Ttl(self.seconds)


@dataclass(frozen=True)
class AbsoluteTtl:
    """Expire every entry at ``expires_at`` (naive datetimes are local time)."""

    expires_at: datetime
    clock: Callable[[], float] = time.time

    def ttl_for(self, ctx: ExecutionContext, value: Any) -> Ttl:
        return Ttl(max(0.0, self.expires_at.timestamp() - self.clock()))


@dataclass(frozen=True)
class SlidingTtl:
    seconds: float

    def ttl_for(self, ctx: ExecutionContext, value: Any) -> Ttl:
        return Ttl(self.seconds, sliding=True)


@dataclass(frozen=True)
class ResultTtl:
    """Per-value TTL: ``fn(ctx, value)`` returns a ``Ttl`` or seconds."""

    fn: Callable[[ExecutionContext, Any], Ttl | float]

    def ttl_for(self, ctx: ExecutionContext, value: Any) -> Ttl:
        ttl = self.fn(ctx, value)
        return ttl if isinstance(ttl, Ttl) else Ttl(float(ttl))


def operation_key(ctx: ExecutionContext) -> str | None:
    """Default key strategy: the context's ``operation_key``."""
    return ctx.operation_key


@dataclass(frozen=True)
class CacheConfig:
    """
    Attributes:
        store: Backend holding the entries
        ttl: Strategy choosing each entry's lifetime
        key_strategy: ``fn(ctx) -> key``; a falsy key bypasses the cache
        on_cache_get / on_cache_miss / on_cache_put: ``fn(ctx, key)``
        on_cache_error: ``fn(ctx, key, exc)`` for store failures
    """

    store: CacheBackend | None = None
    ttl: TtlStrategy = RelativeTtl(300.0)
    key_strategy: Callable[[ExecutionContext], str | None] = operation_key
    on_cache_get: CacheObserver | None = None
    on_cache_miss: CacheObserver | None = None
    on_cache_put: CacheObserver | None = None
    on_cache_error: CacheErrorObserver | None = None
    name: str = "cache"

    def __post_init__(self) -> None:
        if self.store is None:
            raise PolicyConfigError("CacheConfig requires a store")


class CachePolicy(Policy):
    """Serve repeated calls from a cache store.

    Example:
        >>> cache = CachePolicy(store=InMemoryCache(), ttl=RelativeTtl(300))
        >>> ctx = ExecutionContext("quote:ACME")
        >>> cache.execute(lambda ctx: fetch_quote("ACME"), ctx)
    """

    kind = "cache"

    def __init__(self, config: CacheConfig | None = None, **options: Any):
        self.config = build_config(CacheConfig, config, options)
        super().__init__(self.config.name)

    def _notify(self, observer: CacheObserver | None, ctx: ExecutionContext, key: str) -> None:
        if observer is not None:
            observer(ctx, key)

    def _store_failed(self, ctx: ExecutionContext, key: str, op: str, exc: Exception) -> None:
        logger.warning(
            "cache_error",
            policy=self.name,
            key=key,
            operation=op,
            error=repr(exc),
            **ctx.log_fields(),
        )
        if self.config.on_cache_error is not None:
            self.config.on_cache_error(ctx, key, exc)

    def _hit(self, ctx: ExecutionContext, key: str, cached: Any) -> Outcome:
        logger.debug("cache_hit", policy=self.name, key=key, **ctx.log_fields())
        self._notify(self.config.on_cache_get, ctx, key)
        return Ok(cached, policy=self.name)

    def _ttl_for(self, outcome: Outcome, ctx: ExecutionContext) -> Ttl | None:
        """TTL to store ``outcome`` with, or None if it must not be cached."""
        if not outcome.is_ok() or outcome.value is None:
            return None
        ttl = self.config.ttl.ttl_for(ctx, outcome.value)
        return ttl if ttl.seconds > 0 else None

    def _execute(self, unit: SyncUnit, ctx: ExecutionContext) -> Outcome:
        key = self.config.key_strategy(ctx)
        if not key:
            return unit(ctx)
        ctx[CACHE_KEY] = key
        store = self.config.store

        try:
            cached = store.get(key)
        except Exception as exc:
            self._store_failed(ctx, key, "get", exc)
            cached = None
        if cached is not None:
            return self._hit(ctx, key, cached)
        self._notify(self.config.on_cache_miss, ctx, key)

        outcome = unit(ctx)
        ttl = self._ttl_for(outcome, ctx)
        if ttl is not None:
            try:
                store.set(key, outcome.value, ttl_seconds=ttl.seconds, sliding=ttl.sliding)
            except Exception as exc:
                self._store_failed(ctx, key, "set", exc)
            else:
                self._notify(self.config.on_cache_put, ctx, key)
        return outcome

    async def _execute_async(self, unit: AsyncUnit, ctx: ExecutionContext) -> Outcome:
        key = self.config.key_strategy(ctx)
        if not key:
            return await unit(ctx)
        ctx[CACHE_KEY] = key
        store = self.config.store

        try:
            cached = store.get(key)
            if inspect.isawaitable(cached):
                cached = await cached
        except Exception as exc:
            self._store_failed(ctx, key, "get", exc)
            cached = None
        if cached is not None:
            return self._hit(ctx, key, cached)
        self._notify(self.config.on_cache_miss, ctx, key)

        outcome = await unit(ctx)
        ttl = self._ttl_for(outcome, ctx)
        if ttl is not None:
            try:
                stored = store.set(key, outcome.value, ttl_seconds=ttl.seconds, sliding=ttl.sliding)
                if inspect.isawaitable(stored):
                    await stored
            except Exception as exc:
                self._store_failed(ctx, key, "set", exc)
            else:
                self._notify(self.config.on_cache_put, ctx, key)
        return outcome


__all__ = [
    "Ttl",
    "TtlStrategy",
    "RelativeTtl",
    "AbsoluteTtl",
    "SlidingTtl",
    "ResultTtl",
    "CacheConfig",
    "CachePolicy",
    "operation_key",
]
