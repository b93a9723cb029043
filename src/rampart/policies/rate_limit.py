"""Rate Limiting: token-bucket throughput control.

Manifesto:
Downstream services enforce quotas; exceeding them earns 429s or bans.
The rate limiter throttles calls *before* they leave the process and
rejects the excess immediately. It never queues: a caller that wants to
wait can read ``retry_after`` off the rejection, or put a Retry outside.

ARCHITECTURE
────────────
::

    bucket: one token (or ``burst`` tokens), refilled at ``permits / per`` tokens/s

    execute ─► refill (lazy, monotonic clock) ─► token? ─ yes ─► consume, run
                                                   │ no
                                                   ▼
                                  RateLimitRejectedError(retry_after)

    Refill and consume happen under one lock.

Without ``burst`` the bucket holds a single token, so admitted calls are
spaced at least ``per / permits`` seconds apart and no window of length
``per`` admits more than ``permits`` calls. With ``burst`` set, an interval
of length T admits at most ``burst`` plus ``permits * T / per`` calls.

Example::

    limiter = RateLimitPolicy(permits=20, per=1.0)
    outcome = limiter.execute(lambda ctx: call_api())
    if outcome.is_err() and outcome.category is ErrorCategory.RATE_LIMITED:
        time.sleep(outcome.error.retry_after)

Tags:
    rampart, policies, rate-limit, throttle, token-bucket
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from rampart.core.context import ExecutionContext
from rampart.core.errors import PolicyConfigError, RateLimitRejectedError
from rampart.core.logging import get_logger
from rampart.core.result import Err, Outcome
from rampart.policies.base import AsyncUnit, Policy, SyncUnit, build_config

logger = get_logger(__name__)

# Absorbs float drift in elapsed * rate so evenly spaced calls are admitted.
_EPSILON = 1e-9


@dataclass(frozen=True)
class RateLimitConfig:
    """Token bucket configuration.

    Attributes:
        permits: Tokens added every ``per`` seconds
        per: Refill period in seconds
        burst: Bucket size; ``None`` means a single token (calls evenly spaced)
    """

    permits: int = 10
    per: float = 1.0
    burst: int | None = None
    name: str = "rate-limit"

    def __post_init__(self) -> None:
        if self.permits < 1:
            raise PolicyConfigError(f"permits must be >= 1, got {self.permits}")
        if self.per <= 0:
            raise PolicyConfigError(f"per must be > 0, got {self.per}")
        if self.burst is not None and self.burst < self.permits:
            raise PolicyConfigError(
                f"burst must be >= permits ({self.permits}), got {self.burst}"
            )

    @property
    def capacity(self) -> int:
        return self.burst if self.burst is not None else 1

    @property
    def rate(self) -> float:
        """Tokens per second."""
        return self.permits / self.per


class RateLimitPolicy(Policy):
    """Token bucket rate limiter.

    The bucket starts full, so up to ``capacity`` calls may pass at once.
    Without ``burst`` that is one call, then one more every ``per / permits``.
    """

    kind = "rate-limit"

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        **options: Any,
    ):
        self.config = build_config(RateLimitConfig, config, options)
        super().__init__(self.config.name)
        self._clock = clock
        self._lock = threading.Lock()
        self._tokens = float(self.config.capacity)
        self._last_update = clock()

    def _refill(self) -> None:
        """Add tokens based on elapsed time."""
        now = self._clock()
        elapsed = max(0.0, now - self._last_update)
        self._tokens = min(
            float(self.config.capacity),
            self._tokens + elapsed * self.config.rate,
        )
        self._last_update = now

    def _try_acquire(self) -> float:
        """Consume one token; return 0.0, or seconds until one is available."""
        with self._lock:
            self._refill()
            if self._tokens >= 1 - _EPSILON:
                self._tokens -= 1
                return 0.0
            return (1 - self._tokens) / self.config.rate

    @property
    def available_tokens(self) -> float:
        with self._lock:
            self._refill()
            return self._tokens

    def _reject(self, retry_after: float, ctx: ExecutionContext) -> Outcome:
        logger.info(
            "rate_limit_rejected",
            policy=self.name,
            retry_after=round(retry_after, 4),
            **ctx.log_fields(),
        )
        return Err(RateLimitRejectedError(self.name, retry_after), policy=self.name)

    def _execute(self, unit: SyncUnit, ctx: ExecutionContext) -> Outcome:
        retry_after = self._try_acquire()
        if retry_after > 0:
            return self._reject(retry_after, ctx)
        return unit(ctx)

    async def _execute_async(self, unit: AsyncUnit, ctx: ExecutionContext) -> Outcome:
        retry_after = self._try_acquire()
        if retry_after > 0:
            return self._reject(retry_after, ctx)
        return await unit(ctx)


__all__ = ["RateLimitConfig", "RateLimitPolicy"]
