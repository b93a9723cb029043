"""Retry policy with exponential, linear and constant backoff.

Re-invokes the unit of work while its outcome is handled by the classifier
and retries remain. Delays are produced by a ``delay(attempt)`` callable;
the backoff classes below are the usual choices.

Example:
    >>> from rampart.policies.retry import RetryPolicy, ExponentialBackoff
    >>>
    >>> policy = RetryPolicy(retries=5, delay=ExponentialBackoff(base_delay=0.5))
    >>> for attempt in range(1, 5):
    ...     print(f"Retry {attempt}: wait {policy.config.delay(attempt):.2f}s")
"""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from rampart.core.context import RETRY_ATTEMPT_KEY, ExecutionContext
from rampart.core.errors import OperationCancelledError, PolicyConfigError
from rampart.core.logging import get_logger
from rampart.core.result import Err, Outcome
from rampart.policies.base import AsyncUnit, Policy, SyncUnit, build_config
from rampart.policies.classifier import FaultClassifier, handle_faults

logger = get_logger(__name__)

RetryObserver = Callable[[Outcome, int, float, ExecutionContext], None]


@dataclass(frozen=True)
class ExponentialBackoff:
    """Exponential backoff with optional jitter.

    Delay = min(base_delay * (multiplier ** (attempt - 1)), max_delay) ± jitter

    Attributes:
        base_delay: Delay before the first retry, in seconds
        max_delay: Maximum delay cap in seconds
        multiplier: Exponential multiplier (default: 2)
        jitter: Add randomness to prevent thundering herd
        jitter_range: Range of jitter as fraction of delay (0.0-1.0)
    """

    base_delay: float = 1.0
    max_delay: float = 60.0
    multiplier: float = 2.0
    jitter: bool = False
    jitter_range: float = 0.25

    def __call__(self, attempt: int) -> float:
        delay = min(
            self.base_delay * (self.multiplier ** (attempt - 1)),
            self.max_delay,
        )

        if self.jitter:
            jitter_amount = delay * self.jitter_range
            delay += random.uniform(-jitter_amount, jitter_amount)
            delay = max(0.0, delay)

        return delay


@dataclass(frozen=True)
class LinearBackoff:
    """Linear backoff.

    Delay = min(base_delay + increment * (attempt - 1), max_delay)
    """

    base_delay: float = 1.0
    increment: float = 1.0
    max_delay: float = 30.0

    def __call__(self, attempt: int) -> float:
        return min(self.base_delay + self.increment * (attempt - 1), self.max_delay)


@dataclass(frozen=True)
class ConstantBackoff:
    """Constant delay between retries."""

    delay: float = 1.0

    def __call__(self, attempt: int) -> float:
        return self.delay


@dataclass(frozen=True)
class RetryConfig:
    """Immutable retry configuration.

    Attributes:
        retries: Retries after the first attempt; ``None`` retries forever
        delay: ``delay(attempt) -> seconds`` (1-based); ``None`` retries at once
        handle: Which outcomes trigger a retry
        on_retry: ``on_retry(outcome, attempt, delay, ctx)``, called before each delay
        name: Policy name used in logs and attribution
    """

    retries: int | None = 3
    delay: Callable[[int], float] | None = None
    handle: FaultClassifier = field(default_factory=handle_faults)
    on_retry: RetryObserver | None = None
    name: str = "retry"

    def __post_init__(self) -> None:
        if self.retries is not None and self.retries < 0:
            raise PolicyConfigError(f"retries must be >= 0 or None, got {self.retries}")


class RetryPolicy(Policy):
    """Re-invoke the unit of work on handled faults.

    Example:
        >>> policy = RetryPolicy(
        ...     retries=3,
        ...     delay=ConstantBackoff(0.2),
        ...     handle=handle(ConnectionError),
        ... )
        >>> quote = policy.run(lambda ctx: client.get_quote("ACME"))
    """

    kind = "retry"

    def __init__(self, config: RetryConfig | None = None, **options: Any):
        self.config = build_config(RetryConfig, config, options)
        super().__init__(self.config.name)

    @classmethod
    def forever(cls, **options: Any) -> RetryPolicy:
        """Retry until success or caller cancellation."""
        return cls(retries=None, **options)

    def _plan_retry(self, outcome: Outcome, retries_done: int, ctx: ExecutionContext) -> float | None:
        """Return the delay before the next attempt, or None to stop."""
        if not self.config.handle.handles(outcome):
            return None
        if self.config.retries is not None and retries_done >= self.config.retries:
            logger.warning(
                "retry_exhausted",
                policy=self.name,
                attempts=retries_done + 1,
                **ctx.log_fields(),
            )
            return None

        attempt = retries_done + 1
        delay = self.config.delay(attempt) if self.config.delay is not None else 0.0
        if self.config.on_retry is not None:
            self.config.on_retry(outcome, attempt, delay, ctx)
        ctx[RETRY_ATTEMPT_KEY] = attempt
        logger.info(
            "retry_scheduled",
            policy=self.name,
            attempt=attempt,
            delay=delay,
            error=repr(outcome.error) if outcome.is_err() else None,
            **ctx.log_fields(),
        )
        return delay

    def _cancelled(self) -> Outcome:
        return Err(OperationCancelledError(), policy=self.name)

    def _execute(self, unit: SyncUnit, ctx: ExecutionContext) -> Outcome:
        retries_done = 0
        while True:
            outcome = unit(ctx)
            delay = self._plan_retry(outcome, retries_done, ctx)
            if delay is None:
                return outcome
            retries_done += 1
            cancelled = ctx.cancellation.sleep(delay) if delay > 0 else ctx.cancellation.is_cancelled
            if cancelled:
                return self._cancelled()

    async def _execute_async(self, unit: AsyncUnit, ctx: ExecutionContext) -> Outcome:
        retries_done = 0
        while True:
            outcome = await unit(ctx)
            delay = self._plan_retry(outcome, retries_done, ctx)
            if delay is None:
                return outcome
            retries_done += 1
            if delay > 0:
                cancelled = await ctx.cancellation.sleep_async(delay)
            else:
                cancelled = ctx.cancellation.is_cancelled
            if cancelled:
                return self._cancelled()


__all__ = [
    "ExponentialBackoff",
    "LinearBackoff",
    "ConstantBackoff",
    "RetryConfig",
    "RetryPolicy",
]
