"""Circuit breaker policies for fault tolerance.

Prevents cascading failures by failing fast once a downstream dependency
is misbehaving, then probing it with a single trial call after a cooldown.

States:
    CLOSED: Normal operation, calls pass through and are measured
    OPEN: Failing fast, calls rejected with ``BrokenCircuitError``
    HALF_OPEN: One trial call is let through to test recovery
    ISOLATED: Held open by an operator until ``reset()``

Two variants share the state machine and differ only in how they measure
health while CLOSED:

    CircuitBreakerPolicy          N consecutive handled failures
    AdvancedCircuitBreakerPolicy  failure ratio over a bucketed rolling window

Cooldowns and windows are evaluated lazily against a monotonic clock on the
next call; nothing runs in the background.

Example:
    >>> breaker = CircuitBreakerPolicy(failure_threshold=2, break_duration=60.0)
    >>> breaker.execute(lambda ctx: call_external_service())
    >>> breaker.state
    <CircuitState.CLOSED: 'closed'>
"""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from rampart.core.context import ExecutionContext
from rampart.core.errors import BrokenCircuitError, IsolatedCircuitError, PolicyConfigError
from rampart.core.logging import get_logger
from rampart.core.result import Err, Outcome
from rampart.policies.base import AsyncUnit, Policy, SyncUnit, build_config
from rampart.policies.classifier import FaultClassifier, handle_faults

logger = get_logger(__name__)

BreakObserver = Callable[[Outcome | None, float, ExecutionContext | None], None]
ResetObserver = Callable[[ExecutionContext | None], None]
HalfOpenObserver = Callable[[], None]


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"
    ISOLATED = "isolated"


@dataclass
class CircuitStats:
    """Statistics for circuit breaker monitoring."""

    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    state_changes: int = 0
    last_state_change: float | None = None

    @property
    def failure_rate(self) -> float:
        """Failure rate as percentage of completed calls."""
        total = self.successful_calls + self.failed_calls
        if total == 0:
            return 0.0
        return (self.failed_calls / total) * 100


# =============================================================================
# CONFIGURATION
# =============================================================================


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Consecutive-failure breaker.

    Attributes:
        failure_threshold: Consecutive handled failures that break the circuit
        break_duration: Seconds the circuit stays open before a trial call
        handle: Which outcomes count as failures
        on_break: ``on_break(outcome, break_duration, ctx)``
        on_reset: ``on_reset(ctx)`` (ctx is None for a manual reset)
        on_half_open: ``on_half_open()``
    """

    failure_threshold: int = 5
    break_duration: float = 30.0
    handle: FaultClassifier = field(default_factory=handle_faults)
    on_break: BreakObserver | None = None
    on_reset: ResetObserver | None = None
    on_half_open: HalfOpenObserver | None = None
    name: str = "circuit-breaker"

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise PolicyConfigError(
                f"failure_threshold must be >= 1, got {self.failure_threshold}"
            )
        if self.break_duration <= 0:
            raise PolicyConfigError(f"break_duration must be > 0, got {self.break_duration}")


@dataclass(frozen=True)
class AdvancedCircuitBreakerConfig:
    """Failure-ratio breaker over a rolling window.

    Attributes:
        failure_ratio: Break when failures / calls in the window reaches this
        sampling_duration: Rolling window length in seconds
        minimum_throughput: Calls needed in the window before it may break
        break_duration: Seconds the circuit stays open before a trial call
        buckets: Number of time buckets the window is split into
    """

    failure_ratio: float = 0.5
    sampling_duration: float = 60.0
    minimum_throughput: int = 10
    break_duration: float = 30.0
    buckets: int = 10
    handle: FaultClassifier = field(default_factory=handle_faults)
    on_break: BreakObserver | None = None
    on_reset: ResetObserver | None = None
    on_half_open: HalfOpenObserver | None = None
    name: str = "circuit-breaker"

    def __post_init__(self) -> None:
        if not 0.0 < self.failure_ratio <= 1.0:
            raise PolicyConfigError(
                f"failure_ratio must be in (0.0, 1.0], got {self.failure_ratio}"
            )
        if self.sampling_duration <= 0:
            raise PolicyConfigError(
                f"sampling_duration must be > 0, got {self.sampling_duration}"
            )
        if self.minimum_throughput < 1:
            raise PolicyConfigError(
                f"minimum_throughput must be >= 1, got {self.minimum_throughput}"
            )
        if self.break_duration <= 0:
            raise PolicyConfigError(f"break_duration must be > 0, got {self.break_duration}")
        if self.buckets < 1:
            raise PolicyConfigError(f"buckets must be >= 1, got {self.buckets}")


# =============================================================================
# HEALTH METRICS
# =============================================================================


class ConsecutiveFailureHealth:
    """Counts handled failures since the last success."""

    def __init__(self, threshold: int):
        self.threshold = threshold
        self.failures = 0

    def record_success(self, now: float) -> None:
        self.failures = 0

    def record_failure(self, now: float) -> bool:
        self.failures += 1
        return self.failures >= self.threshold

    def reset(self) -> None:
        self.failures = 0


@dataclass
class _Bucket:
    start: float
    successes: int = 0
    failures: int = 0


class RollingWindowHealth:
    """Success/failure counts over ``sampling_duration``, kept in fixed buckets.

    Memory is bounded by the bucket count; buckets older than the window are
    dropped as time advances.
    """

    def __init__(
        self,
        failure_ratio: float,
        sampling_duration: float,
        minimum_throughput: int,
        buckets: int,
    ):
        self.failure_ratio = failure_ratio
        self.sampling_duration = sampling_duration
        self.minimum_throughput = minimum_throughput
        self._bucket_width = sampling_duration / buckets
        self._buckets: deque[_Bucket] = deque()

    def _current(self, now: float) -> _Bucket:
        if not self._buckets or now >= self._buckets[-1].start + self._bucket_width:
            self._buckets.append(_Bucket(start=now))
        while now - self._buckets[0].start >= self.sampling_duration:
            self._buckets.popleft()
        return self._buckets[-1]

    @property
    def successes(self) -> int:
        return sum(b.successes for b in self._buckets)

    @property
    def failures(self) -> int:
        return sum(b.failures for b in self._buckets)

    def record_success(self, now: float) -> None:
        self._current(now).successes += 1

    def record_failure(self, now: float) -> bool:
        self._current(now).failures += 1
        failures = self.failures
        total = failures + self.successes
        return total >= self.minimum_throughput and failures / total >= self.failure_ratio

    def reset(self) -> None:
        self._buckets.clear()


# =============================================================================
# POLICY
# =============================================================================


@dataclass(frozen=True)
class _Permit:
    trial: int | None = None


class CircuitBreakerPolicy(Policy):
    """Consecutive-failure circuit breaker.

    State and health counters are guarded by one lock; observers run after
    the lock is released.

    Example:
        >>> breaker = CircuitBreakerPolicy(
        ...     failure_threshold=5,
        ...     break_duration=30.0,
        ...     on_break=lambda outcome, duration, ctx: alert(outcome),
        ... )
    """

    kind = "circuit-breaker"
    config_class: type = CircuitBreakerConfig

    def __init__(
        self,
        config: Any = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        **options: Any,
    ):
        self.config = build_config(self.config_class, config, options)
        super().__init__(self.config.name)
        self._clock = clock
        self._lock = threading.RLock()
        self._state = CircuitState.CLOSED
        self._health = self._make_health()
        self._opened_at: float | None = None
        self._trial_started: float | None = None
        self._trial_id = 0
        self._last_outcome: Outcome | None = None
        self._stats = CircuitStats()

    def _make_health(self) -> Any:
        return ConsecutiveFailureHealth(self.config.failure_threshold)

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> CircuitState:
        """Current state (an expired cooldown moves OPEN to HALF_OPEN)."""
        with self._lock:
            notify = self._check_state_transition(self._clock())
            state = self._state
        self._fire(notify)
        return state

    @property
    def stats(self) -> CircuitStats:
        """Snapshot of the call statistics."""
        with self._lock:
            return replace(self._stats)

    @property
    def last_outcome(self) -> Outcome | None:
        """The most recent handled failure."""
        return self._last_outcome

    @property
    def failure_count(self) -> int:
        """Failures currently counted toward breaking."""
        with self._lock:
            return self._health.failures

    # ------------------------------------------------------------------ #
    # Manual control
    # ------------------------------------------------------------------ #

    def isolate(self) -> None:
        """Hold the circuit open until ``reset()``."""
        with self._lock:
            self._transition_to(CircuitState.ISOLATED, self._clock())
        logger.warning("circuit_isolated", policy=self.name)

    def reset(self) -> None:
        """Force the circuit closed and clear its counters."""
        with self._lock:
            notify = self._close(self._clock(), None)
        self._fire(notify)

    # ------------------------------------------------------------------ #
    # State machine (caller holds the lock)
    # ------------------------------------------------------------------ #

    def _transition_to(self, new_state: CircuitState, now: float) -> None:
        old_state = self._state
        if old_state is new_state:
            return
        self._state = new_state
        self._stats.state_changes += 1
        self._stats.last_state_change = now
        logger.info(
            "circuit_state_changed",
            policy=self.name,
            from_state=old_state.value,
            to_state=new_state.value,
        )

    def _check_state_transition(self, now: float) -> list[Callable[[], None]]:
        if (
            self._state is CircuitState.OPEN
            and self._opened_at is not None
            and now - self._opened_at >= self.config.break_duration
        ):
            self._transition_to(CircuitState.HALF_OPEN, now)
            self._trial_started = None
            if self.config.on_half_open is not None:
                return [self.config.on_half_open]
        return []

    def _break(
        self, now: float, outcome: Outcome, ctx: ExecutionContext
    ) -> list[Callable[[], None]]:
        self._opened_at = now
        self._trial_started = None
        self._transition_to(CircuitState.OPEN, now)
        logger.warning(
            "circuit_broken",
            policy=self.name,
            break_duration=self.config.break_duration,
            error=repr(outcome.error) if outcome.is_err() else None,
            **ctx.log_fields(),
        )
        on_break = self.config.on_break
        if on_break is None:
            return []
        duration = self.config.break_duration
        return [lambda: on_break(outcome, duration, ctx)]

    def _close(self, now: float, ctx: ExecutionContext | None) -> list[Callable[[], None]]:
        was_closed = self._state is CircuitState.CLOSED
        self._health.reset()
        self._opened_at = None
        self._trial_started = None
        self._transition_to(CircuitState.CLOSED, now)
        on_reset = self.config.on_reset
        if was_closed or on_reset is None:
            return []
        return [lambda: on_reset(ctx)]

    @staticmethod
    def _fire(notify: list[Callable[[], None]]) -> None:
        for callback in notify:
            callback()

    # ------------------------------------------------------------------ #
    # Call gating
    # ------------------------------------------------------------------ #

    def _acquire(self, ctx: ExecutionContext) -> _Permit | Err:
        with self._lock:
            now = self._clock()
            notify = self._check_state_transition(now)
            self._stats.total_calls += 1
            permit = _Permit()
            rejection: BrokenCircuitError | None = None

            if self._state is CircuitState.CLOSED:
                pass
            elif self._state is CircuitState.ISOLATED:
                rejection = IsolatedCircuitError(self.name)
            elif self._state is CircuitState.OPEN:
                rejection = BrokenCircuitError(
                    self.name,
                    retry_after=max(0.0, self._opened_at + self.config.break_duration - now),
                    last_outcome=self._last_outcome,
                )
            elif (
                self._trial_started is None
                or now - self._trial_started >= self.config.break_duration
            ):
                self._trial_id += 1
                self._trial_started = now
                permit = _Permit(trial=self._trial_id)
            else:
                rejection = BrokenCircuitError(
                    self.name, retry_after=None, last_outcome=self._last_outcome
                )

            if rejection is not None:
                self._stats.rejected_calls += 1
        self._fire(notify)

        if rejection is not None:
            logger.debug("circuit_rejected", policy=self.name, **ctx.log_fields())
            return Err(rejection, policy=self.name)
        return permit

    def _record(self, permit: _Permit, outcome: Outcome, ctx: ExecutionContext) -> None:
        notify: list[Callable[[], None]] = []
        with self._lock:
            now = self._clock()
            is_trial = permit.trial is not None and permit.trial == self._trial_id
            if is_trial:
                self._trial_started = None

            if self.config.handle.handles(outcome):
                self._stats.failed_calls += 1
                self._last_outcome = outcome
                if self._state is CircuitState.HALF_OPEN and is_trial:
                    notify = self._break(now, outcome, ctx)
                elif self._state is CircuitState.CLOSED and self._health.record_failure(now):
                    notify = self._break(now, outcome, ctx)
            elif outcome.is_ok():
                self._stats.successful_calls += 1
                if self._state is CircuitState.HALF_OPEN and is_trial:
                    notify = self._close(now, ctx)
                elif self._state is CircuitState.CLOSED:
                    self._health.record_success(now)
        self._fire(notify)

    def _release_trial(self, permit: _Permit) -> None:
        """Free the half-open trial slot held by a call that never completed."""
        with self._lock:
            if permit.trial is not None and permit.trial == self._trial_id:
                self._trial_started = None

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    def _execute(self, unit: SyncUnit, ctx: ExecutionContext) -> Outcome:
        permit = self._acquire(ctx)
        if isinstance(permit, Err):
            return permit
        try:
            outcome = unit(ctx)
        except BaseException:
            self._release_trial(permit)
            raise
        self._record(permit, outcome, ctx)
        return outcome

    async def _execute_async(self, unit: AsyncUnit, ctx: ExecutionContext) -> Outcome:
        permit = self._acquire(ctx)
        if isinstance(permit, Err):
            return permit
        try:
            outcome = await unit(ctx)
        except BaseException:
            self._release_trial(permit)
            raise
        self._record(permit, outcome, ctx)
        return outcome


class AdvancedCircuitBreakerPolicy(CircuitBreakerPolicy):
    """Failure-ratio circuit breaker over a bucketed rolling window.

    Breaks when, within the last ``sampling_duration`` seconds, at least
    ``minimum_throughput`` calls completed and the share of handled failures
    is at least ``failure_ratio``.
    """

    config_class = AdvancedCircuitBreakerConfig

    def _make_health(self) -> Any:
        return RollingWindowHealth(
            self.config.failure_ratio,
            self.config.sampling_duration,
            self.config.minimum_throughput,
            self.config.buckets,
        )


__all__ = [
    "CircuitState",
    "CircuitStats",
    "CircuitBreakerConfig",
    "AdvancedCircuitBreakerConfig",
    "ConsecutiveFailureHealth",
    "RollingWindowHealth",
    "CircuitBreakerPolicy",
    "AdvancedCircuitBreakerPolicy",
]
