"""Bulkhead isolation: bounded concurrency plus a bounded FIFO queue.

Architecture:
    ::

        caller ─► slot free?  ── yes ─► run unit ─► release ─┐
                    │ no                                      │
                    ▼                                         │
                queue room? ── no ─► BulkheadRejectedError    │
                    │ yes                                     │
                    ▼                                         │
                wait in FIFO ◄──── slot handed to head ◄──────┘

A released slot is handed directly to the longest-waiting caller rather
than returned to the pool, so a newcomer can never overtake the queue.
Sync waiters park on a ``threading.Event``; async waiters on a loop future
resolved thread-safely, so one bulkhead can be shared by threads and
coroutines alike.
"""

from __future__ import annotations

import asyncio
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from rampart.core.cancellation import CancellationToken, resolve_waiter
from rampart.core.context import ExecutionContext
from rampart.core.errors import BulkheadRejectedError, OperationCancelledError, PolicyConfigError
from rampart.core.logging import get_logger
from rampart.core.result import Err, Outcome
from rampart.policies.base import AsyncUnit, Policy, SyncUnit, build_config

logger = get_logger(__name__)


@dataclass(frozen=True)
class BulkheadConfig:
    """
    Attributes:
        max_parallelization: Concurrent executions allowed
        max_queue: Callers allowed to wait for a slot (0 = reject at once)
        on_rejected: ``on_rejected(ctx)`` when a call is turned away
    """

    max_parallelization: int = 10
    max_queue: int = 0
    on_rejected: Callable[[ExecutionContext], None] | None = None
    name: str = "bulkhead"

    def __post_init__(self) -> None:
        if self.max_parallelization < 1:
            raise PolicyConfigError(
                f"max_parallelization must be >= 1, got {self.max_parallelization}"
            )
        if self.max_queue < 0:
            raise PolicyConfigError(f"max_queue must be >= 0, got {self.max_queue}")


@dataclass
class BulkheadStats:
    """Statistics for bulkhead monitoring."""

    executed: int = 0
    queued: int = 0
    rejected: int = 0
    abandoned: int = 0


class _Waiter:
    __slots__ = ("granted", "_wake")

    def __init__(self, wake: Callable[[], None]):
        self.granted = False
        self._wake = wake

    def grant(self) -> None:
        self.granted = True
        self._wake()


class BulkheadPolicy(Policy):
    """Limit concurrent executions of the unit of work.

    Example:
        >>> bulkhead = BulkheadPolicy(max_parallelization=6, max_queue=12)
        >>> bulkhead.execute(lambda ctx: render_report(ctx["report_id"]), ctx)
        >>> bulkhead.available_count
        6
    """

    kind = "bulkhead"

    def __init__(self, config: BulkheadConfig | None = None, **options: Any):
        self.config = build_config(BulkheadConfig, config, options)
        super().__init__(self.config.name)
        self._lock = threading.Lock()
        self._free = self.config.max_parallelization
        self._queue: deque[_Waiter] = deque()
        self._stats = BulkheadStats()

    @property
    def available_count(self) -> int:
        """Execution slots currently free."""
        with self._lock:
            return self._free

    @property
    def queue_available_count(self) -> int:
        """Queue slots currently free."""
        with self._lock:
            return self.config.max_queue - len(self._queue)

    @property
    def stats(self) -> BulkheadStats:
        with self._lock:
            return replace(self._stats)

    # ------------------------------------------------------------------ #
    # Slot bookkeeping
    # ------------------------------------------------------------------ #

    def _try_acquire(self, make_waiter: Callable[[], _Waiter]) -> bool | _Waiter:
        """True (slot taken), a queued waiter, or False (rejected)."""
        with self._lock:
            if self._free > 0:
                self._free -= 1
                self._stats.executed += 1
                return True
            if len(self._queue) < self.config.max_queue:
                waiter = make_waiter()
                self._queue.append(waiter)
                self._stats.queued += 1
                return waiter
            self._stats.rejected += 1
            return False

    def _release(self) -> None:
        with self._lock:
            if self._queue:
                self._stats.executed += 1
                self._queue.popleft().grant()
                return
            self._free += 1

    def _abandon(self, waiter: _Waiter) -> None:
        """Leave the queue; a slot granted in the meantime is passed on."""
        with self._lock:
            granted = waiter.granted
            if not granted:
                self._queue.remove(waiter)
                self._stats.abandoned += 1
        if granted:
            self._release()

    def _reject(self, ctx: ExecutionContext) -> Outcome:
        logger.warning(
            "bulkhead_rejected",
            policy=self.name,
            max_parallelization=self.config.max_parallelization,
            max_queue=self.config.max_queue,
            **ctx.log_fields(),
        )
        if self.config.on_rejected is not None:
            self.config.on_rejected(ctx)
        return Err(
            BulkheadRejectedError(
                self.name, self.config.max_parallelization, self.config.max_queue
            ),
            policy=self.name,
        )

    # ------------------------------------------------------------------ #
    # Waiting
    # ------------------------------------------------------------------ #

    def _wait(self, waiter: _Waiter, event: threading.Event, token: CancellationToken) -> bool:
        """Block until granted; False if the caller was cancelled first."""
        unregister = token.register(event.set)
        try:
            while not event.wait(token.remaining()):
                if token.is_cancelled:
                    break
        except BaseException:
            self._abandon(waiter)
            raise
        finally:
            unregister()
        if token.is_cancelled:
            self._abandon(waiter)
            return False
        return True

    async def _wait_async(
        self, waiter: _Waiter, future: asyncio.Future, token: CancellationToken
    ) -> bool:
        loop = asyncio.get_running_loop()
        unregister = token.register(lambda: loop.call_soon_threadsafe(resolve_waiter, future))
        try:
            while not future.done():
                await asyncio.wait({future}, timeout=token.remaining())
                if token.is_cancelled:
                    break
        except BaseException:
            self._abandon(waiter)
            raise
        finally:
            unregister()
        if token.is_cancelled:
            self._abandon(waiter)
            return False
        return True

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    def _execute(self, unit: SyncUnit, ctx: ExecutionContext) -> Outcome:
        event = threading.Event()
        acquired = self._try_acquire(lambda: _Waiter(event.set))
        if acquired is False:
            return self._reject(ctx)
        if isinstance(acquired, _Waiter) and not self._wait(acquired, event, ctx.cancellation):
            return Err(OperationCancelledError(), policy=self.name)
        try:
            return unit(ctx)
        finally:
            self._release()

    async def _execute_async(self, unit: AsyncUnit, ctx: ExecutionContext) -> Outcome:
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        acquired = self._try_acquire(
            lambda: _Waiter(lambda: loop.call_soon_threadsafe(resolve_waiter, future))
        )
        if acquired is False:
            return self._reject(ctx)
        if isinstance(acquired, _Waiter) and not await self._wait_async(
            acquired, future, ctx.cancellation
        ):
            return Err(OperationCancelledError(), policy=self.name)
        try:
            return await unit(ctx)
        finally:
            self._release()


__all__ = ["BulkheadConfig", "BulkheadStats", "BulkheadPolicy"]
