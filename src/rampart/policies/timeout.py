"""Timeout policy: bound how long a caller waits for the unit of work.

Manifesto:
    A dependency that hangs is worse than one that fails: it holds the
    caller's thread, its bulkhead slot and its user. The timeout policy
    gives up after a configured duration and returns a
    ``TimeoutRejectedError`` outcome.

Two strategies:
    ::

        OPTIMISTIC   the unit runs on the caller's thread/task with a linked
                     CancellationToken (ctx.cancellation) that expires at the
                     deadline. The unit must observe it; a unit that ignores
                     it simply runs late and its outcome is returned.

        PESSIMISTIC  the unit runs on a daemon thread (sync) or a separate
                     task (async). The caller waits for whichever comes first:
                     the outcome, the deadline, or its own cancellation. On
                     timeout the unit is abandoned: its token is cancelled,
                     it may keep running, and its outcome is discarded (it
                     stays retrievable through the future handed to
                     ``on_timeout``).

Examples:
    >>> policy = TimeoutPolicy(seconds=2.0)
    >>> def fetch(ctx):
    ...     for page in pages:
    ...         ctx.cancellation.raise_if_cancelled()
    ...         download(page)
    >>> policy.execute(fetch)

    >>> hard = TimeoutPolicy(seconds=2.0, strategy=TimeoutStrategy.PESSIMISTIC)
    >>> hard.execute(lambda ctx: legacy_client.blocking_call())
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from rampart.core.cancellation import CancellationToken, resolve_waiter
from rampart.core.context import ExecutionContext
from rampart.core.errors import OperationCancelledError, PolicyConfigError, TimeoutRejectedError
from rampart.core.logging import get_logger
from rampart.core.result import Err, Outcome
from rampart.policies.base import AsyncUnit, Policy, SyncUnit, build_config

logger = get_logger(__name__)

TimeoutObserver = Callable[[ExecutionContext, float, Any], None]


class TimeoutStrategy(str, Enum):
    """How the timeout is enforced."""

    OPTIMISTIC = "optimistic"
    PESSIMISTIC = "pessimistic"


@dataclass(frozen=True)
class TimeoutConfig:
    """
    Attributes:
        seconds: Time allowed for the unit of work
        strategy: OPTIMISTIC (cooperative) or PESSIMISTIC (abandon)
        on_timeout: ``on_timeout(ctx, elapsed, abandoned)``; ``abandoned`` is the
            detached Future/Task for PESSIMISTIC, else None
    """

    seconds: float = 30.0
    strategy: TimeoutStrategy = TimeoutStrategy.OPTIMISTIC
    on_timeout: TimeoutObserver | None = None
    name: str = "timeout"

    def __post_init__(self) -> None:
        if self.seconds <= 0:
            raise PolicyConfigError(f"seconds must be > 0, got {self.seconds}")


class TimeoutPolicy(Policy):
    """Give up on the unit of work after ``seconds``."""

    kind = "timeout"

    def __init__(self, config: TimeoutConfig | None = None, **options: Any):
        self.config = build_config(TimeoutConfig, config, options)
        super().__init__(self.config.name)
        # Strong references to abandoned tasks until they finish.
        self._abandoned: set[asyncio.Task] = set()

    @property
    def pessimistic(self) -> bool:
        return self.config.strategy is TimeoutStrategy.PESSIMISTIC

    def _timed_out(self, ctx: ExecutionContext, elapsed: float, abandoned: Any) -> Outcome:
        logger.warning(
            "timeout_expired",
            policy=self.name,
            timeout=self.config.seconds,
            elapsed=round(elapsed, 4),
            strategy=self.config.strategy.value,
            **ctx.log_fields(),
        )
        if self.config.on_timeout is not None:
            self.config.on_timeout(ctx, elapsed, abandoned)
        return Err(
            TimeoutRejectedError(self.name, self.config.seconds, elapsed),
            policy=self.name,
        )

    def _cancelled(self) -> Outcome:
        return Err(OperationCancelledError(), policy=self.name)

    def _check_optimistic(
        self,
        outcome: Outcome,
        token: CancellationToken,
        ctx: ExecutionContext,
        started: float,
    ) -> Outcome:
        if (
            isinstance(outcome, Err)
            and outcome.is_cancelled
            and token.timed_out
            and not ctx.cancellation.is_cancelled
        ):
            return self._timed_out(ctx, time.monotonic() - started, None)
        return outcome

    # ------------------------------------------------------------------ #
    # Sync
    # ------------------------------------------------------------------ #

    def _execute(self, unit: SyncUnit, ctx: ExecutionContext) -> Outcome:
        started = time.monotonic()
        token = ctx.cancellation.linked(timeout=self.config.seconds)
        inner = ctx.derive(cancellation=token)

        if not self.pessimistic:
            try:
                outcome = unit(inner)
            finally:
                token.detach()
            return self._check_optimistic(outcome, token, ctx, started)

        future: concurrent.futures.Future = concurrent.futures.Future()

        def runner() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(unit(inner))
            except BaseException as exc:
                future.set_exception(exc)

        done = threading.Event()
        future.add_done_callback(lambda _: done.set())
        unregister = ctx.cancellation.register(done.set)
        threading.Thread(target=runner, name=f"rampart-{self.name}", daemon=True).start()
        try:
            done.wait(ctx.cancellation.bounded(self.config.seconds))
        finally:
            unregister()

        if future.done() and not ctx.cancellation.is_cancelled:
            token.detach()
            return future.result()

        token.cancel()
        token.detach()
        if ctx.cancellation.is_cancelled:
            return self._cancelled()
        return self._timed_out(ctx, time.monotonic() - started, future)

    # ------------------------------------------------------------------ #
    # Async
    # ------------------------------------------------------------------ #

    async def _execute_async(self, unit: AsyncUnit, ctx: ExecutionContext) -> Outcome:
        started = time.monotonic()
        token = ctx.cancellation.linked(timeout=self.config.seconds)
        inner = ctx.derive(cancellation=token)

        if not self.pessimistic:
            try:
                outcome = await unit(inner)
            finally:
                token.detach()
            return self._check_optimistic(outcome, token, ctx, started)

        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(unit(inner))
        caller_cancelled = loop.create_future()
        unregister = ctx.cancellation.register(
            lambda: loop.call_soon_threadsafe(resolve_waiter, caller_cancelled)
        )
        try:
            await asyncio.wait(
                {task, caller_cancelled},
                timeout=ctx.cancellation.bounded(self.config.seconds),
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            token.cancel()
            task.cancel()
            raise
        finally:
            unregister()
            caller_cancelled.cancel()

        if task.done() and not ctx.cancellation.is_cancelled:
            token.detach()
            return task.result()

        token.cancel()
        token.detach()
        if not task.done():
            self._abandoned.add(task)
            task.add_done_callback(self._abandoned.discard)
        if ctx.cancellation.is_cancelled:
            return self._cancelled()
        return self._timed_out(ctx, time.monotonic() - started, task)


__all__ = ["TimeoutStrategy", "TimeoutConfig", "TimeoutPolicy"]
