"""Cooperative cancellation tokens.

A ``CancellationToken`` is the caller's way to say "stop". Nothing is
interrupted forcibly: Retry stops scheduling attempts and wakes from its
delay, Bulkhead abandons a queued wait, and Timeout hands a linked token to
the unit of work, which is expected to observe it.

Deadlines are evaluated lazily against the monotonic clock. A token created
with ``linked(timeout=...)`` reports itself cancelled once the deadline has
passed without any timer thread firing; waits through ``sleep`` /
``sleep_async`` wake at the deadline because they never wait past it.

Example::

    token = CancellationToken()
    child = token.linked(timeout=2.0)

    def work(ctx):
        for chunk in chunks:
            ctx.cancellation.raise_if_cancelled()
            process(chunk)
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Callable

from rampart.core.errors import OperationCancelledError


class CancellationToken:
    """Thread- and asyncio-safe cooperative cancellation signal."""

    def __init__(
        self,
        *,
        deadline: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []
        self._deadline = deadline
        self._clock = clock
        self._parent: CancellationToken | None = None
        self._unlink: Callable[[], None] = lambda: None

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #

    @property
    def deadline(self) -> float | None:
        """Effective monotonic deadline (own or inherited), if any."""
        own = self._deadline
        inherited = self._parent.deadline if self._parent is not None else None
        if own is None:
            return inherited
        if inherited is None:
            return own
        return min(own, inherited)

    @property
    def timed_out(self) -> bool:
        """True if this token's own deadline has passed."""
        return self._deadline is not None and self._clock() >= self._deadline

    @property
    def is_cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self.timed_out:
            return True
        return self._parent is not None and self._parent.is_cancelled

    def remaining(self) -> float | None:
        """Seconds until the effective deadline, or None without one."""
        deadline = self.deadline
        if deadline is None:
            return None
        return max(0.0, deadline - self._clock())

    def raise_if_cancelled(self) -> None:
        """
        Raises:
            OperationCancelledError: If the token has been cancelled
        """
        if self.is_cancelled:
            raise OperationCancelledError()

    # ------------------------------------------------------------------ #
    # Signalling
    # ------------------------------------------------------------------ #

    def cancel(self) -> None:
        """Cancel the token and run registered callbacks (once)."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run ``callback`` when cancel() is called.

        Runs immediately if the token is already cancelled. Deadline expiry
        does not run callbacks.

        Returns:
            A function that unregisters the callback
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._unregister(callback)
        callback()
        return lambda: None

    def _unregister(self, callback: Callable[[], None]) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    def linked(self, timeout: float | None = None) -> CancellationToken:
        """Create a child token cancelled with this one or after ``timeout``."""
        deadline = self._clock() + timeout if timeout is not None else None
        child = CancellationToken(deadline=deadline, clock=self._clock)
        child._parent = self
        child._unlink = self.register(child.cancel)
        return child

    def detach(self) -> None:
        """Stop propagating the parent's cancel() into this linked token.

        The parent is still consulted by ``is_cancelled``; only the callback
        registration is dropped so long-lived parents do not accumulate
        callbacks from short-lived children.
        """
        self._unlink()
        self._unlink = lambda: None

    # ------------------------------------------------------------------ #
    # Waiting
    # ------------------------------------------------------------------ #

    def bounded(self, seconds: float | None) -> float | None:
        """Clamp a wait of ``seconds`` to the effective deadline."""
        remaining = self.remaining()
        if remaining is None:
            return seconds
        if seconds is None:
            return remaining
        return min(seconds, remaining)

    def sleep(self, seconds: float) -> bool:
        """Block for ``seconds`` unless cancelled first.

        Returns:
            True if the token was cancelled (the wait was cut short)
        """
        if self.is_cancelled:
            return True
        self._event.wait(self.bounded(seconds))
        return self.is_cancelled

    async def sleep_async(self, seconds: float) -> bool:
        """Suspend for ``seconds`` unless cancelled first.

        Returns:
            True if the token was cancelled (the wait was cut short)
        """
        if self.is_cancelled:
            return True
        loop = asyncio.get_running_loop()
        waiter = loop.create_future()

        def _wake() -> None:
            loop.call_soon_threadsafe(resolve_waiter, waiter)

        unregister = self.register(_wake)
        try:
            await asyncio.wait_for(waiter, timeout=self.bounded(seconds))
        except asyncio.TimeoutError:
            pass
        finally:
            unregister()
        return self.is_cancelled

    def __repr__(self) -> str:
        state = "cancelled" if self.is_cancelled else "active"
        return f"CancellationToken({state}, deadline={self.deadline})"


def resolve_waiter(future: asyncio.Future) -> None:
    """Complete a waiter future unless it already completed (loop thread only)."""
    if not future.done():
        future.set_result(None)


__all__ = ["CancellationToken", "resolve_waiter"]
