"""Policy: the uniform execute contract every variant implements.

WHY
───
Composition only works if every policy looks the same from the outside.
``Policy`` fixes that shape: ``execute`` / ``execute_async`` take a unit of
work and an ``ExecutionContext`` and return an ``Outcome``. Internally each
variant implements ``_execute`` / ``_execute_async`` against a *unit*, a
callable that already returns an ``Outcome`` and never raises ``Exception``.
A ``PolicyWrap`` can then hand one policy's pipeline to another without
knowing either concrete type.

ARCHITECTURE
────────────
::

    caller action(ctx) ─► _sync_unit / _async_unit ─► unit(ctx) → Outcome
                                                     │
    Policy.execute(action, ctx) ─────────────────────┴─► self._execute(unit, ctx)

    Helpers on every policy:
      .run(action)        → execute + unwrap (raises the final fault)
      .protect(func)      → decorator (sync or async)
      .wrap(inner)        → PolicyWrap(self, inner)
"""

from __future__ import annotations

import functools
import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, ClassVar, TypeVar

from rampart.core.context import ExecutionContext
from rampart.core.errors import OperationCancelledError, PolicyConfigError
from rampart.core.result import Err, Ok, Outcome, capture, is_outcome

T = TypeVar("T")
C = TypeVar("C")

Action = Callable[[ExecutionContext], Any]
SyncUnit = Callable[[ExecutionContext], Outcome]
AsyncUnit = Callable[[ExecutionContext], Awaitable[Outcome]]


def _sync_unit(action: Action) -> SyncUnit:
    def unit(ctx: ExecutionContext) -> Outcome:
        if ctx.cancellation.is_cancelled:
            return Err(OperationCancelledError())
        return capture(action, ctx)

    return unit


def _async_unit(action: Action) -> AsyncUnit:
    async def unit(ctx: ExecutionContext) -> Outcome:
        if ctx.cancellation.is_cancelled:
            return Err(OperationCancelledError())
        try:
            value = action(ctx)
            if inspect.isawaitable(value):
                value = await value
        except Exception as e:
            return Err(e)
        if is_outcome(value):
            return value
        return Ok(value)

    return unit


def build_config(config_cls: type[C], config: C | None, options: dict[str, Any]) -> C:
    """Resolve a policy's immutable config from an object or keyword options.

    Raises:
        PolicyConfigError: If both (or a config of the wrong type) are given
    """
    if config is not None and options:
        raise PolicyConfigError(
            f"Pass either a {config_cls.__name__} or keyword options, not both"
        )
    if config is None:
        return config_cls(**options)
    if not isinstance(config, config_cls):
        raise PolicyConfigError(
            f"Expected {config_cls.__name__}, got {type(config).__name__}"
        )
    return config


class Policy(ABC):
    """Abstract base for every policy variant (and the composed wrap)."""

    kind: ClassVar[str] = "policy"

    def __init__(self, name: str | None = None):
        self.name = name or self.kind

    # ------------------------------------------------------------------ #
    # Public contract
    # ------------------------------------------------------------------ #

    def execute(self, action: Action, context: ExecutionContext | None = None) -> Outcome:
        """Run ``action`` under this policy (blocking).

        Args:
            action: Callable taking the context; may return a value, an
                ``Ok``/``Err``, or raise
            context: Context for this call (a fresh one if omitted)

        Returns:
            The final Outcome; never raises for faults
        """
        ctx = context if context is not None else ExecutionContext()
        return self._execute(_sync_unit(action), ctx)

    async def execute_async(
        self, action: Action, context: ExecutionContext | None = None
    ) -> Outcome:
        """Run ``action`` under this policy, suspending where it suspends."""
        ctx = context if context is not None else ExecutionContext()
        return await self._execute_async(_async_unit(action), ctx)

    def run(self, action: Action, context: ExecutionContext | None = None) -> Any:
        """Execute and unwrap: return the value or raise the final fault."""
        return self.execute(action, context).unwrap()

    async def run_async(self, action: Action, context: ExecutionContext | None = None) -> Any:
        return (await self.execute_async(action, context)).unwrap()

    def protect(self, func: Callable[..., T]) -> Callable[..., T]:
        """Decorator running every call of ``func`` under this policy.

        Supports both sync and async functions. The decorated function
        raises the final fault, like an undecorated call would.

        Usage:
            @retry_policy.protect
            def fetch_quote(symbol):
                ...
        """
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                return await self.run_async(lambda ctx: func(*args, **kwargs))

            async_wrapper._policy = self  # type: ignore[attr-defined]
            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            return self.run(lambda ctx: func(*args, **kwargs))

        sync_wrapper._policy = self  # type: ignore[attr-defined]
        return sync_wrapper

    def wrap(self, inner: Policy) -> Policy:
        """Compose with ``inner`` nested inside this policy."""
        from rampart.policies.wrap import PolicyWrap

        return PolicyWrap(self, inner)

    # ------------------------------------------------------------------ #
    # Variant hooks
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _execute(self, unit: SyncUnit, ctx: ExecutionContext) -> Outcome:
        """Apply this policy around ``unit`` (blocking)."""
        ...

    @abstractmethod
    async def _execute_async(self, unit: AsyncUnit, ctx: ExecutionContext) -> Outcome:
        """Apply this policy around ``unit`` (suspending)."""
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


class NoOpPolicy(Policy):
    """Executes the unit of work unchanged."""

    kind = "noop"

    def _execute(self, unit: SyncUnit, ctx: ExecutionContext) -> Outcome:
        return unit(ctx)

    async def _execute_async(self, unit: AsyncUnit, ctx: ExecutionContext) -> Outcome:
        return await unit(ctx)


__all__ = [
    "Action",
    "SyncUnit",
    "AsyncUnit",
    "Policy",
    "NoOpPolicy",
    "build_config",
]
