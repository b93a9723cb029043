"""Fallback policy: substitute a value or action for handled faults."""

from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from rampart.core.context import ExecutionContext
from rampart.core.errors import PolicyConfigError
from rampart.core.logging import get_logger
from rampart.core.result import Err, Ok, Outcome, capture, is_outcome
from rampart.policies.base import AsyncUnit, Policy, SyncUnit, build_config
from rampart.policies.classifier import FaultClassifier, handle_faults

logger = get_logger(__name__)

_UNSET: Any = object()


@dataclass(frozen=True)
class FallbackConfig:
    """
    Exactly one of ``fallback`` (a value) or ``action`` must be given.

    Attributes:
        fallback: Value returned in place of a handled fault
        action: ``action(outcome, ctx)`` producing a value, an Outcome, or raising
        handle: Which outcomes are replaced
        on_fallback: ``on_fallback(outcome, ctx)``, called before the action
    """

    fallback: Any = _UNSET
    action: Callable[[Outcome, ExecutionContext], Any] | None = None
    handle: FaultClassifier = field(default_factory=handle_faults)
    on_fallback: Callable[[Outcome, ExecutionContext], None] | None = None
    name: str = "fallback"

    def __post_init__(self) -> None:
        if (self.fallback is _UNSET) == (self.action is None):
            raise PolicyConfigError("Provide exactly one of 'fallback' or 'action'")


class FallbackPolicy(Policy):
    """Replace handled faults with a fallback result.

    Example:
        >>> policy = FallbackPolicy(
        ...     fallback=[],
        ...     handle=handle(ConnectionError).or_handle(BrokenCircuitError),
        ... )
        >>> policy.run(lambda ctx: fetch_recommendations(user_id))
        []
    """

    kind = "fallback"

    def __init__(self, config: FallbackConfig | None = None, **options: Any):
        self.config = build_config(FallbackConfig, config, options)
        super().__init__(self.config.name)

    def _engage(self, outcome: Outcome, ctx: ExecutionContext) -> bool:
        if not self.config.handle.handles(outcome):
            return False
        logger.info(
            "fallback_invoked",
            policy=self.name,
            error=repr(outcome.error) if isinstance(outcome, Err) else None,
            **ctx.log_fields(),
        )
        if self.config.on_fallback is not None:
            self.config.on_fallback(outcome, ctx)
        return True

    def _execute(self, unit: SyncUnit, ctx: ExecutionContext) -> Outcome:
        outcome = unit(ctx)
        if not self._engage(outcome, ctx):
            return outcome
        if self.config.action is None:
            return Ok(self.config.fallback, policy=self.name)
        return capture(self.config.action, outcome, ctx).attributed(self.name)

    async def _execute_async(self, unit: AsyncUnit, ctx: ExecutionContext) -> Outcome:
        outcome = await unit(ctx)
        if not self._engage(outcome, ctx):
            return outcome
        if self.config.action is None:
            return Ok(self.config.fallback, policy=self.name)
        try:
            value = self.config.action(outcome, ctx)
            if inspect.isawaitable(value):
                value = await value
        except Exception as e:
            return Err(e, policy=self.name)
        if is_outcome(value):
            return value.attributed(self.name)
        return Ok(value, policy=self.name)


__all__ = ["FallbackConfig", "FallbackPolicy"]
