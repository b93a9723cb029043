"""Policy composition.

``wrap(p1, p2, p3)`` nests policies outermost-first::

    p1.execute(λ ctx: p2.execute(λ ctx: p3.execute(action, ctx), ctx), ctx)

Nothing is inferred from the policy types: the order given is the order
applied. A few consequences worth knowing:

    wrap(retry, breaker)       every retry attempt consults (and feeds) the breaker
    wrap(breaker, retry)       the breaker only sees the result after all retries
    wrap(fallback, ...)        fallback outermost sees faults from every layer,
                               rejections included, if its classifier handles them
    wrap(timeout, retry)       one deadline for all attempts together
    wrap(retry, timeout)       a fresh deadline per attempt
"""

from __future__ import annotations

from rampart.core.context import ExecutionContext
from rampart.core.errors import PolicyConfigError
from rampart.core.result import Outcome
from rampart.policies.base import AsyncUnit, Policy, SyncUnit


class PolicyWrap(Policy):
    """Two policies composed, ``outer`` around ``inner``."""

    kind = "wrap"

    def __init__(self, outer: Policy, inner: Policy, name: str | None = None):
        if not isinstance(outer, Policy) or not isinstance(inner, Policy):
            raise PolicyConfigError("PolicyWrap composes Policy instances only")
        super().__init__(name or f"{outer.name}>{inner.name}")
        self.outer = outer
        self.inner = inner

    @property
    def policies(self) -> list[Policy]:
        """Leaf policies, outermost first."""
        leaves: list[Policy] = []
        for part in (self.outer, self.inner):
            if isinstance(part, PolicyWrap):
                leaves.extend(part.policies)
            else:
                leaves.append(part)
        return leaves

    def _execute(self, unit: SyncUnit, ctx: ExecutionContext) -> Outcome:
        return self.outer._execute(lambda c: self.inner._execute(unit, c), ctx)

    async def _execute_async(self, unit: AsyncUnit, ctx: ExecutionContext) -> Outcome:
        async def inner_unit(c: ExecutionContext) -> Outcome:
            return await self.inner._execute_async(unit, c)

        return await self.outer._execute_async(inner_unit, ctx)

    def __repr__(self) -> str:
        chain = ", ".join(repr(p) for p in self.policies)
        return f"PolicyWrap({chain})"


def wrap(*policies: Policy, name: str | None = None) -> PolicyWrap:
    """Compose ``policies``, the first outermost.

    Raises:
        PolicyConfigError: With fewer than two policies
    """
    if len(policies) < 2:
        raise PolicyConfigError(f"wrap() needs at least two policies, got {len(policies)}")
    composed = policies[-1]
    for outer in reversed(policies[1:-1]):
        composed = PolicyWrap(outer, composed)
    return PolicyWrap(policies[0], composed, name=name)


__all__ = ["PolicyWrap", "wrap"]
