"""
Outcome envelope for every execution attempt.

A unit of work either produces a value or a fault. Policies never throw
faults at each other; they pass ``Ok``/``Err`` values up the pipeline and
inspect them explicitly. This is what lets a Fallback outermost in a wrap
catch a bulkhead rejection raised three layers down without a single
``try`` in between.

Manifesto:
    - **Faults are values:** Policies inspect outcomes rather than catching
    - **Immutable:** Frozen, slotted dataclasses
    - **Attributable:** ``policy`` records which policy produced or
      converted the outcome (cache hit, fallback, rejection)

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                     Outcome[T]                               │
        ├──────────────────────────┬──────────────────────────────────┤
        │     Ok[T]                │     Err[T]                        │
        │  • value: T              │  • error: Exception               │
        │  • policy: str | None    │  • policy: str | None             │
        │  • map / unwrap          │  • category / is_cancelled        │
        └──────────────────────────┴──────────────────────────────────┘

Examples:
    >>> outcome = capture(lambda: 10 / 2)
    >>> outcome.unwrap()
    5.0
    >>> failed = capture(lambda: 1 / 0)
    >>> failed.category
    <ErrorCategory.FAULT: 'FAULT'>
    >>> failed.unwrap_or(0)
    0

Tags:
    result-pattern, outcome, error-handling, rampart-core

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Callable, Generic, TypeVar

from rampart.core.errors import ErrorCategory, RampartError, category_of


T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """
    Successful outcome containing a value.

    Attributes:
        value: The value produced by the unit of work (or a substitute)
        policy: Name of the policy that produced this outcome, if any
    """

    value: T
    policy: str | None = None

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Get the value. Safe for Ok."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def unwrap_or_else(self, f: Callable[[Exception], T]) -> T:
        return self.value

    def map(self, f: Callable[[T], U]) -> Outcome[U]:
        """Transform the value if Ok."""
        return Ok(f(self.value), self.policy)

    def map_err(self, f: Callable[[Exception], Exception]) -> Outcome[T]:
        return self

    def or_else(self, f: Callable[[Exception], Outcome[T]]) -> Outcome[T]:
        return self

    def attributed(self, policy: str) -> Ok[T]:
        """Return a copy attributed to ``policy``."""
        return replace(self, policy=policy)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        result: dict[str, Any] = {"ok": True, "value": self.value}
        if self.policy:
            result["policy"] = self.policy
        return result

    def __repr__(self) -> str:
        if self.policy:
            return f"Ok({self.value!r}, policy={self.policy!r})"
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """
    Failed outcome containing a fault.

    Attributes:
        error: The exception raised by (or on behalf of) the unit of work
        policy: Name of the policy that produced this outcome, if any
    """

    error: Exception
    policy: str | None = None

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    @property
    def category(self) -> ErrorCategory:
        """Taxonomy category of the wrapped error."""
        return category_of(self.error)

    @property
    def is_cancelled(self) -> bool:
        return self.category is ErrorCategory.CANCELLED

    def unwrap(self) -> T:
        """Raise the error. Use only when you're sure it's Ok."""
        raise self.error

    def unwrap_or(self, default: T) -> T:
        return default

    def unwrap_or_else(self, f: Callable[[Exception], T]) -> T:
        return f(self.error)

    def map(self, f: Callable[[T], U]) -> Outcome[U]:
        """No-op for Err."""
        return Err(self.error, self.policy)

    def map_err(self, f: Callable[[Exception], Exception]) -> Outcome[T]:
        return Err(f(self.error), self.policy)

    def or_else(self, f: Callable[[Exception], Outcome[T]]) -> Outcome[T]:
        return f(self.error)

    def attributed(self, policy: str) -> Err[T]:
        return replace(self, policy=policy)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        if isinstance(self.error, RampartError):
            error = self.error.to_dict()
        else:
            error = {
                "error_type": type(self.error).__name__,
                "message": str(self.error),
                "category": ErrorCategory.FAULT.value,
            }
        result: dict[str, Any] = {"ok": False, "error": error}
        if self.policy:
            result["policy"] = self.policy
        return result

    def __repr__(self) -> str:
        if self.policy:
            return f"Err({self.error!r}, policy={self.policy!r})"
        return f"Err({self.error!r})"


Outcome = Ok[T] | Err[T]


def is_outcome(value: Any) -> bool:
    """True if ``value`` is already an Ok or Err."""
    return isinstance(value, (Ok, Err))


def capture(f: Callable[..., T], *args: Any, **kwargs: Any) -> Outcome[T]:
    """
    Call ``f`` and wrap its return value or raised exception.

    A returned ``Ok``/``Err`` is passed through unchanged, so callables
    that already speak the outcome protocol compose with ones that raise.
    ``BaseException`` subclasses that are not ``Exception`` propagate.
    """
    try:
        value = f(*args, **kwargs)
    except Exception as e:
        return Err(e)
    if is_outcome(value):
        return value
    return Ok(value)


__all__ = ["Ok", "Err", "Outcome", "capture", "is_outcome"]
