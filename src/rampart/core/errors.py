"""
Structured error types for the rampart policy engine.

Every fault that crosses a policy boundary is classified into an
``ErrorCategory``. User code raises whatever it likes (those faults are
``FAULT``); the engine itself only ever produces the rejection categories
below, each owned by exactly one policy variant.

Manifesto:
    - **Typed taxonomy:** Each policy converts only the faults it owns
    - **Rejections are faults too:** An outer Retry or Fallback may handle
      them, but only when the caller's classifier says so
    - **Cancellation is distinct:** Never confused with an ordinary fault
    - **Rich context:** Errors carry metadata for structured logging

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                        RampartError                           │
        │              (category, context, cause)                       │
        ├──────────────────────────────────────────────────────────────┤
        │  ExecutionRejectedError         TimeoutRejectedError          │
        │    ├─ BrokenCircuitError        OperationCancelledError       │
        │    │    └─ IsolatedCircuitError PolicyConfigError (ValueError)│
        │    ├─ BulkheadRejectedError                                   │
        │    └─ RateLimitRejectedError                                  │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> err = BulkheadRejectedError("orders", max_parallelization=4, max_queue=0)
    >>> err.category
    <ErrorCategory.BULKHEAD_REJECTED: 'BULKHEAD_REJECTED'>
    >>> category_of(ValueError("boom"))
    <ErrorCategory.FAULT: 'FAULT'>

Tags:
    error-handling, exception-hierarchy, resilience, rampart-core

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard fault categories.

    Attributes:
        FAULT: Raised by the unit of work itself (or a result marked as a fault)
        CIRCUIT_BROKEN: Rejected by an open circuit breaker
        ISOLATED: Rejected by a manually isolated circuit breaker
        BULKHEAD_REJECTED: No execution slot and no queue room
        RATE_LIMITED: No token available in the rate limiter bucket
        TIMED_OUT: The timeout policy gave up on the unit of work
        CANCELLED: The caller's cancellation token fired
        CONFIG: Invalid policy configuration (raised at build time)
        INTERNAL: Bugs, unexpected state
    """

    FAULT = "FAULT"
    CIRCUIT_BROKEN = "CIRCUIT_BROKEN"
    ISOLATED = "ISOLATED"
    BULKHEAD_REJECTED = "BULKHEAD_REJECTED"
    RATE_LIMITED = "RATE_LIMITED"
    TIMED_OUT = "TIMED_OUT"
    CANCELLED = "CANCELLED"
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"


class RampartError(Exception):
    """
    Base exception for all errors produced by the engine.

    Subclasses set ``default_category``. Extra metadata goes in ``context``
    (a plain dict) and is emitted by ``to_dict()`` for structured logs.

    Args:
        message: Human-readable message
        category: Override for ``default_category``
        context: Initial metadata
        cause: Underlying exception, chained as ``__cause__``
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context: dict[str, Any] = dict(context or {})
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> RampartError:
        """Add metadata to this error (fluent API)."""
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        if self.context:
            result["context"] = dict(self.context)
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


class PolicyConfigError(RampartError, ValueError):
    """Raised when a policy is built with invalid configuration."""

    default_category = ErrorCategory.CONFIG


# =============================================================================
# REJECTIONS
# =============================================================================


class ExecutionRejectedError(RampartError):
    """Base for faults raised when a policy refuses to run the unit of work."""

    def __init__(self, message: str, *, policy: str = "", **kwargs: Any):
        super().__init__(message, **kwargs)
        self.policy = policy


class BrokenCircuitError(ExecutionRejectedError):
    """
    Rejected because the circuit is open.

    Attributes:
        retry_after: Seconds until the breaker will permit a trial call
        last_outcome: The outcome that (most recently) broke the circuit
    """

    default_category = ErrorCategory.CIRCUIT_BROKEN

    def __init__(
        self,
        policy: str,
        retry_after: float | None = None,
        last_outcome: Any = None,
        message: str | None = None,
    ):
        if message is None:
            message = f"Circuit '{policy}' is open, rejecting call"
            if retry_after is not None:
                message += f" (retry after {retry_after:.1f}s)"
        super().__init__(message, policy=policy)
        self.retry_after = retry_after
        self.last_outcome = last_outcome


class IsolatedCircuitError(BrokenCircuitError):
    """Rejected because the circuit was manually isolated."""

    default_category = ErrorCategory.ISOLATED

    def __init__(self, policy: str):
        super().__init__(
            policy,
            message=f"Circuit '{policy}' is isolated, rejecting call",
        )


class BulkheadRejectedError(ExecutionRejectedError):
    """Rejected because every execution slot and queue slot is taken."""

    default_category = ErrorCategory.BULKHEAD_REJECTED

    def __init__(self, policy: str, max_parallelization: int, max_queue: int):
        super().__init__(
            f"Bulkhead '{policy}' is full "
            f"({max_parallelization} slots, {max_queue} queue slots in use)",
            policy=policy,
        )
        self.max_parallelization = max_parallelization
        self.max_queue = max_queue


class RateLimitRejectedError(ExecutionRejectedError):
    """
    Rejected because the token bucket is empty.

    Attributes:
        retry_after: Seconds until at least one token will be available
    """

    default_category = ErrorCategory.RATE_LIMITED

    def __init__(self, policy: str, retry_after: float):
        super().__init__(
            f"Rate limit '{policy}' exceeded, retry after {retry_after:.3f}s",
            policy=policy,
        )
        self.retry_after = retry_after


# =============================================================================
# TIMEOUT / CANCELLATION
# =============================================================================


class TimeoutRejectedError(RampartError, TimeoutError):
    """
    Raised when the timeout policy gives up on a unit of work.

    Inherits from built-in TimeoutError for broad exception handling.

    Attributes:
        timeout: The configured timeout in seconds
        elapsed: How long the caller waited before the timeout fired
    """

    default_category = ErrorCategory.TIMED_OUT

    def __init__(self, policy: str, timeout: float, elapsed: float | None = None):
        msg = f"Operation under '{policy}' timed out after {timeout}s"
        if elapsed is not None:
            msg += f" (waited {elapsed:.2f}s)"
        super().__init__(msg)
        self.policy = policy
        self.timeout = timeout
        self.elapsed = elapsed


class OperationCancelledError(RampartError):
    """Raised (or captured) when a cancellation token has fired."""

    default_category = ErrorCategory.CANCELLED

    def __init__(self, message: str = "Operation was cancelled"):
        super().__init__(message)


def category_of(error: BaseException) -> ErrorCategory:
    """Return the taxonomy category for any exception."""
    if isinstance(error, RampartError):
        return error.category
    return ErrorCategory.FAULT


__all__ = [
    "ErrorCategory",
    "RampartError",
    "PolicyConfigError",
    "ExecutionRejectedError",
    "BrokenCircuitError",
    "IsolatedCircuitError",
    "BulkheadRejectedError",
    "RateLimitRejectedError",
    "TimeoutRejectedError",
    "OperationCancelledError",
    "category_of",
]
