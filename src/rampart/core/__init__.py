"""
Rampart core primitives.

Outcome values, the error taxonomy, cancellation, the execution context,
cache stores, logging and settings. Policies are built on these; nothing
here knows about any particular policy.
"""

from rampart.core.cache import CacheBackend, InMemoryCache, RedisCache
from rampart.core.cancellation import CancellationToken
from rampart.core.context import CACHE_KEY, RETRY_ATTEMPT_KEY, ExecutionContext
from rampart.core.errors import (
    BrokenCircuitError,
    BulkheadRejectedError,
    ErrorCategory,
    ExecutionRejectedError,
    IsolatedCircuitError,
    OperationCancelledError,
    PolicyConfigError,
    RampartError,
    RateLimitRejectedError,
    TimeoutRejectedError,
    category_of,
)
from rampart.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)
from rampart.core.result import Err, Ok, Outcome, capture, is_outcome
from rampart.core.settings import RampartSettings, get_settings

__all__ = [
    # Outcome
    "Ok",
    "Err",
    "Outcome",
    "capture",
    "is_outcome",
    # Errors
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
    # Context / cancellation
    "ExecutionContext",
    "CancellationToken",
    "RETRY_ATTEMPT_KEY",
    "CACHE_KEY",
    # Cache stores
    "CacheBackend",
    "InMemoryCache",
    "RedisCache",
    # Logging / settings
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
    "RampartSettings",
    "get_settings",
]
