"""Rampart Policies: composable resilience policies.

WHY
───
Calls to remote dependencies fail in a handful of well-known ways: they
error transiently, they fail persistently, they overload, they hang. Each
policy here handles one of those and exposes the same ``execute`` contract,
so they stack in any order with ``wrap``.

ARCHITECTURE
────────────
::

    Policy (base.py) ─ execute / execute_async / run / protect / wrap
      │
      ├── Reactive (classify outcomes with a FaultClassifier)
      │     ├── RetryPolicy                  ─ try again, with backoff
      │     ├── CircuitBreakerPolicy         ─ consecutive-failure breaker
      │     ├── AdvancedCircuitBreakerPolicy ─ failure-ratio breaker
      │     └── FallbackPolicy               ─ substitute a value
      │
      ├── Proactive (act before or around the call)
      │     ├── BulkheadPolicy   ─ bounded concurrency + FIFO queue
      │     ├── RateLimitPolicy  ─ token bucket
      │     ├── TimeoutPolicy    ─ optimistic / pessimistic deadline
      │     └── CachePolicy      ─ cache-aside over a CacheBackend
      │
      ├── NoOpPolicy
      └── PolicyWrap / wrap()  ─ composition, outermost first

    PolicyRegistry ─ name → policy lookup owned by the application

MODULE MAP
──────────
  1. base.py            ─ Policy contract, NoOpPolicy
  2. classifier.py      ─ FaultClassifier + handle* builders
  3. retry.py           ─ RetryPolicy + backoff helpers
  4. circuit_breaker.py ─ both breaker variants
  5. bulkhead.py
  6. rate_limit.py
  7. timeout.py
  8. cache.py           ─ CachePolicy + TTL strategies
  9. fallback.py
 10. wrap.py            ─ PolicyWrap, wrap()
 11. registry.py
"""

from rampart.policies.base import NoOpPolicy, Policy
from rampart.policies.bulkhead import BulkheadConfig, BulkheadPolicy, BulkheadStats
from rampart.policies.cache import (
    AbsoluteTtl,
    CacheConfig,
    CachePolicy,
    RelativeTtl,
    ResultTtl,
    SlidingTtl,
    Ttl,
    TtlStrategy,
)
from rampart.policies.circuit_breaker import (
    AdvancedCircuitBreakerConfig,
    AdvancedCircuitBreakerPolicy,
    CircuitBreakerConfig,
    CircuitBreakerPolicy,
    CircuitState,
    CircuitStats,
)
from rampart.policies.classifier import (
    FaultClassifier,
    handle,
    handle_faults,
    handle_inner,
    handle_result,
)
from rampart.policies.fallback import FallbackConfig, FallbackPolicy
from rampart.policies.rate_limit import RateLimitConfig, RateLimitPolicy
from rampart.policies.registry import PolicyRegistry
from rampart.policies.retry import (
    ConstantBackoff,
    ExponentialBackoff,
    LinearBackoff,
    RetryConfig,
    RetryPolicy,
)
from rampart.policies.timeout import TimeoutConfig, TimeoutPolicy, TimeoutStrategy
from rampart.policies.wrap import PolicyWrap, wrap

__all__ = [
    # Contract
    "Policy",
    "NoOpPolicy",
    "PolicyWrap",
    "wrap",
    "PolicyRegistry",
    # Classification
    "FaultClassifier",
    "handle",
    "handle_inner",
    "handle_result",
    "handle_faults",
    # Retry
    "RetryConfig",
    "RetryPolicy",
    "ConstantBackoff",
    "LinearBackoff",
    "ExponentialBackoff",
    # Circuit breaker
    "CircuitState",
    "CircuitStats",
    "CircuitBreakerConfig",
    "CircuitBreakerPolicy",
    "AdvancedCircuitBreakerConfig",
    "AdvancedCircuitBreakerPolicy",
    # Bulkhead / rate limit
    "BulkheadConfig",
    "BulkheadPolicy",
    "BulkheadStats",
    "RateLimitConfig",
    "RateLimitPolicy",
    # Timeout
    "TimeoutStrategy",
    "TimeoutConfig",
    "TimeoutPolicy",
    # Cache
    "Ttl",
    "TtlStrategy",
    "RelativeTtl",
    "AbsoluteTtl",
    "SlidingTtl",
    "ResultTtl",
    "CacheConfig",
    "CachePolicy",
    # Fallback
    "FallbackConfig",
    "FallbackPolicy",
]
