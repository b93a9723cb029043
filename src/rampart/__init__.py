"""
Rampart - composable resilience policies for Python services.

- rampart.core: outcomes, errors, cancellation, context, cache stores, logging
- rampart.policies: retry, circuit breaker, bulkhead, rate limit, timeout,
  cache, fallback and their composition
"""

__version__ = "0.1.0"

# Re-export the public API
from rampart.core import *  # noqa
from rampart.policies import *  # noqa
