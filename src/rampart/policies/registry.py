"""Named policy registry.

Application code builds its composed policies once at startup and looks
them up by name at the call site. The registry is an ordinary object owned
by the application; there is no global instance.

Example:
    >>> registry = PolicyRegistry()
    >>> registry.add("orders-db", wrap(RetryPolicy(retries=2), CircuitBreakerPolicy()))
    >>> registry["orders-db"].execute(load_order, ctx)
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator, Mapping

from rampart.core.errors import PolicyConfigError
from rampart.policies.base import Policy


class PolicyRegistry(Mapping[str, Policy]):
    """Thread-safe name → policy mapping."""

    def __init__(self, policies: Mapping[str, Policy] | None = None):
        self._policies: dict[str, Policy] = {}
        self._lock = threading.Lock()
        for name, policy in (policies or {}).items():
            self.add(name, policy)

    def add(self, name: str, policy: Policy) -> None:
        """Register ``policy`` under ``name``.

        Raises:
            PolicyConfigError: If the name is taken or ``policy`` is not a Policy
        """
        if not isinstance(policy, Policy):
            raise PolicyConfigError(f"Cannot register {type(policy).__name__} as a policy")
        with self._lock:
            if name in self._policies:
                raise PolicyConfigError(f"Policy '{name}' is already registered")
            self._policies[name] = policy

    def get(self, name: str, default: Policy | None = None) -> Policy | None:
        with self._lock:
            return self._policies.get(name, default)

    def get_or_add(self, name: str, factory: Callable[[], Policy]) -> Policy:
        """Return the policy under ``name``, building and registering it if missing."""
        with self._lock:
            policy = self._policies.get(name)
            if policy is None:
                policy = factory()
                self._policies[name] = policy
            return policy

    def remove(self, name: str) -> bool:
        """Unregister ``name``; False if it was not registered."""
        with self._lock:
            return self._policies.pop(name, None) is not None

    def names(self) -> list[str]:
        with self._lock:
            return list(self._policies)

    def __getitem__(self, name: str) -> Policy:
        with self._lock:
            return self._policies[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __len__(self) -> int:
        with self._lock:
            return len(self._policies)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._policies


__all__ = ["PolicyRegistry"]
