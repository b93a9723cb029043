"""Tests for PolicyRegistry."""

import threading

import pytest

from rampart.core.errors import PolicyConfigError
from rampart.policies.base import NoOpPolicy
from rampart.policies.registry import PolicyRegistry
from rampart.policies.retry import RetryPolicy


class TestPolicyRegistry:
    def test_add_and_lookup(self):
        registry = PolicyRegistry()
        retry = RetryPolicy()
        registry.add("orders", retry)
        assert registry["orders"] is retry
        assert registry.get("orders") is retry
        assert "orders" in registry
        assert len(registry) == 1

    def test_initial_mapping(self):
        noop = NoOpPolicy()
        registry = PolicyRegistry({"a": noop})
        assert dict(registry) == {"a": noop}

    def test_duplicate_name_rejected(self):
        registry = PolicyRegistry({"a": NoOpPolicy()})
        with pytest.raises(PolicyConfigError):
            registry.add("a", NoOpPolicy())

    def test_non_policy_rejected(self):
        with pytest.raises(PolicyConfigError):
            PolicyRegistry().add("a", lambda ctx: None)

    def test_missing(self):
        registry = PolicyRegistry()
        assert registry.get("nope") is None
        with pytest.raises(KeyError):
            registry["nope"]

    def test_remove(self):
        registry = PolicyRegistry({"a": NoOpPolicy()})
        assert registry.remove("a") is True
        assert registry.remove("a") is False
        assert registry.names() == []

    def test_names_keep_insertion_order(self):
        registry = PolicyRegistry()
        for name in ("c", "a", "b"):
            registry.add(name, NoOpPolicy())
        assert registry.names() == ["c", "a", "b"]
        assert list(registry) == ["c", "a", "b"]

    def test_get_or_add_builds_once(self):
        """Concurrent first use builds the policy exactly once."""
        registry = PolicyRegistry()
        built = []
        barrier = threading.Barrier(8)
        seen = []

        def factory():
            built.append(1)
            return NoOpPolicy()

        def worker():
            barrier.wait()
            seen.append(registry.get_or_add("shared", factory))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(5)

        assert len(built) == 1
        assert len({id(policy) for policy in seen}) == 1
