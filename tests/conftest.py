"""
Shared pytest fixtures and configuration for rampart tests.

This module provides:
- Auto unit/integration markers based on test location
- A manual monotonic clock for time-dependent policies
- A context factory

Usage:
    Fixtures are auto-discovered by pytest; request them as arguments.

    def test_breaker_cooldown(clock):
        breaker = CircuitBreakerPolicy(failure_threshold=1, clock=clock)
        clock.advance(30)
"""

from pathlib import Path

import pytest

from rampart.core.context import ExecutionContext


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Time
# =============================================================================


class FakeClock:
    """Manually advanced clock, callable like ``time.monotonic``."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """A fresh fake clock starting at t=1000."""
    return FakeClock()


@pytest.fixture
def ctx() -> ExecutionContext:
    """A context with a fixed operation key."""
    return ExecutionContext("test-op", correlation_id="corr-1")
