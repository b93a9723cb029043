"""Tests for policy composition."""

import pytest

from rampart.core.errors import (
    BrokenCircuitError,
    BulkheadRejectedError,
    ErrorCategory,
    PolicyConfigError,
)
from rampart.core.result import Ok
from rampart.policies.base import NoOpPolicy, Policy
from rampart.policies.bulkhead import BulkheadPolicy
from rampart.policies.circuit_breaker import CircuitBreakerPolicy, CircuitState
from rampart.policies.classifier import handle, handle_faults
from rampart.policies.fallback import FallbackPolicy
from rampart.policies.rate_limit import RateLimitPolicy
from rampart.policies.retry import ConstantBackoff, RetryPolicy
from rampart.policies.timeout import TimeoutPolicy
from rampart.policies.wrap import PolicyWrap, wrap


class Tracer(Policy):
    """Records entry and exit around the unit."""

    def __init__(self, name, trace):
        super().__init__(name)
        self.trace = trace

    def _execute(self, unit, ctx):
        self.trace.append(f"{self.name}:in")
        outcome = unit(ctx)
        self.trace.append(f"{self.name}:out")
        return outcome

    async def _execute_async(self, unit, ctx):
        self.trace.append(f"{self.name}:in")
        outcome = await unit(ctx)
        self.trace.append(f"{self.name}:out")
        return outcome


class AlwaysFails:
    def __init__(self):
        self.calls = 0

    def __call__(self, ctx):
        self.calls += 1
        raise ConnectionError("down")


class TestStructure:
    """Tests for nesting order and introspection."""

    def test_first_policy_outermost(self):
        trace = []
        policy = wrap(Tracer("a", trace), Tracer("b", trace), Tracer("c", trace))
        assert policy.execute(lambda ctx: trace.append("action")) == Ok(None)
        assert trace == ["a:in", "b:in", "c:in", "action", "c:out", "b:out", "a:out"]

    def test_policies_flattened(self):
        a, b, c = NoOpPolicy(name="a"), NoOpPolicy(name="b"), NoOpPolicy(name="c")
        assert wrap(a, b, c).policies == [a, b, c]
        assert PolicyWrap(PolicyWrap(a, b), c).policies == [a, b, c]

    def test_default_and_explicit_names(self):
        a, b = NoOpPolicy(name="a"), NoOpPolicy(name="b")
        assert wrap(a, b).name == "a>b"
        assert wrap(a, b, name="orders").name == "orders"

    def test_wrap_method(self):
        retry, breaker = RetryPolicy(), CircuitBreakerPolicy()
        composed = retry.wrap(breaker)
        assert isinstance(composed, PolicyWrap)
        assert composed.policies == [retry, breaker]

    @pytest.mark.parametrize("count", [0, 1])
    def test_needs_two_policies(self, count):
        with pytest.raises(PolicyConfigError):
            wrap(*[NoOpPolicy()] * count)

    def test_rejects_non_policy(self):
        with pytest.raises(PolicyConfigError):
            PolicyWrap(NoOpPolicy(), object())

    def test_repr_lists_chain(self):
        text = repr(wrap(RetryPolicy(), NoOpPolicy()))
        assert text.startswith("PolicyWrap(RetryPolicy(")


class TestOrderingSemantics:
    """Where a policy sits changes what it observes."""

    def test_retry_outside_breaker(self, clock):
        """Each attempt feeds the breaker; its rejection is not retried by default."""
        breaker = CircuitBreakerPolicy(failure_threshold=2, clock=clock)
        action = AlwaysFails()
        outcome = wrap(RetryPolicy(retries=3), breaker).execute(action)

        assert action.calls == 2
        assert isinstance(outcome.error, BrokenCircuitError)
        assert breaker.state is CircuitState.OPEN

    def test_retry_outside_breaker_opted_in(self, clock):
        breaker = CircuitBreakerPolicy(failure_threshold=2, clock=clock)
        action = AlwaysFails()
        retry = RetryPolicy(retries=3, handle=handle_faults().or_handle(BrokenCircuitError))
        outcome = wrap(retry, breaker).execute(action)

        assert action.calls == 2
        assert breaker.stats.rejected_calls == 2
        assert outcome.category is ErrorCategory.CIRCUIT_BROKEN

    def test_breaker_outside_retry(self, clock):
        """The breaker counts one failure per fully retried call."""
        breaker = CircuitBreakerPolicy(failure_threshold=2, clock=clock)
        action = AlwaysFails()
        policy = wrap(breaker, RetryPolicy(retries=3))

        policy.execute(action)
        assert action.calls == 4
        assert breaker.state is CircuitState.CLOSED

        policy.execute(action)
        assert action.calls == 8
        assert breaker.state is CircuitState.OPEN

        assert isinstance(policy.execute(action).error, BrokenCircuitError)
        assert action.calls == 8

    def test_timeout_outside_retry_bounds_all_attempts(self):
        action = AlwaysFails()
        policy = wrap(TimeoutPolicy(seconds=0.1), RetryPolicy.forever(delay=ConstantBackoff(0.01)))
        outcome = policy.execute(action)
        assert outcome.category is ErrorCategory.TIMED_OUT
        assert action.calls > 1

    def test_retry_outside_timeout_per_attempt(self):
        attempts = []

        def slow_first(ctx):
            attempts.append(ctx.cancellation.remaining())
            if len(attempts) == 1:
                while not ctx.cancellation.is_cancelled:
                    ctx.cancellation.sleep(0.01)
                ctx.cancellation.raise_if_cancelled()
            return "second try"

        retry = RetryPolicy(retries=1, handle=handle_faults().or_handle(TimeoutError))
        outcome = wrap(retry, TimeoutPolicy(seconds=0.05)).execute(slow_first)
        assert outcome == Ok("second try")
        assert attempts[1] > 0.04


class TestFallbackOutermost:
    """A fallback at the edge can absorb rejections from any layer."""

    def test_catches_isolated_circuit(self, clock):
        breaker = CircuitBreakerPolicy(clock=clock)
        breaker.isolate()
        fallback = FallbackPolicy(fallback="degraded", handle=handle(BrokenCircuitError))
        outcome = wrap(fallback, RetryPolicy(retries=2), breaker).execute(lambda ctx: "live")
        assert outcome == Ok("degraded", policy="fallback")

    def test_rejection_passes_without_opt_in(self, clock):
        breaker = CircuitBreakerPolicy(clock=clock)
        breaker.isolate()
        outcome = wrap(FallbackPolicy(fallback="degraded"), breaker).execute(lambda ctx: "live")
        assert outcome.category is ErrorCategory.ISOLATED

    def test_catches_bulkhead_rejection(self):
        bulkhead = BulkheadPolicy(max_parallelization=1)
        fallback = FallbackPolicy(fallback="busy", handle=handle(BulkheadRejectedError))
        policy = wrap(fallback, bulkhead)

        def reenter(ctx):
            return policy.run(lambda c: "inner")

        assert policy.execute(reenter) == Ok("busy")


class TestDeepNesting:
    def test_full_stack_success(self, clock):
        policy = wrap(
            FallbackPolicy(fallback=None),
            TimeoutPolicy(seconds=5),
            RetryPolicy(retries=2),
            CircuitBreakerPolicy(clock=clock),
            BulkheadPolicy(max_parallelization=2),
            RateLimitPolicy(permits=10, clock=clock),
        )
        assert len(policy.policies) == 6
        assert policy.execute(lambda ctx: "through") == Ok("through")

    def test_full_stack_fault_handled_at_edge(self, clock):
        action = AlwaysFails()
        policy = wrap(
            FallbackPolicy(fallback="edge"),
            RetryPolicy(retries=2),
            CircuitBreakerPolicy(failure_threshold=10, clock=clock),
            RateLimitPolicy(permits=10, burst=10, clock=clock),
        )
        assert policy.execute(action) == Ok("edge", policy="fallback")
        assert action.calls == 3


class TestAsyncWrap:
    @pytest.mark.asyncio
    async def test_async_order(self):
        trace = []

        async def action(ctx):
            trace.append("action")
            return "v"

        policy = wrap(Tracer("a", trace), Tracer("b", trace))
        assert await policy.execute_async(action) == Ok("v")
        assert trace == ["a:in", "b:in", "action", "b:out", "a:out"]

    @pytest.mark.asyncio
    async def test_async_retry_inside_timeout(self):
        calls = []

        async def flaky(ctx):
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError()
            return "ok"

        policy = wrap(TimeoutPolicy(seconds=5), RetryPolicy(retries=3))
        assert await policy.execute_async(flaky) == Ok("ok")
        assert len(calls) == 3
