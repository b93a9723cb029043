"""Tests for RateLimitPolicy."""

import pytest
from structlog.testing import capture_logs

from rampart.core.errors import ErrorCategory, PolicyConfigError, RateLimitRejectedError
from rampart.core.result import Ok
from rampart.policies.rate_limit import RateLimitConfig, RateLimitPolicy


class TestRateLimitConfig:
    def test_capacity_defaults_to_one_token(self):
        config = RateLimitConfig(permits=20, per=2.0)
        assert config.capacity == 1
        assert config.rate == 10.0

    def test_burst_extends_capacity(self):
        assert RateLimitConfig(permits=5, burst=15).capacity == 15

    @pytest.mark.parametrize(
        "kwargs",
        [{"permits": 0}, {"per": 0}, {"permits": 10, "burst": 5}],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(PolicyConfigError):
            RateLimitConfig(**kwargs)


class TestTokenBucket:
    """Tests for admission and refill."""

    def test_immediate_calls_are_spaced(self, clock):
        """20 permits/s, 30 immediate calls: one passes, the rest wait 50ms."""
        limiter = RateLimitPolicy(permits=20, per=1.0, clock=clock)
        outcomes = [limiter.execute(lambda ctx: "ok") for _ in range(30)]

        assert outcomes[0] == Ok("ok")
        for rejected in outcomes[1:]:
            assert isinstance(rejected.error, RateLimitRejectedError)
            assert rejected.category is ErrorCategory.RATE_LIMITED
            assert rejected.policy == "rate-limit"
            assert rejected.error.retry_after == pytest.approx(0.05)

    def test_no_window_exceeds_permits(self, clock):
        """Sweeping 10ms steps over three seconds, every 1s window admits 20."""
        limiter = RateLimitPolicy(permits=20, per=1.0, clock=clock)
        admitted = []
        for step in range(300):
            if limiter.execute(lambda ctx: None).is_ok():
                admitted.append(step)
            clock.advance(0.01)

        # A window is 100 steps, [start, start + 100).
        per_window = [
            sum(1 for step in admitted if start <= step < start + 100)
            for start in range(0, 201)
        ]
        assert max(per_window) == 20
        assert min(per_window) == 20

    def test_full_then_half_window_stays_bounded(self, clock):
        limiter = RateLimitPolicy(permits=20, per=1.0, clock=clock)
        first = [limiter.execute(lambda ctx: 1).is_ok() for _ in range(20)]
        clock.advance(0.5)
        second = [limiter.execute(lambda ctx: 1).is_ok() for _ in range(20)]
        assert first.count(True) + second.count(True) <= 20

    def test_refill_over_time(self, clock):
        limiter = RateLimitPolicy(permits=20, per=1.0, clock=clock)
        limiter.execute(lambda ctx: None)
        assert limiter.available_tokens == pytest.approx(0.0)

        clock.advance(0.025)
        assert limiter.available_tokens == pytest.approx(0.5)
        assert limiter.execute(lambda ctx: 1).is_err()
        clock.advance(0.025)
        assert limiter.execute(lambda ctx: 1) == Ok(1)

    def test_refill_capped_at_capacity(self, clock):
        limiter = RateLimitPolicy(permits=5, clock=clock)
        clock.advance(100)
        assert limiter.available_tokens == 1.0

    def test_burst_allows_more_up_front(self, clock):
        limiter = RateLimitPolicy(permits=2, per=1.0, burst=6, clock=clock)
        passed = [limiter.execute(lambda ctx: 1).is_ok() for _ in range(8)]
        assert passed.count(True) == 6

    def test_burst_refills_to_burst(self, clock):
        limiter = RateLimitPolicy(permits=2, per=1.0, burst=6, clock=clock)
        for _ in range(6):
            limiter.execute(lambda ctx: None)
        clock.advance(1.0)
        passed = [limiter.execute(lambda ctx: 1).is_ok() for _ in range(4)]
        assert passed.count(True) == 2

    def test_rejected_call_never_runs(self, clock):
        limiter = RateLimitPolicy(permits=1, clock=clock)
        calls = []
        limiter.execute(lambda ctx: calls.append(1))
        limiter.execute(lambda ctx: calls.append(2))
        assert calls == [1]

    def test_retry_after_shrinks_as_time_passes(self, clock):
        limiter = RateLimitPolicy(permits=1, per=2.0, clock=clock)
        limiter.execute(lambda ctx: None)
        clock.advance(0.5)
        outcome = limiter.execute(lambda ctx: None)
        assert outcome.error.retry_after == pytest.approx(1.5)

    def test_faults_still_consume_tokens(self, clock):
        limiter = RateLimitPolicy(permits=1, clock=clock)
        assert isinstance(limiter.execute(lambda ctx: 1 / 0).error, ZeroDivisionError)
        assert limiter.execute(lambda ctx: 1).is_err()

    def test_rejection_logged(self, clock):
        limiter = RateLimitPolicy(permits=1, clock=clock)
        limiter.execute(lambda ctx: None)
        with capture_logs() as logs:
            limiter.execute(lambda ctx: None)
        assert logs[0]["event"] == "rate_limit_rejected"
        assert logs[0]["policy"] == "rate-limit"


class TestAsyncRateLimit:
    @pytest.mark.asyncio
    async def test_async_shares_bucket(self, clock):
        limiter = RateLimitPolicy(permits=2, burst=2, clock=clock)

        async def action(ctx):
            return "ok"

        assert await limiter.execute_async(action) == Ok("ok")
        assert limiter.execute(lambda ctx: "ok") == Ok("ok")
        outcome = await limiter.execute_async(action)
        assert outcome.category is ErrorCategory.RATE_LIMITED
