"""Tests for FallbackPolicy."""

from unittest.mock import MagicMock

import pytest
from structlog.testing import capture_logs

from rampart.core.errors import BrokenCircuitError, OperationCancelledError, PolicyConfigError
from rampart.core.result import Err, Ok
from rampart.policies.classifier import handle, handle_result
from rampart.policies.fallback import FallbackConfig, FallbackPolicy


class TestFallbackConfig:
    def test_requires_value_or_action(self):
        with pytest.raises(PolicyConfigError):
            FallbackConfig()

    def test_rejects_both(self):
        with pytest.raises(PolicyConfigError):
            FallbackConfig(fallback=1, action=lambda outcome, ctx: 2)

    def test_none_is_a_valid_fallback_value(self):
        assert FallbackConfig(fallback=None).fallback is None


class TestFallback:
    """Tests for substitution."""

    def test_value_substituted(self):
        outcome = FallbackPolicy(fallback="cached").execute(lambda ctx: 1 / 0)
        assert outcome == Ok("cached", policy="fallback")

    def test_success_untouched(self):
        assert FallbackPolicy(fallback="cached").execute(lambda ctx: "live") == Ok("live")

    def test_action_receives_outcome_and_context(self, ctx):
        seen = []

        def action(outcome, c):
            seen.append((outcome, c))
            return f"recovered from {type(outcome.error).__name__}"

        outcome = FallbackPolicy(action=action).execute(lambda c: 1 / 0, ctx)
        assert outcome.value == "recovered from ZeroDivisionError"
        assert isinstance(seen[0][0].error, ZeroDivisionError)
        assert seen[0][1] is ctx

    def test_action_failure_becomes_err(self):
        def action(outcome, ctx):
            raise RuntimeError("fallback also failed")

        outcome = FallbackPolicy(action=action).execute(lambda ctx: 1 / 0)
        assert isinstance(outcome.error, RuntimeError)
        assert outcome.policy == "fallback"

    def test_action_may_return_outcome(self):
        outcome = FallbackPolicy(action=lambda o, c: Err(KeyError("gone"))).execute(
            lambda ctx: 1 / 0
        )
        assert isinstance(outcome.error, KeyError)
        assert outcome.policy == "fallback"

    def test_unhandled_fault_passes_through(self):
        policy = FallbackPolicy(fallback=0, handle=handle(ConnectionError))
        outcome = policy.execute(lambda ctx: 1 / 0)
        assert isinstance(outcome.error, ZeroDivisionError)
        assert outcome.policy is None

    def test_rejections_need_opt_in(self):
        rejection = Err(BrokenCircuitError("cb"))
        assert FallbackPolicy(fallback=0).execute(lambda ctx: rejection) is rejection
        opted_in = FallbackPolicy(fallback=0, handle=handle(BrokenCircuitError))
        assert opted_in.execute(lambda ctx: rejection) == Ok(0, policy="fallback")

    def test_cancellation_not_replaced(self):
        outcome = FallbackPolicy(fallback=0, handle=handle(Exception)).execute(
            lambda ctx: Err(OperationCancelledError())
        )
        assert outcome.is_cancelled

    def test_result_handling(self):
        policy = FallbackPolicy(fallback=[], handle=handle_result(None))
        assert policy.execute(lambda ctx: None) == Ok([], policy="fallback")


class TestObservers:
    def test_on_fallback_before_action(self, ctx):
        order = []
        on_fallback = MagicMock(side_effect=lambda outcome, c: order.append("observer"))

        def action(outcome, c):
            order.append("action")
            return 1

        FallbackPolicy(action=action, on_fallback=on_fallback).execute(lambda c: 1 / 0, ctx)
        assert order == ["observer", "action"]
        assert on_fallback.call_args.args[1] is ctx

    def test_logged(self):
        with capture_logs() as logs:
            FallbackPolicy(fallback=0).execute(lambda ctx: 1 / 0)
        assert logs[0]["event"] == "fallback_invoked"
        assert "ZeroDivisionError" in logs[0]["error"]


class TestAsyncFallback:
    @pytest.mark.asyncio
    async def test_async_action(self):
        async def action(outcome, ctx):
            return "async fallback"

        async def failing(ctx):
            raise ConnectionError()

        outcome = await FallbackPolicy(action=action).execute_async(failing)
        assert outcome == Ok("async fallback", policy="fallback")

    @pytest.mark.asyncio
    async def test_async_value(self):
        async def failing(ctx):
            raise ConnectionError()

        assert await FallbackPolicy(fallback=7).execute_async(failing) == Ok(7, policy="fallback")

    @pytest.mark.asyncio
    async def test_async_action_failure(self):
        async def action(outcome, ctx):
            raise RuntimeError("no luck")

        outcome = await FallbackPolicy(action=action).execute_async(lambda ctx: 1 / 0)
        assert isinstance(outcome.error, RuntimeError)
