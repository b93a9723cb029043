"""Tests for ExecutionContext."""

from rampart.core.cancellation import CancellationToken
from rampart.core.context import ExecutionContext


class TestExecutionContext:
    """Tests for the context bag."""

    def test_defaults(self):
        ctx = ExecutionContext()
        assert ctx.operation_key is None
        assert len(ctx.correlation_id) == 32
        assert not ctx.cancellation.is_cancelled
        assert len(ctx) == 0

    def test_mapping_behaviour(self):
        """Items keep insertion order and unique keys."""
        ctx = ExecutionContext("op", items={"a": 1})
        ctx["b"] = 2
        ctx["a"] = 3
        assert list(ctx) == ["a", "b"]
        assert ctx["a"] == 3
        del ctx["b"]
        assert "b" not in ctx
        assert ctx.get("missing", "default") == "default"

    def test_derive_shares_items(self):
        """A derived context sees and writes the same items."""
        ctx = ExecutionContext("op", correlation_id="abc")
        token = CancellationToken()
        child = ctx.derive(cancellation=token)
        child["written"] = True
        assert ctx["written"] is True
        assert child.cancellation is token
        assert child.correlation_id == "abc"
        assert child.operation_key == "op"

    def test_log_fields(self):
        assert ExecutionContext(correlation_id="c").log_fields() == {"correlation_id": "c"}
        assert ExecutionContext("k", correlation_id="c").log_fields() == {
            "correlation_id": "c",
            "operation_key": "k",
        }
