"""Execution context threaded through a policy pipeline.

The context is the single mutable object every policy in a wrap sees for a
given call. It replaces ambient globals: Retry records the attempt number in
it, Cache records the key it used, and user code can stash anything else.

.. code-block:: text

    ExecutionContext
    ├── .operation_key   → default cache key / log label
    ├── .correlation_id  → uuid4 hex unless supplied
    ├── .cancellation    → CancellationToken observed by the policies
    ├── ctx["k"] = v     → ordered key/value bag (keys unique)
    └── .derive(...)     → same bag, different cancellation token
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator, MutableMapping
from typing import Any

from rampart.core.cancellation import CancellationToken

RETRY_ATTEMPT_KEY = "rampart.retry.attempt"
CACHE_KEY = "rampart.cache.key"


class ExecutionContext(MutableMapping[str, Any]):
    """Ordered key/value bag plus correlation id and cancellation token."""

    def __init__(
        self,
        operation_key: str | None = None,
        *,
        correlation_id: str | None = None,
        cancellation: CancellationToken | None = None,
        items: dict[str, Any] | None = None,
    ):
        self.operation_key = operation_key
        self.correlation_id = correlation_id or uuid.uuid4().hex
        self.cancellation = cancellation or CancellationToken()
        self._items: dict[str, Any] = dict(items or {})

    def derive(self, *, cancellation: CancellationToken) -> ExecutionContext:
        """Return a context sharing this one's items but with another token."""
        child = ExecutionContext(
            self.operation_key,
            correlation_id=self.correlation_id,
            cancellation=cancellation,
        )
        child._items = self._items
        return child

    def __getitem__(self, key: str) -> Any:
        return self._items[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._items[key] = value

    def __delitem__(self, key: str) -> None:
        del self._items[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def log_fields(self) -> dict[str, Any]:
        """Identifiers worth attaching to every log event for this call."""
        fields: dict[str, Any] = {"correlation_id": self.correlation_id}
        if self.operation_key:
            fields["operation_key"] = self.operation_key
        return fields

    def __repr__(self) -> str:
        return (
            f"ExecutionContext(operation_key={self.operation_key!r}, "
            f"correlation_id={self.correlation_id!r}, items={self._items!r})"
        )


__all__ = ["ExecutionContext", "RETRY_ATTEMPT_KEY", "CACHE_KEY"]
