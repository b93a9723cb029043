"""Fault classification: which outcomes a policy reacts to.

Every reactive policy (Retry, Circuit Breaker, Fallback) is configured with a
``FaultClassifier``: a set of exception predicates and result predicates
combined with OR. An outcome the classifier does not handle passes through
the policy untouched.

Cancellation is never handled: a cancelled outcome propagates through every
classifier regardless of its predicates.

Example::

    classifier = (
        handle(ConnectionError)
        .or_inner(TimeoutError)
        .or_result(lambda response: response.status >= 500)
    )
    classifier.handles(Err(ConnectionError()))   # True
    classifier.handles(Ok(Response(status=200)))  # False
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

from rampart.core.errors import ErrorCategory, PolicyConfigError, category_of
from rampart.core.result import Err, Ok, Outcome

ExceptionPredicate = Callable[[Exception], bool]
ResultPredicate = Callable[[Any], bool]


def _exception_chain(error: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _type_predicate(
    types: tuple[type[BaseException], ...],
    predicate: ExceptionPredicate | None,
) -> ExceptionPredicate:
    if not types and predicate is None:
        raise PolicyConfigError("handle() needs at least one exception type or a predicate")
    if not types:
        types = (Exception,)

    def matches(error: BaseException) -> bool:
        return isinstance(error, types) and (predicate is None or bool(predicate(error)))

    return matches


def _result_predicate(expected: Any) -> ResultPredicate:
    if callable(expected):
        return expected
    return lambda value: value == expected


@dataclass(frozen=True)
class FaultClassifier:
    """Immutable OR-combination of exception and result predicates."""

    exception_predicates: tuple[ExceptionPredicate, ...] = ()
    result_predicates: tuple[ResultPredicate, ...] = ()

    def handles(self, outcome: Outcome) -> bool:
        """True if ``outcome`` is a fault this classifier reacts to."""
        match outcome:
            case Ok(value):
                return any(predicate(value) for predicate in self.result_predicates)
            case Err(error):
                if category_of(error) is ErrorCategory.CANCELLED:
                    return False
                return any(predicate(error) for predicate in self.exception_predicates)
        return False

    def or_handle(
        self,
        *types: type[BaseException],
        predicate: ExceptionPredicate | None = None,
    ) -> FaultClassifier:
        """Also handle exceptions of ``types`` (optionally filtered by ``predicate``)."""
        return FaultClassifier(
            self.exception_predicates + (_type_predicate(types, predicate),),
            self.result_predicates,
        )

    def or_inner(
        self,
        *types: type[BaseException],
        predicate: ExceptionPredicate | None = None,
    ) -> FaultClassifier:
        """Also handle exceptions anywhere in the ``__cause__``/``__context__`` chain."""
        direct = _type_predicate(types, predicate)

        def nested(error: Exception) -> bool:
            return any(direct(link) for link in _exception_chain(error))

        return FaultClassifier(
            self.exception_predicates + (nested,),
            self.result_predicates,
        )

    def or_result(self, expected: Any) -> FaultClassifier:
        """Also handle successful values.

        ``expected`` is either a predicate over the value or a value compared
        with ``==``.
        """
        return FaultClassifier(
            self.exception_predicates,
            self.result_predicates + (_result_predicate(expected),),
        )

    def or_faults(self) -> FaultClassifier:
        """Also handle every exception raised by the unit of work itself."""
        return FaultClassifier(
            self.exception_predicates + (_is_plain_fault,),
            self.result_predicates,
        )


def _is_plain_fault(error: Exception) -> bool:
    return category_of(error) is ErrorCategory.FAULT


def handle(
    *types: type[BaseException],
    predicate: ExceptionPredicate | None = None,
) -> FaultClassifier:
    """Start a classifier handling exceptions of ``types``."""
    return FaultClassifier().or_handle(*types, predicate=predicate)


def handle_inner(
    *types: type[BaseException],
    predicate: ExceptionPredicate | None = None,
) -> FaultClassifier:
    """Start a classifier handling ``types`` anywhere in the exception chain."""
    return FaultClassifier().or_inner(*types, predicate=predicate)


def handle_result(expected: Any) -> FaultClassifier:
    """Start a classifier handling successful values matching ``expected``."""
    return FaultClassifier().or_result(expected)


def handle_faults() -> FaultClassifier:
    """Default classifier: every exception raised by the unit of work.

    Rejections from other policies (open circuit, full bulkhead, timeout)
    are not included; add them explicitly with ``or_handle``.
    """
    return FaultClassifier().or_faults()


__all__ = [
    "ExceptionPredicate",
    "ResultPredicate",
    "FaultClassifier",
    "handle",
    "handle_inner",
    "handle_result",
    "handle_faults",
]
