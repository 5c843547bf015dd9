"""
KubeScan - Combinators

Composes assertion outcomes into the outcome of a rule's evaluation unit:
ALL semantics for a plain assertion list, ONE-OF semantics for an
AlternativeGroup.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from .assertion import Assertion, AssertionOutcome, AssertionResult, evaluate
from .facts import Fact
from .rule import AlternativeGroup, EvaluationUnit, RuleOutcome

FactResolver = Callable[[Assertion], Fact]


@dataclass(frozen=True)
class UnitResult:
    """Outcome of one evaluation unit.

    Attributes:
        outcome: Combined outcome
        results: Every assertion result, in declaration order
        message: Reason for the outcome
        alternative: Index of the deciding alternative (ONE-OF only)
    """
    outcome: RuleOutcome
    results: tuple[AssertionResult, ...]
    message: str = ""
    alternative: Optional[int] = None


def _first(results: Sequence[AssertionResult], outcome: AssertionOutcome) -> AssertionResult:
    return next(result for result in results if result.outcome is outcome)


def combine_all(results: Sequence[AssertionResult]) -> tuple[RuleOutcome, str]:
    """Combine assertion results with ALL semantics.

    Precedence: error, then manual review, then failure. A unit where no
    assertion was evaluated at all is skipped rather than passed.

    Args:
        results: Assertion results of one unit

    Returns:
        Tuple of (outcome, reason)
    """
    outcomes = {result.outcome for result in results}

    if AssertionOutcome.ERROR in outcomes:
        return RuleOutcome.ERRORED, _first(results, AssertionOutcome.ERROR).message
    if AssertionOutcome.SKIP in outcomes:
        return RuleOutcome.SKIPPED, _first(results, AssertionOutcome.SKIP).message
    if AssertionOutcome.FAIL in outcomes:
        return RuleOutcome.FAILED, _first(results, AssertionOutcome.FAIL).message
    if AssertionOutcome.PASS in outcomes:
        passed = sum(1 for result in results if result.outcome is AssertionOutcome.PASS)
        return RuleOutcome.PASSED, f"{passed} of {len(results)} assertion(s) passed"
    return RuleOutcome.SKIPPED, "No assertion could be evaluated against the observed facts"


def evaluate_all(assertions: Sequence[Assertion], resolve: FactResolver) -> UnitResult:
    """Evaluate an assertion list; it passes only if every assertion passes."""
    results = tuple(evaluate(assertion, resolve(assertion)) for assertion in assertions)
    outcome, message = combine_all(results)
    return UnitResult(outcome=outcome, results=results, message=message)


def evaluate_one_of(group: AlternativeGroup, resolve: FactResolver) -> UnitResult:
    """Evaluate alternatives; the group passes if at least one passes in full.

    Every alternative is evaluated so the report shows all of them. When
    none passes, the earliest-declared deciding alternative supplies the
    reported reason.
    """
    evaluated = [evaluate_all(alternative, resolve) for alternative in group.alternatives]
    results = tuple(result for unit in evaluated for result in unit.results)

    def decided(index: int, outcome: RuleOutcome, prefix: str) -> UnitResult:
        return UnitResult(
            outcome=outcome,
            results=results,
            message=f"{prefix}; alternative {index + 1}: {evaluated[index].message}",
            alternative=index,
        )

    for index, unit in enumerate(evaluated):
        if unit.outcome is RuleOutcome.PASSED:
            return decided(index, RuleOutcome.PASSED, "Alternative passed")

    for index, unit in enumerate(evaluated):
        if unit.outcome is RuleOutcome.ERRORED:
            return decided(index, RuleOutcome.ERRORED, "Alternative errored")

    failed = next(
        (index for index, unit in enumerate(evaluated) if unit.outcome is RuleOutcome.FAILED),
        None,
    )
    if failed is None:
        return decided(0, RuleOutcome.SKIPPED, "No alternative could be decided")
    return decided(failed, RuleOutcome.FAILED, "No alternative passed")


def evaluate_unit(unit: EvaluationUnit, resolve: FactResolver) -> UnitResult:
    """Evaluate a rule's evaluation unit with the matching combinator.

    Args:
        unit: Assertion tuple (ALL) or AlternativeGroup (ONE-OF)
        resolve: Returns the fact an assertion reads

    Returns:
        UnitResult with the combined outcome
    """
    if isinstance(unit, AlternativeGroup):
        return evaluate_one_of(unit, resolve)
    return evaluate_all(unit, resolve)
