"""
KubeScan - Result Aggregator

Collects per-rule results into a RunReport. Recording is safe for
concurrent use; the summary counts do not depend on recording order.
"""

from dataclasses import dataclass
import threading
from typing import Any, Iterable, Optional, Sequence

from .assertion import AssertionResult
from .rule import Rule, RuleOutcome, RuleResult


@dataclass(frozen=True)
class RunReport:
    """Aggregated outcome of a full evaluation pass.

    Attributes:
        results: One result per rule, in catalog declaration order
        warnings: Run-level warnings (e.g., gate evaluation failures)
        error: Run-level error when the run was aborted before any rule
            reached a terminal state
    """
    results: tuple[RuleResult, ...] = ()
    warnings: tuple[str, ...] = ()
    error: Optional[str] = None

    @classmethod
    def aborted(cls, error: str) -> "RunReport":
        """Create the report of a run aborted by a fatal error."""
        return cls(results=(), warnings=(), error=error)

    def count(self, outcome: RuleOutcome) -> int:
        """Number of rules with the given outcome."""
        return sum(1 for result in self.results if result.outcome is outcome)

    @property
    def counts(self) -> dict[str, int]:
        """Counts keyed by outcome value, including zero counts."""
        return {outcome.value: self.count(outcome) for outcome in RuleOutcome}

    @property
    def passed(self) -> int:
        return self.count(RuleOutcome.PASSED)

    @property
    def failed(self) -> int:
        return self.count(RuleOutcome.FAILED)

    @property
    def skipped(self) -> int:
        return self.count(RuleOutcome.SKIPPED)

    @property
    def not_applicable(self) -> int:
        return self.count(RuleOutcome.NOT_APPLICABLE)

    @property
    def errored(self) -> int:
        return self.count(RuleOutcome.ERRORED)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def compliant(self) -> bool:
        """A run is compliant iff it completed with no failed or errored rule."""
        return self.error is None and self.failed == 0 and self.errored == 0

    @property
    def weighted_pass_ratio(self) -> Optional[float]:
        """Weight of passed rules over weight of all applicable rules.

        Returns:
            Ratio between 0.0 and 1.0, or None when no applicable rule
            carries weight
        """
        applicable = [
            result for result in self.results
            if result.outcome is not RuleOutcome.NOT_APPLICABLE
        ]
        denominator = sum(result.severity_weight for result in applicable)
        if denominator == 0:
            return None
        numerator = sum(
            result.severity_weight for result in applicable
            if result.outcome is RuleOutcome.PASSED
        )
        return numerator / denominator

    def get(self, rule_id: str) -> Optional[RuleResult]:
        """Get the result of a rule by id."""
        for result in self.results:
            if result.rule_id == rule_id:
                return result
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert the report to a dictionary for JSON serialization.

        Returns:
            Dictionary with summary, results, warnings and error
        """
        summary: dict[str, Any] = dict(self.counts)
        summary["total"] = self.total
        summary["compliant"] = self.compliant
        summary["weighted_pass_ratio"] = self.weighted_pass_ratio
        return {
            "summary": summary,
            "results": [result.to_dict() for result in self.results],
            "warnings": list(self.warnings),
            "error": self.error,
        }


class ResultAggregator:
    """Thread-safe, append-only collector of rule results.

    Example:
        aggregator = ResultAggregator(order=["rule-a", "rule-b"])
        aggregator.record(rule_b, RuleOutcome.PASSED)
        aggregator.record(rule_a, RuleOutcome.FAILED, details, "flag missing")
        report = aggregator.summarize()  # rule-a first, then rule-b
    """

    def __init__(self, order: Optional[Iterable[str]] = None) -> None:
        """Initialize an empty aggregator.

        Args:
            order: Expected rule ids in declaration order. When given, the
                report follows this order and summarize() refuses to run
                until every listed rule has been recorded.
        """
        self._order: dict[str, int] = {}
        for rule_id in order or ():
            self._order.setdefault(rule_id, len(self._order))
        self._results: dict[str, RuleResult] = {}
        self._warnings: list[str] = []
        self._lock = threading.Lock()

    def record(
        self,
        rule: Rule,
        outcome: RuleOutcome,
        details: Sequence[AssertionResult] = (),
        message: str = "",
        warnings: Sequence[str] = (),
    ) -> RuleResult:
        """Record the terminal outcome of a rule.

        Returns:
            The recorded RuleResult

        Raises:
            ValueError: If the rule was already recorded
        """
        result = RuleResult.for_rule(
            rule,
            outcome,
            details=tuple(details),
            message=message,
            warnings=tuple(warnings),
        )
        self.record_result(result)
        return result

    def record_result(self, result: RuleResult) -> None:
        """Record a prebuilt result.

        Raises:
            ValueError: If a result for the same rule was already recorded
        """
        with self._lock:
            if result.rule_id in self._results:
                raise ValueError(
                    f"Result for rule '{result.rule_id}' is already recorded"
                )
            self._results[result.rule_id] = result

    def add_warning(self, warning: str) -> None:
        """Attach a run-level warning."""
        with self._lock:
            self._warnings.append(warning)

    def summarize(self) -> RunReport:
        """Build the run report.

        Raises:
            RuntimeError: If an expected rule has not been recorded yet
        """
        with self._lock:
            missing = [rule_id for rule_id in self._order if rule_id not in self._results]
            if missing:
                raise RuntimeError(
                    f"Cannot summarize: {len(missing)} rule(s) not recorded "
                    f"({', '.join(missing[:5])})"
                )

            unordered = len(self._order)
            results = sorted(
                self._results.values(),
                key=lambda r: (self._order.get(r.rule_id, unordered), r.rule_id),
            )
            return RunReport(results=tuple(results), warnings=tuple(self._warnings))

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    def __contains__(self, rule_id: str) -> bool:
        with self._lock:
            return rule_id in self._results
