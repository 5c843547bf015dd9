"""
KubeScan - Rule Evaluation Engine

Orchestrates one audit run: collect facts once, evaluate each group's
applicability gate once, evaluate every applicable rule and aggregate the
results into a RunReport.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, Optional

from .aggregator import ResultAggregator, RunReport
from .combinator import evaluate_unit
from .errors import FactCollectionFatalError, GateEvaluationFailure
from .facts import FactProvider, FactSnapshot, collect_facts
from .gate import applies
from .rule import Rule, RuleGroup, RuleOutcome, RuleResult

ProgressCallback = Callable[[str, str, str, Optional[RuleResult]], None]


class Engine:
    """Evaluates rule groups against the facts of a host.

    Rules have no shared mutable state besides the aggregator, so with
    ``workers > 1`` they are evaluated in a thread pool; the report is
    built once every rule has been recorded.

    Example:
        engine = Engine(catalog.groups)
        report = engine.run(StaticFactProvider({
            "kube-apiserver": "kube-apiserver --anonymous-auth=false",
        }))
        if not report.compliant:
            ...
    """

    def __init__(self, groups: Iterable[RuleGroup], workers: int = 1) -> None:
        """Initialize the engine.

        Args:
            groups: Rule groups to evaluate, in declaration order
            workers: Number of worker threads for rule evaluation

        Raises:
            ValueError: If workers < 1 or a rule id appears twice
        """
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")

        self._groups = tuple(groups)
        self._workers = workers

        seen: set[str] = set()
        for group in self._groups:
            for rule in group.rules:
                if rule.id in seen:
                    raise ValueError(f"Rule with id '{rule.id}' is defined more than once")
                seen.add(rule.id)

    @property
    def groups(self) -> tuple[RuleGroup, ...]:
        return self._groups

    @property
    def rule_ids(self) -> list[str]:
        """All rule ids in declaration order."""
        return [rule.id for group in self._groups for rule in group.rules]

    def required_facts(self) -> list[str]:
        """Names of all processes the run needs facts about."""
        names: dict[str, None] = {}
        for group in self._groups:
            names.setdefault(group.gate.process)
            for rule in group.rules:
                for assertion in rule.assertions:
                    if assertion.fact:
                        names.setdefault(assertion.fact)
        return list(names)

    def run(
        self,
        provider: FactProvider,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> RunReport:
        """Collect facts and evaluate every rule.

        Args:
            provider: Source of facts, queried once per fact
            progress_callback: Optional callback called before and after
                each rule with (event_type, rule_id, title, result) where
                event_type is 'start' or 'complete', and result is only
                provided for 'complete' events

        Returns:
            RunReport; if fact collection fails fatally the report has
            ``error`` set and no rule results
        """
        try:
            snapshot = collect_facts(provider, self.required_facts())
        except FactCollectionFatalError as e:
            return RunReport.aborted(f"Fact collection failed: {e}")

        return self.evaluate(snapshot, progress_callback)

    def evaluate(
        self,
        snapshot: FactSnapshot,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> RunReport:
        """Evaluate every rule against an already collected snapshot."""
        aggregator = ResultAggregator(order=self.rule_ids)
        tasks: list[tuple[RuleGroup, Rule, bool, Optional[str]]] = []

        # Each gate is evaluated exactly once, before any rule
        for group in self._groups:
            warning: Optional[str] = None
            try:
                applicable = applies(group.gate, snapshot)
            except GateEvaluationFailure as e:
                applicable = False
                warning = f"Group '{group.id}' marked not applicable: {e}"
                aggregator.add_warning(warning)

            for rule in group.rules:
                tasks.append((group, rule, applicable, warning))

        def run_task(task: tuple[RuleGroup, Rule, bool, Optional[str]]) -> None:
            group, rule, applicable, warning = task

            if progress_callback:
                progress_callback("start", rule.id, rule.title, None)

            result = self._evaluate_rule(aggregator, snapshot, group, rule, applicable, warning)

            if progress_callback:
                progress_callback("complete", rule.id, rule.title, result)

        if self._workers > 1 and len(tasks) > 1:
            with ThreadPoolExecutor(max_workers=self._workers) as pool:
                # Consuming the iterator re-raises worker exceptions
                list(pool.map(run_task, tasks))
        else:
            for task in tasks:
                run_task(task)

        return aggregator.summarize()

    def _evaluate_rule(
        self,
        aggregator: ResultAggregator,
        snapshot: FactSnapshot,
        group: RuleGroup,
        rule: Rule,
        applicable: bool,
        warning: Optional[str],
    ) -> RuleResult:
        if not applicable:
            return aggregator.record(
                rule,
                RuleOutcome.NOT_APPLICABLE,
                message=warning or f"Not applicable: {group.gate.describe()} is false",
                warnings=(warning,) if warning else (),
            )

        default_fact = group.gate.process
        unit = evaluate_unit(
            rule.unit,
            lambda assertion: snapshot.command_line(assertion.fact or default_fact),
        )
        return aggregator.record(rule, unit.outcome, unit.results, unit.message)


def run_audit(
    groups: Iterable[RuleGroup],
    provider: FactProvider,
    workers: int = 1,
    progress_callback: Optional[ProgressCallback] = None,
) -> RunReport:
    """Evaluate rule groups against a fact provider in one call.

    Args:
        groups: Rule groups to evaluate
        provider: Source of facts
        workers: Number of worker threads for rule evaluation
        progress_callback: Optional per-rule progress callback

    Returns:
        RunReport of the run
    """
    return Engine(groups, workers=workers).run(provider, progress_callback)
