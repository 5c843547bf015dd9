"""
KubeScan - Rules and Rule Results

This module provides the immutable rule data model (Rule, RuleGroup,
AlternativeGroup) and the RuleResult dataclass for storing the terminal
outcome of one rule.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Union

from .assertion import Assertion, AssertionResult
from .gate import ApplicabilityGate


class RuleOutcome(Enum):
    """Terminal outcome of a rule.

    Attributes:
        PASSED: Every required assertion passed
        FAILED: The observed configuration is non-compliant
        SKIPPED: The rule requires manual review
        NOT_APPLICABLE: The group's applicability gate was false
        ERRORED: The rule itself is broken and could not be evaluated
    """
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    NOT_APPLICABLE = "not_applicable"
    ERRORED = "errored"


@dataclass(frozen=True)
class AlternativeGroup:
    """Ordered alternatives; the group passes if any one passes in full.

    Attributes:
        alternatives: Assertion lists, each evaluated with ALL semantics
    """
    alternatives: tuple[tuple[Assertion, ...], ...]

    def __post_init__(self) -> None:
        alternatives = tuple(tuple(alternative) for alternative in self.alternatives)
        if not alternatives:
            raise ValueError("An alternative group needs at least one alternative")
        if any(not alternative for alternative in alternatives):
            raise ValueError("Alternatives cannot be empty")
        object.__setattr__(self, "alternatives", alternatives)

    def assertions(self) -> Iterator[Assertion]:
        """Iterate over every assertion of every alternative."""
        for alternative in self.alternatives:
            yield from alternative

    def __len__(self) -> int:
        return len(self.alternatives)


EvaluationUnit = Union[tuple[Assertion, ...], AlternativeGroup]


@dataclass(frozen=True)
class Rule:
    """A single compliance check.

    Attributes:
        id: Unique, stable identifier
        title: Human-readable title
        unit: Plain assertion tuple (ALL) or an AlternativeGroup (ONE-OF)
        severity_weight: Weight between 0.0 and 1.0; 0.0 marks an
            informational or manual-only rule
        metadata: Opaque descriptive data (tags, references, remediation).
            Carried through but never read by the engine.
    """
    id: str
    title: str
    unit: EvaluationUnit
    severity_weight: float = 1.0
    metadata: Mapping[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Rule id cannot be empty")
        if any(ch.isspace() for ch in self.id):
            raise ValueError(f"Rule id '{self.id}' cannot contain whitespace")
        if not self.title:
            raise ValueError(f"Rule '{self.id}' title cannot be empty")
        if isinstance(self.severity_weight, bool) or not isinstance(
            self.severity_weight, (int, float)
        ):
            raise ValueError(f"Rule '{self.id}' severity weight must be a number")
        if not 0.0 <= self.severity_weight <= 1.0:
            raise ValueError(
                f"Rule '{self.id}' severity weight must be between 0.0 and 1.0, "
                f"got {self.severity_weight}"
            )

        if not isinstance(self.unit, AlternativeGroup):
            unit = tuple(self.unit)
            if not unit:
                raise ValueError(f"Rule '{self.id}' has no assertions")
            object.__setattr__(self, "unit", unit)

        object.__setattr__(self, "severity_weight", float(self.severity_weight))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def is_one_of(self) -> bool:
        """Whether the rule uses ONE-OF semantics."""
        return isinstance(self.unit, AlternativeGroup)

    @property
    def informational(self) -> bool:
        """Whether the rule carries no weight."""
        return self.severity_weight == 0.0

    @property
    def assertions(self) -> tuple[Assertion, ...]:
        """All assertions of the rule, flattened."""
        if isinstance(self.unit, AlternativeGroup):
            return tuple(self.unit.assertions())
        return self.unit


@dataclass(frozen=True)
class RuleGroup:
    """Rules sharing one applicability gate.

    Attributes:
        id: Group identifier
        title: Human-readable title
        gate: Predicate deciding whether the rules apply
        rules: Rules in declaration order
    """
    id: str
    title: str
    gate: ApplicabilityGate
    rules: tuple[Rule, ...] = ()

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Group id cannot be empty")
        rules = tuple(self.rules)
        seen: set[str] = set()
        for rule in rules:
            if rule.id in seen:
                raise ValueError(
                    f"Rule with id '{rule.id}' appears twice in group '{self.id}'"
                )
            seen.add(rule.id)
        object.__setattr__(self, "rules", rules)

    def __len__(self) -> int:
        return len(self.rules)


@dataclass(frozen=True)
class RuleResult:
    """Terminal result of one rule in a run.

    Attributes:
        rule_id: Identifier of the evaluated rule
        title: Rule title
        outcome: Exactly one terminal outcome
        severity_weight: The rule's weight
        message: Explanation of the outcome
        details: Per-assertion results, in evaluation order
        warnings: Annotations such as gate evaluation failures
    """
    rule_id: str
    title: str
    outcome: RuleOutcome
    severity_weight: float = 1.0
    message: str = ""
    details: tuple[AssertionResult, ...] = ()
    warnings: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        """Validate the result after initialization."""
        if not self.rule_id:
            raise ValueError("rule_id cannot be empty")
        if not isinstance(self.outcome, RuleOutcome):
            raise ValueError(f"outcome must be a RuleOutcome, got {self.outcome!r}")
        if self.outcome is RuleOutcome.NOT_APPLICABLE and self.details:
            raise ValueError("A not applicable rule cannot carry assertion details")
        object.__setattr__(self, "details", tuple(self.details))
        object.__setattr__(self, "warnings", tuple(self.warnings))

    @classmethod
    def for_rule(
        cls,
        rule: Rule,
        outcome: RuleOutcome,
        details: tuple[AssertionResult, ...] = (),
        message: str = "",
        warnings: tuple[str, ...] = (),
    ) -> "RuleResult":
        """Create a result carrying a rule's identity and weight."""
        return cls(
            rule_id=rule.id,
            title=rule.title,
            outcome=outcome,
            severity_weight=rule.severity_weight,
            message=message,
            details=details,
            warnings=warnings,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert the result to a dictionary for JSON serialization.

        Returns:
            Dictionary representation of the rule result
        """
        return {
            "rule_id": self.rule_id,
            "title": self.title,
            "outcome": self.outcome.value,
            "severity_weight": self.severity_weight,
            "message": self.message,
            "per_assertion_detail": [detail.to_dict() for detail in self.details],
            "warnings": list(self.warnings),
        }
