"""
KubeScan - Assertion Engine

This module defines the typed assertions a rule is built from and the
evaluate() entry point that applies one assertion to one fact. Evaluation
is a pure function of the assertion and the fact.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
import operator
import re
from typing import Any, Callable, Optional, Type

from .errors import AssertionParseError
from .facts import Fact


class AssertionOutcome(Enum):
    """Outcome of evaluating a single assertion.

    Attributes:
        PASS: The fact satisfies the assertion
        FAIL: The fact violates the assertion
        ERROR: The assertion itself is broken or its fact is unavailable
        SKIP: The assertion requires manual review
        NOT_EVALUATED: The assertion did not apply to the observed fact
    """
    PASS = "pass"
    FAIL = "fail"
    ERROR = "error"
    SKIP = "skip"
    NOT_EVALUATED = "not_evaluated"


@dataclass(frozen=True)
class AssertionResult:
    """Result of evaluating one assertion.

    Attributes:
        outcome: Ternary outcome (plus skip / not evaluated)
        assertion: Human-readable description of the assertion
        message: Explanation of the outcome
        observed: Observed value relevant to the outcome, if any
        details: Optional additional details (e.g., error type)
    """
    outcome: AssertionOutcome
    assertion: str
    message: str = ""
    observed: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert the result to a dictionary for JSON serialization."""
        return {
            "assertion": self.assertion,
            "outcome": self.outcome.value,
            "message": self.message,
            "observed": self.observed,
            "details": self.details if self.details else None,
        }


_ASSERTION_TYPES: dict[str, Type["Assertion"]] = {}

COMPARATORS: dict[str, Callable[[int, int], bool]] = {
    ">=": operator.ge,
    "<=": operator.le,
    "==": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    "<": operator.lt,
}

_INTEGER = re.compile(r"[+-]?[0-9]+")


def _compile(pattern: str) -> "re.Pattern[str]":
    """Compile a regular expression, reporting syntax errors as parse errors."""
    try:
        return re.compile(pattern)
    except re.error as e:
        raise AssertionParseError(f"Invalid pattern /{pattern}/: {e}") from e


class Assertion(ABC):
    """Abstract base class for all assertions.

    Subclasses are frozen dataclasses that define a unique ``kind`` used
    as the ``type`` key in rule catalogs, and implement check() and
    describe(). Every subclass carries an optional ``fact`` field naming
    the process whose command line it reads; None means the group's
    gate process.
    """

    kind: str = ""
    requires_fact: bool = True
    fact: Optional[str]

    def __init_subclass__(cls, **kwargs: Any) -> None:
        """Register subclasses by kind."""
        super().__init_subclass__(**kwargs)

        if not cls.kind:
            raise ValueError(f"Assertion class {cls.__name__} must define 'kind'")
        if cls.kind in _ASSERTION_TYPES:
            raise ValueError(
                f"Assertion kind '{cls.kind}' is already registered "
                f"({_ASSERTION_TYPES[cls.kind].__name__})"
            )
        _ASSERTION_TYPES[cls.kind] = cls

    @abstractmethod
    def check(self, fact: Fact) -> AssertionResult:
        """Evaluate the assertion against a fact.

        Raises:
            AssertionParseError: If the assertion is malformed
        """

    @abstractmethod
    def describe(self) -> str:
        """Short human-readable description."""

    def _result(
        self,
        outcome: AssertionOutcome,
        message: str,
        observed: Optional[str] = None,
    ) -> AssertionResult:
        return AssertionResult(
            outcome=outcome,
            assertion=self.describe(),
            message=message,
            observed=observed,
        )


def assertion_type(kind: str) -> Optional[Type[Assertion]]:
    """Look up a registered assertion class by kind."""
    return _ASSERTION_TYPES.get(kind)


def assertion_kinds() -> list[str]:
    """Get all registered assertion kinds."""
    return sorted(_ASSERTION_TYPES)


@dataclass(frozen=True)
class RegexPresence(Assertion):
    """Pattern must (or must not) be found in the fact's payload.

    An absent fact reads as an empty string, so ``no-match`` assertions
    pass when the fact is absent.
    """

    kind = "regex"

    pattern: str
    expect: str = "match"
    fact: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.pattern, str):
            raise ValueError(f"pattern must be a string, got {self.pattern!r}")
        if self.expect not in ("match", "no-match"):
            raise ValueError(
                f"expect must be 'match' or 'no-match', got '{self.expect}'"
            )

    def describe(self) -> str:
        verb = "matches" if self.expect == "match" else "does not match"
        return f"command line {verb} /{self.pattern}/"

    def check(self, fact: Fact) -> AssertionResult:
        found = _compile(self.pattern).search(fact.text)
        if self.expect == "match":
            if found:
                return self._result(
                    AssertionOutcome.PASS, f"Found '{found.group(0)}'", found.group(0)
                )
            return self._result(
                AssertionOutcome.FAIL,
                f"/{self.pattern}/ not found in {fact.name} command line",
            )

        if found:
            return self._result(
                AssertionOutcome.FAIL,
                f"Forbidden '{found.group(0)}' found in {fact.name} command line",
                found.group(0),
            )
        return self._result(AssertionOutcome.PASS, f"/{self.pattern}/ not present")


@dataclass(frozen=True)
class NumericThreshold(Assertion):
    """Integer captured from the fact must compare against a threshold.

    The pattern must contain exactly one capturing group. The last match
    is used. When the pattern does not match at all the assertion is not
    evaluated; pair it with a presence assertion to catch missing flags.
    """

    kind = "threshold"

    pattern: str
    comparator: str
    threshold: int
    fact: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.pattern, str):
            raise ValueError(f"pattern must be a string, got {self.pattern!r}")
        if self.comparator not in COMPARATORS:
            raise ValueError(
                f"Unknown comparator '{self.comparator}'. "
                f"Expected one of: {', '.join(COMPARATORS)}"
            )
        if isinstance(self.threshold, bool) or not isinstance(self.threshold, int):
            raise ValueError(f"threshold must be an integer, got {self.threshold!r}")

    def describe(self) -> str:
        return f"/{self.pattern}/ {self.comparator} {self.threshold}"

    def check(self, fact: Fact) -> AssertionResult:
        regex = _compile(self.pattern)
        if regex.groups != 1:
            raise AssertionParseError(
                f"Pattern /{self.pattern}/ must contain exactly one capturing "
                f"group, found {regex.groups}"
            )

        matches = regex.findall(fact.text)
        if not matches:
            return self._result(
                AssertionOutcome.NOT_EVALUATED,
                f"/{self.pattern}/ not found in {fact.name} command line",
            )

        captured = matches[-1]
        if not _INTEGER.fullmatch(captured):
            raise AssertionParseError(f"Captured value '{captured}' is not an integer")
        value = int(captured, 10)

        if COMPARATORS[self.comparator](value, self.threshold):
            return self._result(
                AssertionOutcome.PASS,
                f"{value} {self.comparator} {self.threshold}",
                captured,
            )
        return self._result(
            AssertionOutcome.FAIL,
            f"{value} is not {self.comparator} {self.threshold}",
            captured,
        )


@dataclass(frozen=True)
class ManualReview(Assertion):
    """Placeholder for a check a human has to perform."""

    kind = "manual"
    requires_fact = False

    message: str
    fact: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.message, str):
            raise ValueError(f"message must be a string, got {self.message!r}")

    def describe(self) -> str:
        return "manual review"

    def check(self, fact: Fact) -> AssertionResult:
        return self._result(AssertionOutcome.SKIP, self.message)


@dataclass(frozen=True)
class FlagPresence(Assertion):
    """A parsed command-line flag must be present (or absent).

    When ``value`` is given, "present" means the flag is set to exactly
    that value and "absent" means it is not.
    """

    kind = "flag"

    flag: str
    expect: str = "present"
    value: Optional[str] = None
    fact: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.flag, str):
            raise ValueError(f"flag must be a string, got {self.flag!r}")
        if self.value is not None and not isinstance(self.value, str):
            raise ValueError(f"value must be a string, got {self.value!r}")
        if not self.flag:
            raise ValueError("flag cannot be empty")
        if self.expect not in ("present", "absent"):
            raise ValueError(
                f"expect must be 'present' or 'absent', got '{self.expect}'"
            )

    def describe(self) -> str:
        target = f"--{self.flag}" if self.value is None else f"--{self.flag}={self.value}"
        return f"{target} is {'set' if self.expect == 'present' else 'not set'}"

    def check(self, fact: Fact) -> AssertionResult:
        present = self.flag in fact.flags
        observed = fact.flags.get(self.flag)
        if self.value is None:
            satisfied = present
        else:
            satisfied = present and observed == self.value

        if satisfied == (self.expect == "present"):
            return self._result(AssertionOutcome.PASS, self.describe(), observed)

        if self.expect == "absent":
            message = f"--{self.flag} is set" + (f" to '{observed}'" if observed else "")
        elif not present:
            message = f"--{self.flag} is not set"
        else:
            message = f"--{self.flag} is '{observed}', expected '{self.value}'"
        return self._result(AssertionOutcome.FAIL, message, observed)


@dataclass(frozen=True)
class FlagListMembership(Assertion):
    """A list-valued flag must contain (or exclude) an item.

    Used for flags such as ``--admission-control=A,B,C``. A missing flag
    contains nothing.
    """

    kind = "flag-list"

    flag: str
    item: str
    expect: str = "contains"
    separator: str = ","
    fact: Optional[str] = None

    def __post_init__(self) -> None:
        for name in ("flag", "item", "separator"):
            if not isinstance(getattr(self, name), str):
                raise ValueError(f"{name} must be a string, got {getattr(self, name)!r}")
        if not self.flag or not self.item:
            raise ValueError("flag and item cannot be empty")
        if not self.separator:
            raise ValueError("separator cannot be empty")
        if self.expect not in ("contains", "excludes"):
            raise ValueError(
                f"expect must be 'contains' or 'excludes', got '{self.expect}'"
            )

    def describe(self) -> str:
        return f"--{self.flag} {self.expect} {self.item}"

    def check(self, fact: Fact) -> AssertionResult:
        raw = fact.flags.get(self.flag)
        items = [part.strip() for part in (raw or "").split(self.separator)]
        contains = self.item in items

        if contains == (self.expect == "contains"):
            return self._result(AssertionOutcome.PASS, self.describe(), raw)

        if contains:
            message = f"--{self.flag} includes {self.item}"
        elif raw is None:
            message = f"--{self.flag} is not set"
        else:
            message = f"--{self.flag} does not include {self.item}"
        return self._result(AssertionOutcome.FAIL, message, raw)


def evaluate(assertion: Assertion, fact: Fact) -> AssertionResult:
    """Evaluate one assertion against one fact.

    This is the main entry point of the assertion engine. Malformed
    assertions and unavailable facts produce an ERROR result instead of
    raising, so one broken rule never stops the run.

    Args:
        assertion: Assertion to evaluate
        fact: Fact the assertion reads

    Returns:
        AssertionResult with the outcome
    """
    if assertion.requires_fact and not fact.available:
        return AssertionResult(
            outcome=AssertionOutcome.ERROR,
            assertion=assertion.describe(),
            message=f"Fact '{fact.name}' is unavailable: {fact.error}",
            details={"error": fact.error, "error_type": "FactUnavailableError"},
        )

    try:
        return assertion.check(fact)
    except AssertionParseError as e:
        return AssertionResult(
            outcome=AssertionOutcome.ERROR,
            assertion=assertion.describe(),
            message=str(e),
            details={"error": str(e), "error_type": type(e).__name__},
        )
    except Exception as e:
        return AssertionResult(
            outcome=AssertionOutcome.ERROR,
            assertion=assertion.describe(),
            message=f"Assertion evaluation failed with error: {e}",
            details={"error": str(e), "error_type": type(e).__name__},
        )
