"""
KubeScan - Applicability Gate

A gate decides, once per run, whether a group of rules is relevant to
the audited host at all (e.g. "kube-apiserver is running").
"""

from dataclasses import dataclass
from typing import Any

from .facts import FactSnapshot


@dataclass(frozen=True)
class ApplicabilityGate:
    """Existence predicate over a named process.

    Attributes:
        process: Process name the predicate inspects
        expect: "exists" to apply when the process runs, "absent" to apply
            when it does not
    """
    process: str
    expect: str = "exists"

    def __post_init__(self) -> None:
        if not self.process:
            raise ValueError("Gate process cannot be empty")
        if self.expect not in ("exists", "absent"):
            raise ValueError(
                f"Gate expect must be 'exists' or 'absent', got '{self.expect}'"
            )

    def describe(self) -> str:
        """Short human-readable description."""
        return f"process '{self.process}' {'exists' if self.expect == 'exists' else 'is absent'}"

    def to_dict(self) -> dict[str, Any]:
        return {"process": self.process, "expect": self.expect}


def applies(gate: ApplicabilityGate, facts: FactSnapshot) -> bool:
    """Evaluate a group's applicability predicate.

    Args:
        gate: The group's predicate
        facts: Fact snapshot of the current run

    Returns:
        True if the group's rules should be evaluated

    Raises:
        GateEvaluationFailure: If the process's existence is unknown
    """
    running = facts.exists(gate.process)
    if gate.expect == "exists":
        return running
    return not running
