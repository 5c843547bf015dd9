"""
KubeScan

A read-only CIS benchmark audit engine for Kubernetes control-plane
hosts. Evaluates a catalog of rules against a snapshot of the host's
process command lines and reports, per rule, whether the observed
configuration complies.
"""

__version__ = "0.1.0"
__author__ = "KubeScan Project"

from .core import (
    ApplicabilityGate,
    Catalog,
    Engine,
    FactCollectionFatalError,
    FactProvider,
    JSONFactProvider,
    Rule,
    RuleGroup,
    RuleOutcome,
    RunReport,
    StaticFactProvider,
    load_catalog,
    run_audit,
)

__all__ = [
    "ApplicabilityGate",
    "Catalog",
    "Engine",
    "FactCollectionFatalError",
    "FactProvider",
    "JSONFactProvider",
    "Rule",
    "RuleGroup",
    "RuleOutcome",
    "RunReport",
    "StaticFactProvider",
    "load_catalog",
    "run_audit",
]
