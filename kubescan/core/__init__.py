"""
KubeScan - Core Module

This module contains the rule-evaluation engine: facts, assertions,
combinators, applicability gates, rules, aggregation and catalogs.
"""

from .aggregator import ResultAggregator, RunReport
from .assertion import (
    Assertion,
    AssertionOutcome,
    AssertionResult,
    FlagListMembership,
    FlagPresence,
    ManualReview,
    NumericThreshold,
    RegexPresence,
    evaluate,
)
from .catalog import (
    Catalog,
    catalog_exists,
    list_available_catalogs,
    load_catalog,
    parse_catalog,
)
from .combinator import UnitResult, evaluate_all, evaluate_one_of, evaluate_unit
from .engine import Engine, run_audit
from .errors import (
    AssertionParseError,
    CatalogError,
    FactCollectionFatalError,
    FactUnavailableError,
    GateEvaluationFailure,
    KubeScanError,
)
from .facts import (
    Fact,
    FactProvider,
    FactSnapshot,
    JSONFactProvider,
    StaticFactProvider,
    collect_facts,
    parse_command_line,
)
from .gate import ApplicabilityGate, applies
from .rule import AlternativeGroup, Rule, RuleGroup, RuleOutcome, RuleResult

__all__ = [
    "ResultAggregator",
    "RunReport",
    "Assertion",
    "AssertionOutcome",
    "AssertionResult",
    "FlagListMembership",
    "FlagPresence",
    "ManualReview",
    "NumericThreshold",
    "RegexPresence",
    "evaluate",
    "Catalog",
    "catalog_exists",
    "list_available_catalogs",
    "load_catalog",
    "parse_catalog",
    "UnitResult",
    "evaluate_all",
    "evaluate_one_of",
    "evaluate_unit",
    "Engine",
    "run_audit",
    "AssertionParseError",
    "CatalogError",
    "FactCollectionFatalError",
    "FactUnavailableError",
    "GateEvaluationFailure",
    "KubeScanError",
    "Fact",
    "FactProvider",
    "FactSnapshot",
    "JSONFactProvider",
    "StaticFactProvider",
    "collect_facts",
    "parse_command_line",
    "ApplicabilityGate",
    "applies",
    "AlternativeGroup",
    "Rule",
    "RuleGroup",
    "RuleOutcome",
    "RuleResult",
]
