"""
KubeScan - Error Taxonomy

Exceptions raised by the rule-evaluation engine and its collaborators.
Only FactCollectionFatalError aborts a run; every other error is
contained to the rule or group that produced it.
"""


class KubeScanError(Exception):
    """Base class for all KubeScan errors."""


class GateEvaluationFailure(KubeScanError):
    """The fact provider could not answer an applicability predicate.

    The affected group is reported as not applicable with a warning.
    """


class FactUnavailableError(KubeScanError):
    """A fact exists but its value could not be obtained."""


class AssertionParseError(KubeScanError):
    """An assertion is malformed (bad pattern or non-integer capture).

    Surfaces as an errored rule, never as a failed one.
    """


class FactCollectionFatalError(KubeScanError):
    """No facts could be collected at all; the whole run is aborted."""


class CatalogError(KubeScanError, ValueError):
    """Rule catalog data is structurally invalid."""
