"""
OData Conformance Engine

Rule model, composition of rule outcomes, validation runner and reports.

A composite rule's verdict is reduced from its children with one
three-valued table:
    any FAIL          -> FAIL
    any INCONCLUSIVE  -> INCONCLUSIVE
    otherwise         -> PASS
and an empty set of children is INCONCLUSIVE.

The runner and report modules are imported from their own modules
(``odatavalidator.engine.runner``, ``odatavalidator.engine.report``)
since they depend on the rule registry and the conformance catalog.
"""

from .types import (
    Classification,
    CombinationPolicy,
    ConformanceLevel,
    DependencyInfo,
    DependencyType,
    LevelSummary,
    Outcome,
    RequirementLevel,
    ResultDetail,
    RuleRelationship,
    ServiceType,
    TestResult,
    ValidationReport,
    Verdict,
)
from .compose import combine_verdicts, compose, merge_details, short_circuit
from .rules import (
    AdvancedConformanceRule,
    CompositeRule,
    IntermediateConformanceRule,
    MinimalConformanceRule,
    Rule,
    SkipRule,
)
from .settings import ValidatorSettings

__all__ = [
    # Types
    "Classification",
    "CombinationPolicy",
    "ConformanceLevel",
    "DependencyInfo",
    "DependencyType",
    "LevelSummary",
    "Outcome",
    "RequirementLevel",
    "ResultDetail",
    "RuleRelationship",
    "ServiceType",
    "TestResult",
    "ValidationReport",
    "Verdict",
    # Composition
    "combine_verdicts",
    "compose",
    "merge_details",
    "short_circuit",
    # Rules
    "AdvancedConformanceRule",
    "CompositeRule",
    "IntermediateConformanceRule",
    "MinimalConformanceRule",
    "Rule",
    "SkipRule",
    # Settings
    "ValidatorSettings",
]
