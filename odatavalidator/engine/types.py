"""
Core types for the OData conformance engine.

This module defines the data structures shared by rules, the composer,
the runner and the report: verdicts, diagnostic details, outcomes,
dependency declarations and the final validation report.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple


class Verdict(Enum):
    """
    Three-valued result of one verification unit.

    INCONCLUSIVE means the precondition for testing could not be
    established or the probe never ran. It is never a protocol violation.
    """
    PASS = "pass"
    FAIL = "fail"
    INCONCLUSIVE = "inconclusive"


class RequirementLevel(Enum):
    """RFC 2119 level of the conformance statement a rule checks."""
    MUST = "must"
    MUST_NOT = "mustNot"
    SHOULD = "should"
    SHOULD_NOT = "shouldNot"
    MAY = "may"
    RECOMMENDED = "recommended"


class ConformanceLevel(Enum):
    """OData service conformance levels (OData Protocol section 13.1)."""
    MINIMAL = "minimal"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class ServiceType(Enum):
    """Kind of service a rule applies to."""
    READ_ONLY = "readOnly"
    READ_WRITE = "readWrite"


class DependencyType(Enum):
    """How a rule's verdict is obtained."""
    NONE = "none"              # Leaf check, verified directly
    DEPENDENCY = "dependency"  # Derived from other rules or inline sub-checks
    SKIP = "skip"              # Never evaluated, always inconclusive


class CombinationPolicy(Enum):
    """Reduction applied to the outcomes of a composite rule's children."""
    ALL_PASS = "allPass"
    ALL_MINIMAL = "allMinimal"
    ALL_INTERMEDIATE = "allIntermediate"


class RuleRelationship(Enum):
    """Relationship between a composite rule and the rules it names."""
    SUB_RULE = "subRule"
    DERIVED_RULE = "derivedRule"


class Classification(Enum):
    """Report classification of a single rule result."""
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    RECOMMENDATION = "recommendation"
    NOT_APPLICABLE = "notApplicable"
    ABORTED = "aborted"
    PENDING = "pending"
    SKIP = "skip"


@dataclass(frozen=True)
class ResultDetail:
    """
    One recorded HTTP probe attached to an outcome.

    Details are immutable. A composite rule re-tags a copy with its own
    name, so two parents merging the same child never see each other's
    ``rule_name``.
    """
    rule_name: str = ""
    url: str = ""
    http_method: str = ""
    request_headers: str = ""
    request_data: str = ""
    status_code: Optional[int] = None
    response_headers: str = ""
    response_payload: str = ""
    error_message: str = ""

    @classmethod
    def from_response(
        cls,
        rule_name: str,
        url: str,
        http_method: str,
        request_headers: str,
        response: Any,
        error_message: str = "",
        request_data: str = "",
    ) -> "ResultDetail":
        """Build a detail from a ``service.web.Response`` (or None)."""
        if response is None:
            return cls(
                rule_name=rule_name,
                url=url,
                http_method=http_method,
                request_headers=request_headers,
                request_data=request_data,
                error_message=error_message,
            )
        return cls(
            rule_name=rule_name,
            url=url,
            http_method=http_method,
            request_headers=request_headers,
            request_data=request_data,
            status_code=response.status_code,
            response_headers=response.header_text(),
            response_payload=response.payload or "",
            error_message=error_message,
        )

    @property
    def has_error(self) -> bool:
        return bool(self.error_message)

    def retag(self, rule_name: str) -> "ResultDetail":
        """Return a copy owned by ``rule_name``."""
        return replace(self, rule_name=rule_name)

    def with_error(self, error_message: str) -> "ResultDetail":
        """Return a copy carrying ``error_message``."""
        return replace(self, error_message=error_message)


@dataclass(frozen=True)
class Outcome:
    """
    Verdict of one verification unit plus the probes that produced it.

    A FAIL outcome must explain itself: at least one detail carries an
    error message.
    """
    verdict: Verdict
    details: Tuple[ResultDetail, ...] = ()

    def __post_init__(self):
        if not isinstance(self.details, tuple):
            object.__setattr__(self, "details", tuple(self.details))
        if self.verdict == Verdict.FAIL and not any(d.has_error for d in self.details):
            raise ValueError("A failing outcome requires at least one detail with an error message")

    @classmethod
    def passed_with(cls, details: Iterable[ResultDetail] = ()) -> "Outcome":
        return cls(Verdict.PASS, tuple(details))

    @classmethod
    def failed_with(cls, details: Iterable[ResultDetail]) -> "Outcome":
        return cls(Verdict.FAIL, tuple(details))

    @classmethod
    def inconclusive_with(cls, details: Iterable[ResultDetail] = ()) -> "Outcome":
        return cls(Verdict.INCONCLUSIVE, tuple(details))

    @property
    def passed(self) -> bool:
        return self.verdict == Verdict.PASS

    @property
    def failed(self) -> bool:
        return self.verdict == Verdict.FAIL

    @property
    def inconclusive(self) -> bool:
        return self.verdict == Verdict.INCONCLUSIVE

    @property
    def error_messages(self) -> List[str]:
        return [d.error_message for d in self.details if d.has_error]

    def owned_by(self, rule_name: str) -> "Outcome":
        """Return a copy whose details are all re-tagged with ``rule_name``."""
        return Outcome(self.verdict, tuple(d.retag(rule_name) for d in self.details))


@dataclass(frozen=True)
class DependencyInfo:
    """
    Declarative link from a composite rule to the rules it is derived from.

    For ALL_PASS the children are exactly ``rule_names``. For ALL_MINIMAL
    and ALL_INTERMEDIATE the children are discovered from the registry at
    evaluation time and ``rule_names`` is normally empty.
    """
    policy: CombinationPolicy
    relationship: RuleRelationship
    rule_names: Tuple[str, ...] = ()

    def __post_init__(self):
        if not isinstance(self.rule_names, tuple):
            object.__setattr__(self, "rule_names", tuple(self.rule_names))
        seen = set()
        duplicates = []
        for name in self.rule_names:
            if name in seen:
                duplicates.append(name)
            seen.add(name)
        if duplicates:
            raise ValueError(f"Duplicate referenced rule names: {duplicates}")


@dataclass
class TestResult:
    """
    Result of a single rule in a validation job.

    Carries the rule identity, its verdict and classification, and the
    ordered details shown under the rule's heading in the report.
    """
    __test__ = False  # not a pytest test class

    rule_name: str
    category: str
    description: str
    requirement_level: RequirementLevel
    verdict: Verdict
    classification: Classification
    level: Optional[ConformanceLevel] = None
    spec_section: Optional[str] = None
    error_message: str = ""
    details: List[ResultDetail] = field(default_factory=list)
    job_id: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.classification == Classification.SUCCESS

    @property
    def failed(self) -> bool:
        """Only MUST-level failures and aborted rules count as errors."""
        return self.classification in (Classification.ERROR, Classification.ABORTED)


@dataclass
class LevelSummary:
    """Summary of all results at a given conformance level."""
    level: Optional[ConformanceLevel]
    level_name: str
    total_rules: int
    passed: int
    errors: int
    warnings: int
    not_applicable: int
    skipped: int
    recommendations: int = 0
    aborted: int = 0

    @property
    def pass_rate(self) -> float:
        """Share of applicable rules that passed."""
        applicable = self.total_rules - self.not_applicable - self.skipped
        if applicable == 0:
            return 1.0
        return self.passed / applicable


@dataclass
class ValidationReport:
    """
    Complete report of one validation job against a service.
    """
    service_root: str
    timestamp: str
    job_id: str
    odata_version: Optional[str] = None

    # Results in evaluation order
    results: List[TestResult] = field(default_factory=list)

    level_summaries: List[LevelSummary] = field(default_factory=list)

    is_conformant: bool = False
    verdict_text: str = ""

    @property
    def total_rules(self) -> int:
        return len(self.results)

    @property
    def total_errors(self) -> int:
        return sum(1 for r in self.results if r.failed)

    def get_result(self, rule_name: str) -> Optional[TestResult]:
        for result in self.results:
            if result.rule_name == rule_name:
                return result
        return None

    def get_errors(self) -> List[TestResult]:
        return [r for r in self.results if r.failed]

    def get_by_classification(self, classification: Classification) -> List[TestResult]:
        return [r for r in self.results if r.classification == classification]

    def results_by_level(self) -> Dict[Optional[ConformanceLevel], List[TestResult]]:
        grouped: Dict[Optional[ConformanceLevel], List[TestResult]] = {}
        for result in self.results:
            grouped.setdefault(result.level, []).append(result)
        return grouped
