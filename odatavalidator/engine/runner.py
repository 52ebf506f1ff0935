"""
OData Conformance Validation Runner.

Selects rules from the registry, evaluates them against a service in
dependency order and produces a ValidationReport.

Each rule is evaluated at most once per job. Composite rules are reduced
from the outcomes of their children; a child shared by several parents
is evaluated once and its outcome reused by all of them.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Sequence, Set

from odatavalidator.registry.rules import (
    AGGREGATE_REQUIREMENT_LEVELS,
    RuleGraphError,
    RuleRegistry,
    is_level_aggregate,
)

from .compose import compose
from .rules import Rule
from .settings import ValidatorSettings
from .types import (
    Classification,
    CombinationPolicy,
    ConformanceLevel,
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

logger = logging.getLogger(__name__)


class EvaluationState(Enum):
    """Lifecycle of one rule within a job."""
    NOT_STARTED = "notStarted"
    EVALUATING = "evaluating"
    PASSED = "passed"
    FAILED = "failed"
    INCONCLUSIVE = "inconclusive"


_TERMINAL_STATES = {
    Verdict.PASS: EvaluationState.PASSED,
    Verdict.FAIL: EvaluationState.FAILED,
    Verdict.INCONCLUSIVE: EvaluationState.INCONCLUSIVE,
}

_FAILURE_CLASSIFICATIONS = {
    RequirementLevel.MUST: Classification.ERROR,
    RequirementLevel.MUST_NOT: Classification.ERROR,
    RequirementLevel.SHOULD: Classification.WARNING,
    RequirementLevel.SHOULD_NOT: Classification.WARNING,
    RequirementLevel.MAY: Classification.RECOMMENDATION,
    RequirementLevel.RECOMMENDED: Classification.RECOMMENDATION,
}

_LEVEL_NAMES = {
    ConformanceLevel.MINIMAL: "Minimal Conformance",
    ConformanceLevel.INTERMEDIATE: "Intermediate Conformance",
    ConformanceLevel.ADVANCED: "Advanced Conformance",
}

_AGGREGATE_FAILURE_MESSAGES = {
    CombinationPolicy.ALL_MINIMAL: "Please check the results of Minimal conformance level rules.",
    CombinationPolicy.ALL_INTERMEDIATE: "Please check the results of Intermediate conformance level rules.",
}


def classify(rule: Rule, outcome: Outcome, aborted: bool = False) -> Classification:
    """
    Map a rule's outcome to its report classification.

    A failure is an error, a warning or a recommendation depending on the
    rule's requirement level. Inconclusive outcomes are not applicable,
    unless the rule raised, in which case it was aborted.
    """
    if rule.is_skipped:
        return Classification.SKIP
    if aborted:
        return Classification.ABORTED
    if outcome.verdict == Verdict.PASS:
        return Classification.SUCCESS
    if outcome.verdict == Verdict.FAIL:
        return _FAILURE_CLASSIFICATIONS[rule.requirement_level]
    return Classification.NOT_APPLICABLE


def composite_message(rule: Rule, verdict: Verdict, passed: int, total: int) -> str:
    """Summary line recorded on a composite rule's result."""
    info = rule.dependency_info
    if verdict == Verdict.FAIL and info.policy in _AGGREGATE_FAILURE_MESSAGES:
        return _AGGREGATE_FAILURE_MESSAGES[info.policy]
    kind = "derived" if info.relationship == RuleRelationship.DERIVED_RULE else "sub"
    return f"{passed} of {total} {kind} rules pass in the validation."


def level_contribution(rule: Rule, outcome: Outcome) -> Outcome:
    """
    The outcome a rule contributes to the aggregate of its conformance level.

    Only MUST and MUST NOT requirements can fail a level. A weaker
    requirement that fails is reported as a warning or a recommendation
    on its own result and counts as met in the aggregate; its details
    are kept.
    """
    if outcome.failed and rule.requirement_level not in AGGREGATE_REQUIREMENT_LEVELS:
        return Outcome(Verdict.PASS, outcome.details)
    return outcome


class _Job:
    """Mutable bookkeeping for one run."""

    def __init__(self, context, service_type: Optional[ServiceType]):
        self.context = context
        self.service_type = service_type
        self.states: Dict[str, EvaluationState] = {}
        self.outcomes: Dict[str, Outcome] = {}
        self.aborted: Set[str] = set()
        self.messages: Dict[str, str] = {}

    def state(self, name: str) -> EvaluationState:
        return self.states.get(name, EvaluationState.NOT_STARTED)


class ValidationRunner:
    """
    Runs conformance rules against an OData service.

    Usage:
        web = WebHelper(settings)
        context = build_context("https://host/service", web)
        runner = ValidationRunner(settings=settings)
        report = runner.run(context)
        print(report.verdict_text)
    """

    def __init__(
        self,
        registry: Optional[RuleRegistry] = None,
        settings: Optional[ValidatorSettings] = None,
    ):
        """
        Initialize the runner.

        Args:
            registry: Rules to choose from. If None, the full catalog is
                registered and validated.
            settings: Job settings; supplies the default conformance levels.
        """
        if registry is None:
            from odatavalidator.conformance import build_registry
            registry = build_registry()
        self.registry = registry
        self.settings = settings or ValidatorSettings()

    def run(
        self,
        context,
        levels: Optional[Sequence[ConformanceLevel]] = None,
        rule_names: Optional[Sequence[str]] = None,
    ) -> ValidationReport:
        """
        Run the selected rules against the service described by ``context``.

        Args:
            context: ServiceContext of the service under test
            levels: Conformance levels to run (default: the settings' levels)
            rule_names: Explicit rules to run; overrides ``levels``

        Returns:
            ValidationReport with one result per evaluated rule

        Raises:
            ValueError: If ``context`` is None.
            RuleNotFoundError: If an explicit rule name is unknown.
            RuleGraphError: If the selected rules form a dependency cycle.
        """
        if context is None:
            raise ValueError("context must not be None")

        if not rule_names and levels is None:
            levels = self.settings.levels
        service_type = context.service_type

        selected = self.registry.select(levels=levels, service_type=service_type, names=rule_names)
        ordered = self.registry.execution_order(selected, service_type)
        logger.info(
            "Running %d rule(s) against %s (job %s)",
            len(ordered), context.destination, context.job_id,
        )

        report = ValidationReport(
            service_root=context.destination,
            timestamp=datetime.now(timezone.utc).isoformat(),
            job_id=context.job_id,
            odata_version=context.odata_version,
        )

        job = _Job(context, service_type)
        for rule in ordered:
            outcome = self._evaluate(rule, job)
            report.results.append(self._to_result(rule, outcome, job))

        report.level_summaries = self._generate_summaries(report.results)
        report.is_conformant = report.total_errors == 0

        from .report import generate_verdict
        report.verdict_text = generate_verdict(report)

        logger.info(
            "Finished job %s: %d rule(s), %d error(s)",
            context.job_id, report.total_rules, report.total_errors,
        )
        return report

    # =========================================================================
    # EVALUATION
    # =========================================================================

    def _evaluate(self, rule: Rule, job: _Job) -> Outcome:
        state = job.state(rule.name)
        if state == EvaluationState.EVALUATING:
            raise RuleGraphError([f"Dependency cycle: {rule.name} is required by itself."])
        if state != EvaluationState.NOT_STARTED:
            return job.outcomes[rule.name]

        job.states[rule.name] = EvaluationState.EVALUATING
        logger.debug("Evaluating %s", rule.name)

        if rule.is_skipped:
            outcome = Outcome(Verdict.INCONCLUSIVE)
        elif rule.is_composite:
            outcome = self._evaluate_composite(rule, job)
        else:
            outcome = self._verify(rule, job)

        job.outcomes[rule.name] = outcome
        job.states[rule.name] = _TERMINAL_STATES[outcome.verdict]
        return outcome

    def _evaluate_composite(self, rule: Rule, job: _Job) -> Outcome:
        children = self.registry.children_of(rule, job.service_type)
        child_outcomes = [self._evaluate(child, job) for child in children]
        if is_level_aggregate(rule):
            child_outcomes = [
                level_contribution(child, outcome)
                for child, outcome in zip(children, child_outcomes)
            ]

        policy = rule.dependency_info.policy
        outcome = compose(rule.name, child_outcomes, policy)

        passed = sum(1 for o in child_outcomes if o.passed)
        job.messages[rule.name] = composite_message(rule, outcome.verdict, passed, len(children))
        logger.info(
            "%s: %d of %d child rule(s) passed under %s -> %s",
            rule.name, passed, len(children), policy.value, outcome.verdict.value,
        )
        return outcome

    def _verify(self, rule: Rule, job: _Job) -> Outcome:
        try:
            return rule.verify(job.context)
        except Exception as e:
            logger.exception("Rule %s aborted", rule.name)
            job.aborted.add(rule.name)
            detail = ResultDetail(
                rule_name=rule.name,
                url=job.context.destination,
                error_message=f"Rule aborted: {e}",
            )
            return Outcome(Verdict.INCONCLUSIVE, (detail,))

    def _to_result(self, rule: Rule, outcome: Outcome, job: _Job) -> TestResult:
        classification = classify(rule, outcome, aborted=rule.name in job.aborted)

        if rule.name in job.messages:
            error_message = job.messages[rule.name]
        elif outcome.passed:
            error_message = ""
        else:
            messages = outcome.error_messages
            error_message = messages[0] if messages else ""

        return TestResult(
            rule_name=rule.name,
            category=rule.category,
            description=rule.description,
            requirement_level=rule.requirement_level,
            verdict=outcome.verdict,
            classification=classification,
            level=rule.level,
            spec_section=rule.spec_section,
            error_message=error_message,
            details=list(outcome.details),
            job_id=job.context.job_id,
        )

    def _generate_summaries(self, results: List[TestResult]) -> List[LevelSummary]:
        """Generate level summaries from results."""
        by_level: Dict[Optional[ConformanceLevel], List[TestResult]] = {}
        for result in results:
            by_level.setdefault(result.level, []).append(result)

        order = list(ConformanceLevel)
        summaries = []
        for level in sorted(by_level, key=lambda l: order.index(l) if l in order else len(order)):
            level_results = by_level[level]

            def count(classification: Classification) -> int:
                return sum(1 for r in level_results if r.classification == classification)

            summaries.append(LevelSummary(
                level=level,
                level_name=_LEVEL_NAMES.get(level, "Other"),
                total_rules=len(level_results),
                passed=count(Classification.SUCCESS),
                errors=count(Classification.ERROR),
                warnings=count(Classification.WARNING),
                not_applicable=count(Classification.NOT_APPLICABLE),
                skipped=count(Classification.SKIP),
                recommendations=count(Classification.RECOMMENDATION),
                aborted=count(Classification.ABORTED),
            ))
        return summaries


def run_validation(
    service_root: str,
    levels: Optional[Sequence[ConformanceLevel]] = None,
    rule_names: Optional[Sequence[str]] = None,
    request_headers=None,
    service_type: ServiceType = ServiceType.READ_WRITE,
    settings: Optional[ValidatorSettings] = None,
) -> ValidationReport:
    """
    Convenience function to validate a service.

    Args:
        service_root: URL of the service root
        levels: Conformance levels to run (default: the settings' levels)
        rule_names: Explicit rules to run; overrides ``levels``
        request_headers: (name, value) pairs sent with every request
        service_type: Whether the service accepts writes
        settings: Job settings (default: from the environment)

    Returns:
        ValidationReport with all results and verdict
    """
    from odatavalidator.service import WebHelper, build_context

    settings = settings or ValidatorSettings.from_env()
    web = WebHelper(settings)
    try:
        context = build_context(service_root, web, request_headers, service_type=service_type)
        runner = ValidationRunner(settings=settings)
        return runner.run(context, levels=levels, rule_names=rule_names)
    finally:
        web.close()
