"""
Tests for the engine's core types.
"""

import pytest

from odatavalidator.engine.types import (
    Classification,
    CombinationPolicy,
    ConformanceLevel,
    DependencyInfo,
    LevelSummary,
    Outcome,
    RequirementLevel,
    ResultDetail,
    RuleRelationship,
    TestResult,
    ValidationReport,
    Verdict,
)
from odatavalidator.service.web import Response


def make_result(name, classification, verdict=Verdict.PASS, level=ConformanceLevel.MINIMAL):
    return TestResult(
        rule_name=name,
        category="conformance",
        description=f"rule {name}",
        requirement_level=RequirementLevel.MUST,
        verdict=verdict,
        classification=classification,
        level=level,
    )


class TestResultDetail:
    """Tests for ResultDetail."""

    def test_from_response(self):
        """Status, headers and payload are copied from the response."""
        response = Response(200, {"OData-Version": "4.0"}, "{}")
        d = ResultDetail.from_response("R", "http://x", "GET", "Accept: application/json", response)

        assert d.status_code == 200
        assert d.response_headers == "OData-Version: 4.0"
        assert d.response_payload == "{}"
        assert not d.has_error

    def test_from_missing_response(self):
        """Without a response the status code stays empty."""
        d = ResultDetail.from_response("R", "http://x", "GET", "", None, error_message="No response")
        assert d.status_code is None
        assert d.has_error

    def test_retag_copies(self):
        """Re-tagging returns a new detail and leaves the original alone."""
        original = ResultDetail(rule_name="C", error_message="x")
        copy = original.retag("P")

        assert copy.rule_name == "P"
        assert original.rule_name == "C"
        assert copy.error_message == "x"

    def test_immutable(self):
        """Details cannot be modified in place."""
        d = ResultDetail(rule_name="C")
        with pytest.raises(AttributeError):
            d.rule_name = "P"


class TestOutcome:
    """Tests for Outcome."""

    def test_fail_requires_error_detail(self):
        """A failing outcome must explain itself."""
        with pytest.raises(ValueError):
            Outcome(Verdict.FAIL)
        with pytest.raises(ValueError):
            Outcome(Verdict.FAIL, (ResultDetail(rule_name="R"),))

    def test_details_normalised_to_tuple(self):
        """Lists of details are stored as tuples."""
        outcome = Outcome(Verdict.PASS, [ResultDetail(rule_name="R")])
        assert isinstance(outcome.details, tuple)

    def test_error_messages(self):
        """Only details with an error contribute messages."""
        outcome = Outcome.failed_with([
            ResultDetail(rule_name="R"),
            ResultDetail(rule_name="R", error_message="broken"),
        ])
        assert outcome.error_messages == ["broken"]

    def test_owned_by(self):
        """owned_by re-tags every detail."""
        outcome = Outcome.inconclusive_with([ResultDetail(rule_name="A"), ResultDetail(rule_name="B")])
        owned = outcome.owned_by("P")
        assert {d.rule_name for d in owned.details} == {"P"}
        assert owned.verdict == Verdict.INCONCLUSIVE


class TestDependencyInfo:
    """Tests for DependencyInfo."""

    def test_duplicate_names_rejected(self):
        """A composite may not name the same child twice."""
        with pytest.raises(ValueError, match="Duplicate"):
            DependencyInfo(CombinationPolicy.ALL_PASS, RuleRelationship.SUB_RULE, ("A", "B", "A"))

    def test_names_normalised_to_tuple(self):
        info = DependencyInfo(CombinationPolicy.ALL_PASS, RuleRelationship.SUB_RULE, ["A", "B"])
        assert info.rule_names == ("A", "B")


class TestValidationReport:
    """Tests for ValidationReport accessors."""

    def test_errors_include_aborted(self):
        """Errors and aborted rules both count against conformance."""
        report = ValidationReport(service_root="http://x", timestamp="t", job_id="j")
        report.results = [
            make_result("A", Classification.SUCCESS),
            make_result("B", Classification.ERROR, Verdict.FAIL),
            make_result("C", Classification.WARNING, Verdict.FAIL),
            make_result("D", Classification.ABORTED, Verdict.INCONCLUSIVE),
        ]

        assert report.total_rules == 4
        assert report.total_errors == 2
        assert [r.rule_name for r in report.get_errors()] == ["B", "D"]
        assert report.get_result("C").classification == Classification.WARNING
        assert report.get_result("Z") is None

    def test_results_by_level(self):
        report = ValidationReport(service_root="http://x", timestamp="t", job_id="j")
        report.results = [
            make_result("A", Classification.SUCCESS, level=ConformanceLevel.MINIMAL),
            make_result("B", Classification.SUCCESS, level=ConformanceLevel.ADVANCED),
        ]
        grouped = report.results_by_level()
        assert [r.rule_name for r in grouped[ConformanceLevel.ADVANCED]] == ["B"]


class TestLevelSummary:
    """Tests for LevelSummary."""

    def test_pass_rate_ignores_unverified(self):
        summary = LevelSummary(
            level=ConformanceLevel.MINIMAL, level_name="Minimal Conformance",
            total_rules=4, passed=1, errors=1, warnings=0, not_applicable=1, skipped=1,
        )
        assert summary.pass_rate == 0.5

    def test_pass_rate_nothing_applicable(self):
        summary = LevelSummary(
            level=None, level_name="Other",
            total_rules=1, passed=0, errors=0, warnings=0, not_applicable=0, skipped=1,
        )
        assert summary.pass_rate == 1.0
