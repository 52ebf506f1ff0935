"""
Tests for report generation.
"""

import csv
import io
import json

import pytest

from odatavalidator.engine.report import (
    ROW_COLUMNS,
    generate_report,
    generate_verdict,
    print_summary,
    report_rows,
)
from odatavalidator.engine.types import (
    Classification,
    ConformanceLevel,
    LevelSummary,
    RequirementLevel,
    ResultDetail,
    TestResult,
    ValidationReport,
    Verdict,
)

ROOT = "http://example.org/odata"


def result(name, classification, verdict, details=(), message="", requirement=RequirementLevel.MUST):
    return TestResult(
        rule_name=name,
        category="conformance",
        description=f"Description of {name}",
        requirement_level=requirement,
        verdict=verdict,
        classification=classification,
        level=ConformanceLevel.MINIMAL,
        error_message=message,
        details=list(details),
        job_id="job-1",
    )


@pytest.fixture
def report():
    failing = ResultDetail(
        rule_name="Minimal.Conformance.1004",
        url=ROOT,
        http_method="GET",
        request_headers="Accept: application/json",
        status_code=200,
        response_payload="{}",
        error_message="Can not get the OData-Version header from response headers.",
    )
    unreachable = ResultDetail(
        rule_name="Minimal.Conformance.100603",
        url=ROOT + "/?$find=*",
        http_method="GET",
        error_message="No response returned from above URI.",
    )
    fetched = ResultDetail(rule_name="Minimal.Conformance.1001", url=ROOT, http_method="GET", status_code=200)

    r = ValidationReport(service_root=ROOT, timestamp="2024-01-01T00:00:00+00:00", job_id="job-1",
                         odata_version="4.0")
    r.results = [
        result("Minimal.Conformance.1001", Classification.SUCCESS, Verdict.PASS, [fetched]),
        result("Minimal.Conformance.1004", Classification.ERROR, Verdict.FAIL, [failing],
               message=failing.error_message),
        result("Minimal.Conformance.100603", Classification.WARNING, Verdict.FAIL, [unreachable],
               message=unreachable.error_message, requirement=RequirementLevel.SHOULD),
        result("Minimal.Conformance.1026", Classification.NOT_APPLICABLE, Verdict.INCONCLUSIVE,
               message="0 of 2 derived rules pass in the validation."),
    ]
    r.level_summaries = [LevelSummary(
        level=ConformanceLevel.MINIMAL, level_name="Minimal Conformance",
        total_rules=4, passed=1, errors=1, warnings=1, not_applicable=1, skipped=0,
    )]
    r.is_conformant = False
    r.verdict_text = generate_verdict(r)
    return r


class TestVerdict:
    """Tests for the verdict paragraph."""

    def test_counts(self, report):
        text = generate_verdict(report)
        assert text.startswith(f"The service at {ROOT} does not conform")
        assert "1 of 4 rules passed; 1 failed a MUST requirement, 1 failed a SHOULD requirement" in text
        assert "1 could not be verified" in text

    def test_conformant(self, report):
        report.is_conformant = True
        assert f"The service at {ROOT} conforms" in generate_verdict(report)

    def test_aborted_listed(self, report):
        report.results.append(result("Boom", Classification.ABORTED, Verdict.INCONCLUSIVE))
        assert generate_verdict(report).endswith("Aborted rules: Boom")


class TestRows:
    """Tests for the row-per-detail view."""

    def test_one_row_per_detail(self, report):
        rows = report_rows(report)
        assert [row["rule_name"] for row in rows] == [
            "Minimal.Conformance.1001",
            "Minimal.Conformance.1004",
            "Minimal.Conformance.100603",
            "Minimal.Conformance.1026",
        ]
        assert all(set(row) == set(ROW_COLUMNS) for row in rows)

    def test_missing_status_is_blank(self, report):
        rows = report_rows(report)
        assert rows[2]["status_code"] == ""

    def test_result_without_details(self, report):
        row = report_rows(report)[3]
        assert row["url"] == ""
        assert row["error_message"] == "0 of 2 derived rules pass in the validation."
        assert row["classification"] == "notApplicable"


class TestFormats:
    """Tests for each output format."""

    def test_text(self, report):
        text = generate_report(report, format="text")
        assert "ODATA CONFORMANCE REPORT" in text
        assert "[FAIL] NOT CONFORMANT" in text
        assert "ERROR           Minimal.Conformance.1004" in text
        assert f"GET {ROOT}/?$find=* [-]" in text

    def test_markdown(self, report):
        md = generate_report(report, format="markdown")
        assert "# OData Conformance Report" in md
        assert "❌ **NOT CONFORMANT**" in md
        assert "### Minimal Conformance ❌" in md
        assert "### Minimal.Conformance.1004 (error)" in md
        assert f"- `GET {ROOT}/?$find=*` → no response" in md

    def test_json(self, report):
        data = json.loads(generate_report(report, format="json"))
        assert data["is_conformant"] is False
        assert data["total_errors"] == 1
        assert data["results"][1]["classification"] == "error"
        assert data["results"][1]["details"][0]["status_code"] == 200
        assert data["level_summaries"][0]["level"] == "minimal"

    def test_csv(self, report):
        rows = list(csv.DictReader(io.StringIO(generate_report(report, format="csv"))))
        assert len(rows) == 4
        assert rows[1]["error_message"] == "Can not get the OData-Version header from response headers."
        assert rows[1]["status_code"] == "200"

    def test_unknown_format(self, report):
        with pytest.raises(ValueError, match="Unknown format"):
            generate_report(report, format="yaml")


class TestPrintSummary:
    def test_prints_verdict(self, report, capsys):
        print_summary(report)
        out = capsys.readouterr().out
        assert "NOT CONFORMANT" in out
        assert "Errors: 1" in out
