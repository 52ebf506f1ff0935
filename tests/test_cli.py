"""
Tests for the command-line interface.
"""

import json

import pytest

from odatavalidator.engine import cli
from odatavalidator.engine.types import (
    Classification,
    ConformanceLevel,
    RequirementLevel,
    ServiceType,
    TestResult,
    ValidationReport,
    Verdict,
)
from odatavalidator.registry import RuleNotApplicableError, RuleNotFoundError

ROOT = "http://example.org/odata"


def make_report(conformant=True):
    classification = Classification.SUCCESS if conformant else Classification.ERROR
    verdict = Verdict.PASS if conformant else Verdict.FAIL
    report = ValidationReport(service_root=ROOT, timestamp="t", job_id="job-1")
    report.results = [TestResult(
        rule_name="Minimal.Conformance.1001",
        category="conformance",
        description="1. MUST publish a service document",
        requirement_level=RequirementLevel.MUST,
        verdict=verdict,
        classification=classification,
        level=ConformanceLevel.MINIMAL,
    )]
    report.is_conformant = conformant
    report.verdict_text = "verdict"
    return report


@pytest.fixture
def fake_run(monkeypatch):
    """Replace run_validation; records its arguments."""
    calls = []

    def install(report=None, error=None):
        def run_validation(service_root, **kwargs):
            calls.append((service_root, kwargs))
            if error is not None:
                raise error
            return report or make_report()
        monkeypatch.setattr(cli, "run_validation", run_validation)
        return calls

    return install


class TestMain:
    """Tests for cli.main."""

    def test_conformant_exit_zero(self, fake_run, capsys):
        calls = fake_run(make_report(True))
        assert cli.main([ROOT]) == 0

        service_root, kwargs = calls[0]
        assert service_root == ROOT
        assert kwargs["levels"] is None
        assert kwargs["service_type"] == ServiceType.READ_WRITE
        assert "ODATA CONFORMANCE REPORT" in capsys.readouterr().out

    def test_not_conformant_exit_one(self, fake_run):
        fake_run(make_report(False))
        assert cli.main([ROOT, "--quiet"]) == 1

    def test_options_forwarded(self, fake_run):
        calls = fake_run()
        cli.main([
            ROOT,
            "--level", "minimal", "-l", "advanced",
            "--rule", "Minimal.Conformance.1001",
            "-H", "Authorization: Bearer abc",
            "--service-type", "readOnly",
        ])

        _, kwargs = calls[0]
        assert kwargs["levels"] == (ConformanceLevel.MINIMAL, ConformanceLevel.ADVANCED)
        assert kwargs["rule_names"] == ["Minimal.Conformance.1001"]
        assert kwargs["request_headers"] == [("Authorization", "Bearer abc")]
        assert kwargs["service_type"] == ServiceType.READ_ONLY

    def test_bad_header_exit_two(self, fake_run, capsys):
        calls = fake_run()
        assert cli.main([ROOT, "-H", "no-colon"]) == 2
        assert calls == []
        assert "Name: value" in capsys.readouterr().err

    def test_unknown_rule_exit_two(self, fake_run, capsys):
        fake_run(error=RuleNotFoundError("Nope"))
        assert cli.main([ROOT, "--rule", "Nope"]) == 2
        assert "Rule not found: Nope" in capsys.readouterr().err

    def test_rule_not_applicable_exit_two(self, fake_run, capsys):
        fake_run(error=RuleNotApplicableError(["Advanced.Conformance.101101"], ServiceType.READ_ONLY))
        assert cli.main([ROOT, "--rule", "Advanced.Conformance.101101", "--service-type", "readOnly"]) == 2
        assert "not applicable to a readOnly service: Advanced.Conformance.101101" in capsys.readouterr().err

    def test_unexpected_error_exit_two(self, fake_run, capsys):
        fake_run(error=RuntimeError("boom"))
        assert cli.main([ROOT]) == 2
        assert "Error running validation: boom" in capsys.readouterr().err

    def test_bad_environment_exit_two(self, fake_run, monkeypatch):
        fake_run()
        monkeypatch.setenv("ODATA_VALIDATOR_TIMEOUT", "soon")
        assert cli.main([ROOT]) == 2

    def test_output_file(self, fake_run, tmp_path, capsys):
        fake_run()
        target = tmp_path / "report.json"

        assert cli.main([ROOT, "--format", "json", "--output", str(target)]) == 0

        data = json.loads(target.read_text(encoding="utf-8"))
        assert data["service_root"] == ROOT
        assert f"Report written to: {target}" in capsys.readouterr().out

    def test_quiet(self, fake_run, capsys):
        fake_run()
        cli.main([ROOT, "-q"])
        assert capsys.readouterr().out.strip() == "CONFORMANT"

    def test_invalid_level_rejected_by_parser(self, fake_run):
        fake_run()
        with pytest.raises(SystemExit):
            cli.main([ROOT, "--level", "expert"])

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            cli.main(["--version"])
        assert exc.value.code == 0
        assert "odata-validator 0.1.0" in capsys.readouterr().out


class TestParseHeader:
    """Tests for parse_header."""

    def test_value_with_colon(self):
        assert cli.parse_header("Host: example.org:8080") == ("Host", "example.org:8080")

    @pytest.mark.parametrize("text", ["no-colon", ": value"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            cli.parse_header(text)
