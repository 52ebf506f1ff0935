"""
OData Conformance Report Generation.

This module renders a ValidationReport as text, Markdown, JSON or CSV,
and writes the one-paragraph verdict. Every format lists the probes of
each rule, one row per result detail, under the rule that owns them.
"""

import csv
import io
import json
from enum import Enum
from typing import Any, Dict, List

from .types import Classification, TestResult, ValidationReport

# Columns of the row-per-detail report
ROW_COLUMNS = [
    "rule_name",
    "classification",
    "verdict",
    "url",
    "http_method",
    "request_headers",
    "status_code",
    "response_payload",
    "error_message",
]

_ICONS = {
    Classification.SUCCESS: "✅",
    Classification.ERROR: "❌",
    Classification.WARNING: "⚠️",
    Classification.RECOMMENDATION: "💡",
    Classification.NOT_APPLICABLE: "➖",
    Classification.ABORTED: "💥",
    Classification.PENDING: "⏳",
    Classification.SKIP: "⏭️",
}


def generate_verdict(report: ValidationReport) -> str:
    """
    Generate the one-paragraph verdict for a validation report.

    This follows the template:
        The service at ⟨root⟩ ⟨conforms / does not conform⟩ to the checked
        OData conformance rules. ⟨n⟩ of ⟨m⟩ rules passed; ⟨e⟩ failed a MUST
        requirement, ⟨w⟩ failed a SHOULD requirement and ⟨x⟩ could not be
        verified.
    """
    conformance = "conforms" if report.is_conformant else "does not conform"
    passed = len(report.get_by_classification(Classification.SUCCESS))
    errors = len(report.get_by_classification(Classification.ERROR))
    warnings = len(report.get_by_classification(Classification.WARNING))
    unverified = sum(
        len(report.get_by_classification(c))
        for c in (Classification.NOT_APPLICABLE, Classification.SKIP)
    )

    paragraph = (
        f"The service at {report.service_root} {conformance} to the checked OData conformance rules. "
        f"{passed} of {report.total_rules} rules passed; "
        f"{errors} failed a MUST requirement, "
        f"{warnings} failed a SHOULD requirement and "
        f"{unverified} could not be verified."
    )

    aborted = report.get_by_classification(Classification.ABORTED)
    if aborted:
        names = ", ".join(r.rule_name for r in aborted)
        paragraph += f"\n\nAborted rules: {names}"

    return paragraph


def result_rows(result: TestResult) -> List[Dict[str, Any]]:
    """One row per detail; a result without details still gets one row."""
    base = {
        "rule_name": result.rule_name,
        "classification": result.classification.value,
        "verdict": result.verdict.value,
    }
    if not result.details:
        row = dict.fromkeys(ROW_COLUMNS, "")
        row.update(base)
        row["error_message"] = result.error_message
        return [row]

    rows = []
    for detail in result.details:
        row = dict(base)
        row.update({
            "url": detail.url,
            "http_method": detail.http_method,
            "request_headers": detail.request_headers,
            "status_code": "" if detail.status_code is None else detail.status_code,
            "response_payload": detail.response_payload,
            "error_message": detail.error_message,
        })
        rows.append(row)
    return rows


def report_rows(report: ValidationReport) -> List[Dict[str, Any]]:
    rows = []
    for result in report.results:
        rows.extend(result_rows(result))
    return rows


def generate_report(report: ValidationReport, format: str = "text") -> str:
    """
    Generate a full validation report in the specified format.

    Args:
        report: The validation report to format
        format: Output format ("text", "markdown", "json", "csv")

    Returns:
        Formatted report string
    """
    if format == "markdown":
        return _generate_markdown_report(report)
    elif format == "text":
        return _generate_text_report(report)
    elif format == "json":
        return _generate_json_report(report)
    elif format == "csv":
        return _generate_csv_report(report)
    else:
        raise ValueError(f"Unknown format: {format}")


def _generate_markdown_report(report: ValidationReport) -> str:
    """Generate a Markdown-formatted report."""
    lines = []

    lines.append("# OData Conformance Report")
    lines.append("")
    lines.append(f"**Service:** `{report.service_root}`")
    lines.append(f"**Timestamp:** {report.timestamp}")
    lines.append(f"**Job:** {report.job_id}")
    if report.odata_version:
        lines.append(f"**OData Version:** {report.odata_version}")
    lines.append("")

    lines.append("## Verdict")
    lines.append("")
    if report.is_conformant:
        lines.append("✅ **CONFORMANT**")
    else:
        lines.append("❌ **NOT CONFORMANT**")
    lines.append("")
    lines.append(report.verdict_text)
    lines.append("")

    lines.append("## Level Results")
    lines.append("")
    grouped = report.results_by_level()
    for summary in report.level_summaries:
        status_icon = "✅" if summary.errors == 0 and summary.aborted == 0 else "❌"
        lines.append(f"### {summary.level_name} {status_icon}")
        lines.append("")
        lines.append(f"- Passed: {summary.passed}/{summary.total_rules}")
        lines.append(f"- Errors: {summary.errors}")
        lines.append(f"- Warnings: {summary.warnings}")
        if summary.recommendations:
            lines.append(f"- Recommendations: {summary.recommendations}")
        if summary.not_applicable:
            lines.append(f"- Not applicable: {summary.not_applicable}")
        if summary.skipped:
            lines.append(f"- Skipped: {summary.skipped}")
        if summary.aborted:
            lines.append(f"- Aborted: {summary.aborted}")
        lines.append("")

        for result in grouped.get(summary.level, []):
            icon = _ICONS.get(result.classification, "➖")
            lines.append(f"- {icon} **{result.rule_name}**: {result.description}")
        lines.append("")

    lines.append("## Details")
    lines.append("")
    for result in report.results:
        if result.passed or result.classification == Classification.SKIP:
            continue
        lines.append(f"### {result.rule_name} ({result.classification.value})")
        lines.append("")
        lines.append(f"**Description:** {result.description}")
        if result.error_message:
            lines.append("")
            lines.append(f"**Message:** {result.error_message}")
        lines.append("")
        for detail in result.details:
            status = detail.status_code if detail.status_code is not None else "no response"
            target = f"{detail.http_method} {detail.url}".strip()
            lines.append(f"- `{target}` → {status}")
            if detail.error_message:
                lines.append(f"  - {detail.error_message}")
        lines.append("")

    return "\n".join(lines)


def _generate_text_report(report: ValidationReport) -> str:
    """Generate a plain-text report."""
    lines = []

    lines.append("=" * 60)
    lines.append("ODATA CONFORMANCE REPORT")
    lines.append("=" * 60)
    lines.append("")
    lines.append(f"Service:    {report.service_root}")
    lines.append(f"Timestamp:  {report.timestamp}")
    lines.append(f"Job:        {report.job_id}")
    if report.odata_version:
        lines.append(f"OData Ver:  {report.odata_version}")
    lines.append("")

    lines.append("-" * 60)
    lines.append("VERDICT")
    lines.append("-" * 60)
    if report.is_conformant:
        lines.append("[PASS] CONFORMANT")
    else:
        lines.append("[FAIL] NOT CONFORMANT")
    lines.append("")
    lines.append(report.verdict_text)
    lines.append("")

    lines.append("-" * 60)
    lines.append("SUMMARY")
    lines.append("-" * 60)
    for summary in report.level_summaries:
        status = "PASS" if summary.errors == 0 and summary.aborted == 0 else "FAIL"
        lines.append(f"[{status}] {summary.level_name}")
        lines.append(f"       Passed: {summary.passed}/{summary.total_rules}, "
                     f"Errors: {summary.errors}, Warnings: {summary.warnings}, "
                     f"Not applicable: {summary.not_applicable}, Skipped: {summary.skipped}")
    lines.append("")

    lines.append("-" * 60)
    lines.append("RESULTS")
    lines.append("-" * 60)
    for result in report.results:
        lines.append(f"{result.classification.value.upper():<15} {result.rule_name}")
        if result.error_message:
            lines.append(f"{'':<15} {result.error_message}")
        for detail in result.details:
            if not detail.url and not detail.error_message:
                continue
            status = detail.status_code if detail.status_code is not None else "-"
            lines.append(f"{'':<15}   {detail.http_method or '-'} {detail.url} [{status}]")
            if detail.error_message:
                lines.append(f"{'':<15}     {detail.error_message}")
    lines.append("")

    return "\n".join(lines)


def serialize(obj: Any) -> Any:
    """Convert report objects to JSON-compatible values."""
    if isinstance(obj, Enum):
        return obj.value
    elif hasattr(obj, "__dict__"):
        return {k: serialize(v) for k, v in obj.__dict__.items()}
    elif isinstance(obj, dict):
        return {str(k): serialize(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [serialize(v) for v in obj]
    return obj


def _generate_json_report(report: ValidationReport) -> str:
    """Generate a JSON report."""
    data = {
        "service_root": report.service_root,
        "timestamp": report.timestamp,
        "job_id": report.job_id,
        "odata_version": report.odata_version,
        "is_conformant": report.is_conformant,
        "total_rules": report.total_rules,
        "total_errors": report.total_errors,
        "verdict": report.verdict_text,
        "level_summaries": [serialize(s) for s in report.level_summaries],
        "results": [serialize(r) for r in report.results],
    }
    return json.dumps(data, indent=2)


def _generate_csv_report(report: ValidationReport) -> str:
    """Generate a CSV report, one row per result detail."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=ROW_COLUMNS, lineterminator="\n")
    writer.writeheader()
    writer.writerows(report_rows(report))
    return buffer.getvalue()


def print_summary(report: ValidationReport) -> None:
    """Print a brief summary to stdout."""
    print()
    print("=" * 50)
    if report.is_conformant:
        print("✅ CONFORMANT")
    else:
        print("❌ NOT CONFORMANT")
    print("=" * 50)
    print()
    print(f"Total: {report.total_rules} rules")
    print(f"Passed: {len(report.get_by_classification(Classification.SUCCESS))}")
    print(f"Errors: {report.total_errors}")
    print()
    print("Verdict:")
    print(report.verdict_text)
    print()
