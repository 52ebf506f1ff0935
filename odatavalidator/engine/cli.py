"""
OData Conformance Validator CLI.

Command-line interface for running conformance rules against an OData
service.

Usage:
    odata-validator https://host/service
    odata-validator https://host/service --level intermediate --format markdown
    odata-validator https://host/service --rule Minimal.Conformance.1001 --output report.csv -f csv
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from odatavalidator import __version__
from odatavalidator.registry import RuleGraphError, RuleNotApplicableError, RuleNotFoundError

from .report import generate_report, print_summary
from .runner import run_validation
from .settings import ValidatorSettings, parse_levels
from .types import ServiceType


def parse_header(text: str) -> Tuple[str, str]:
    """Split a ``Name: value`` header argument."""
    name, sep, value = text.partition(":")
    name = name.strip()
    if not sep or not name:
        raise ValueError(f"Header must look like 'Name: value', got {text!r}")
    return name, value.strip()


def main(args: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Returns:
        Exit code: 0 if conformant, 1 if not conformant, 2 if error
    """
    parser = argparse.ArgumentParser(
        prog="odata-validator",
        description="OData Conformance Validator - Check a service against OData conformance rules",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s https://host/service
    %(prog)s https://host/service --level minimal --level intermediate
    %(prog)s https://host/service --format markdown --output report.md
    %(prog)s https://host/service --service-type readOnly --quiet
    %(prog)s https://host/service -H 'Authorization: Bearer TOKEN'

Exit codes:
    0 - Service conforms (no errors)
    1 - Service does NOT conform
    2 - Error running validation
        """,
    )

    parser.add_argument(
        "service_root",
        type=str,
        help="URL of the OData service root",
    )

    parser.add_argument(
        "--level", "-l",
        action="append",
        choices=["minimal", "intermediate", "advanced"],
        default=None,
        help="Conformance level to check; repeatable (default: minimal)",
    )

    parser.add_argument(
        "--rule", "-r",
        action="append",
        default=None,
        help="Run only this rule and its dependencies; repeatable",
    )

    parser.add_argument(
        "--header", "-H",
        action="append",
        default=[],
        help="Extra request header 'Name: value'; repeatable",
    )

    parser.add_argument(
        "--service-type",
        choices=[t.value for t in ServiceType],
        default=ServiceType.READ_WRITE.value,
        help="Whether the service accepts writes (default: readWrite)",
    )

    parser.add_argument(
        "--format", "-f",
        type=str,
        choices=["text", "markdown", "json", "csv"],
        default="text",
        help="Output format (default: text)",
    )

    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Output file (default: stdout)",
    )

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Only output the verdict, no details",
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log every request and rule",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parsed = parser.parse_args(args)

    logging.basicConfig(
        level=logging.DEBUG if parsed.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        headers = [parse_header(h) for h in parsed.header]
        settings = ValidatorSettings.from_env()
        levels = parse_levels(parsed.level) if parsed.level else None
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    try:
        report = run_validation(
            parsed.service_root,
            levels=levels,
            rule_names=parsed.rule,
            request_headers=headers,
            service_type=ServiceType(parsed.service_type),
            settings=settings,
        )
    except (RuleNotFoundError, RuleNotApplicableError, RuleGraphError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except Exception as e:
        print(f"Error running validation: {e}", file=sys.stderr)
        return 2

    if parsed.quiet:
        if report.is_conformant:
            print("CONFORMANT")
        else:
            print("NOT CONFORMANT")
    else:
        output = generate_report(report, format=parsed.format)

        if parsed.output:
            output_path = Path(parsed.output)
            output_path.write_text(output, encoding="utf-8")
            print(f"Report written to: {output_path}")
            print()
            print_summary(report)
        else:
            print(output)

    return 0 if report.is_conformant else 1


if __name__ == "__main__":
    sys.exit(main())
