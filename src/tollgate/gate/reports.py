"""
Structured report parsing for the Test Gate.

Only structured reports are trusted: a JUnit XML file for test counts
and a coverage JSON file for the coverage percentage. Anything that
does not parse is reported as such; no counts are ever guessed from
console output.
"""

import json
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


class ReportError(Exception):
    """A report is missing or malformed."""


@dataclass(frozen=True)
class JUnitCounts:
    tests: int
    failures: int
    errors: int
    skipped: int

    @property
    def failed(self) -> int:
        return self.failures + self.errors

    @property
    def passed(self) -> int:
        return max(self.tests - self.failed - self.skipped, 0)


def _int_attr(element: ET.Element, name: str) -> int:
    value = element.get(name, "0") or "0"
    try:
        return int(float(value))
    except ValueError as e:
        raise ReportError(f"<{element.tag}> has non-numeric {name}={value!r}") from e


def parse_junit(path: Path) -> JUnitCounts:
    """
    Sum the counts of every <testsuite> in a JUnit XML report.

    Accepts a <testsuites> root or a single <testsuite> root.

    Raises:
        ReportError: If the file is missing, is not XML, or has no suites
    """
    if not path.is_file():
        raise ReportError(f"JUnit report not written: {path.name}")
    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as e:
        raise ReportError(f"Malformed JUnit report: {e}") from e

    if root.tag == "testsuite":
        suites = [root]
    elif root.tag == "testsuites":
        suites = root.findall("testsuite")
    else:
        raise ReportError(f"Unexpected JUnit root element <{root.tag}>")

    if not suites:
        raise ReportError("JUnit report contains no test suites")

    tests = failures = errors = skipped = 0
    for suite in suites:
        tests += _int_attr(suite, "tests")
        failures += _int_attr(suite, "failures")
        errors += _int_attr(suite, "errors")
        skipped += _int_attr(suite, "skipped")
    return JUnitCounts(tests=tests, failures=failures, errors=errors, skipped=skipped)


def parse_coverage(path: Path) -> float:
    """
    Read `totals.percent_covered` from a coverage JSON report.

    Raises:
        ReportError: If the file is missing or lacks the total
    """
    if not path.is_file():
        raise ReportError(f"Coverage report not written: {path.name}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ReportError(f"Malformed coverage report: {e}") from e

    percent: Optional[object] = None
    if isinstance(data, dict) and isinstance(data.get("totals"), dict):
        percent = data["totals"].get("percent_covered")
    if not isinstance(percent, (int, float)):
        raise ReportError("Coverage report has no totals.percent_covered")
    return float(percent)
