"""
TestGate: run test subsets and reduce them to one TestOutcome.

Each subset (unit, integration, e2e) runs in its own subprocess and
writes a JUnit XML report into a private temporary directory, never
into the working tree. Counts come only from those reports:

- a missing or malformed report fails the subset with total 0
- a timeout fails the subset
- total == 0 across all subsets is inconclusive, which fails the gate
- coverage below the threshold fails the gate even if every test passed
"""

import subprocess
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from tollgate.config import GateSettings
from tollgate.logging_config import logger
from tollgate.schemas import CoverageReport, SubsetOutcome, TestOutcome

from .reports import ReportError, parse_coverage, parse_junit


OUTPUT_TAIL_CHARS = 2000


@dataclass(frozen=True)
class GateConfig:
    """Which subsets to run for one gate invocation."""
    unit: bool = True
    integration: bool = True
    e2e: bool = False
    coverage: bool = False

    @classmethod
    def from_settings(cls, settings: GateSettings) -> "GateConfig":
        return cls(
            unit=settings.run_unit,
            integration=settings.run_integration,
            e2e=settings.run_e2e,
            coverage=settings.collect_coverage,
        )


def _tail(text: str) -> str:
    text = text.strip()
    if len(text) <= OUTPUT_TAIL_CHARS:
        return text
    return "..." + text[-OUTPUT_TAIL_CHARS:]


def _fill(args: Sequence[str], junit: Path, coverage: Path) -> List[str]:
    return [a.replace("{junit}", str(junit)).replace("{coverage}", str(coverage)) for a in args]


class TestGate:
    """Runs the configured test commands against one working copy."""

    __test__ = False

    def __init__(self, root: Path, settings: Optional[GateSettings] = None):
        self.root = Path(root)
        self.settings = settings or GateSettings()

    def commands(self, config: GateConfig) -> List[tuple]:
        """(name, argv template) for every requested subset, in run order."""
        requested = []
        if config.unit:
            requested.append(("unit", self.settings.unit_command))
        if config.integration:
            requested.append(("integration", self.settings.integration_command))
        if config.e2e:
            requested.append(("e2e", self.settings.e2e_command))
        return requested

    def run(self, config: Optional[GateConfig] = None) -> TestOutcome:
        config = config or GateConfig.from_settings(self.settings)
        requested = self.commands(config)

        if not requested:
            logger.warning("Test gate called with no subsets requested")
            return TestOutcome(success=False, error_text="No test subsets requested")

        subsets: List[SubsetOutcome] = []
        coverage: Optional[CoverageReport] = None
        coverage_error: Optional[str] = None

        with tempfile.TemporaryDirectory(prefix="tollgate-reports-") as report_dir:
            reports = Path(report_dir)
            coverage_path = reports / "coverage.json"

            for index, (name, template) in enumerate(requested):
                with_coverage = config.coverage and index == 0
                subsets.append(self._run_subset(name, template, reports, coverage_path, with_coverage))

            if config.coverage:
                try:
                    percent = parse_coverage(coverage_path)
                    threshold = self.settings.coverage_threshold
                    coverage = CoverageReport(
                        percent=percent,
                        threshold=threshold,
                        meets_threshold=percent >= threshold,
                    )
                    if not coverage.meets_threshold:
                        coverage_error = f"Coverage {percent:.1f}% is below threshold {threshold:.1f}%"
                except ReportError as e:
                    coverage_error = str(e)

        return self._merge(subsets, coverage, coverage_error)

    def _run_subset(
        self,
        name: str,
        template: Sequence[str],
        reports: Path,
        coverage_path: Path,
        with_coverage: bool,
    ) -> SubsetOutcome:
        junit_path = reports / f"{name}.xml"
        argv = _fill(template, junit_path, coverage_path)
        if with_coverage:
            argv += _fill(self.settings.coverage_args, junit_path, coverage_path)

        logger.info(f"Running {name} tests: {' '.join(argv)}")
        start = time.monotonic()
        try:
            proc = subprocess.run(
                argv,
                cwd=str(self.root),
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.settings.timeout,
            )
        except subprocess.TimeoutExpired:
            duration = int((time.monotonic() - start) * 1000)
            logger.error(f"{name} tests timed out after {self.settings.timeout:.0f}s")
            return SubsetOutcome(
                name=name,
                duration_ms=duration,
                error_text=f"{name} tests timed out after {self.settings.timeout:.0f}s",
            )
        except OSError as e:
            logger.error(f"Could not start {name} tests: {e}")
            return SubsetOutcome(name=name, error_text=f"Could not start {name} tests: {e}")

        duration = int((time.monotonic() - start) * 1000)
        output = _tail("\n".join(part for part in (proc.stdout, proc.stderr) if part))

        try:
            counts = parse_junit(junit_path)
        except ReportError as e:
            logger.error(f"{name} tests produced no usable report: {e}")
            return SubsetOutcome(
                name=name,
                duration_ms=duration,
                exit_code=proc.returncode,
                error_text=f"{e}\n{output}".strip(),
            )

        total = counts.passed + counts.failed
        exit_ok = proc.returncode in self.settings.ok_exit_codes or counts.failed > 0
        error_text = None
        if counts.failed:
            error_text = output or f"{counts.failed} {name} test(s) failed"
        elif not exit_ok:
            error_text = f"{name} tests exited with code {proc.returncode}\n{output}".strip()

        outcome = SubsetOutcome(
            name=name,
            success=exit_ok and counts.failed == 0,
            passed=counts.passed,
            failed=counts.failed,
            skipped=counts.skipped,
            total=total,
            duration_ms=duration,
            exit_code=proc.returncode,
            parsed=True,
            error_text=error_text,
        )
        logger.info(f"{name}: {outcome.passed} passed, {outcome.failed} failed, {outcome.skipped} skipped")
        return outcome

    def _merge(
        self,
        subsets: List[SubsetOutcome],
        coverage: Optional[CoverageReport],
        coverage_error: Optional[str],
    ) -> TestOutcome:
        passed = sum(s.passed for s in subsets)
        failed = sum(s.failed for s in subsets)
        total = sum(s.total for s in subsets)
        duration = sum(s.duration_ms for s in subsets)

        errors = [f"[{s.name}] {s.error_text}" for s in subsets if s.error_text]
        if total == 0:
            errors.append("No tests were run (inconclusive)")
        if coverage_error:
            errors.append(coverage_error)

        success = (
            total > 0
            and failed == 0
            and all(s.parsed and s.success for s in subsets)
            and coverage_error is None
        )
        if success:
            logger.info(f"Test gate passed: {passed}/{total}")
        else:
            logger.warning(f"Test gate failed: {failed} failed of {total}")

        return TestOutcome(
            success=success,
            passed=passed,
            failed=failed,
            total=total,
            duration_ms=duration,
            error_text="\n".join(errors) or None,
            coverage=coverage,
            subsets=subsets,
        )
