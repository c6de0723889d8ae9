"""
Report generation for escrow scenario runs.
"""

import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


@dataclass
class Divergence:
    """An observed value that differs from what the scenario expected."""
    field: str
    expected: Any
    actual: Any
    scenario_name: str
    step: Optional[int] = None
    details: Optional[str] = None


@dataclass
class ScenarioResult:
    """Result of a single scenario."""
    scenario_name: str
    suite_name: str
    passed: bool
    execution_time_ms: float
    divergences: List[Divergence] = field(default_factory=list)
    state_digest: Optional[str] = None
    error: Optional[str] = None


@dataclass
class SuiteResult:
    """Result of a scenario suite (one YAML file)."""
    suite_name: str
    total_tests: int
    passed_tests: int
    failed_tests: int
    skipped_tests: int
    execution_time_ms: float
    test_results: List[ScenarioResult]

    @property
    def pass_rate(self) -> float:
        if self.total_tests == 0:
            return 0.0
        return self.passed_tests / self.total_tests * 100


@dataclass
class ScenarioReport:
    """Complete scenario run report."""
    timestamp: str
    total_suites: int
    total_tests: int
    total_passed: int
    total_failed: int
    total_divergences: int
    execution_time_ms: float
    suite_results: List[SuiteResult]
    divergences: List[Divergence]


class ReportGenerator:
    """Generates scenario run reports."""

    def __init__(self, result_dir: Optional[str] = None):
        """
        Initialize report generator.

        Args:
            result_dir: Directory to write reports to; None disables file output
        """
        self.result_dir = result_dir
        if result_dir:
            os.makedirs(result_dir, exist_ok=True)

    def generate_report(
        self,
        suite_results: List[SuiteResult],
        execution_time_ms: float,
    ) -> ScenarioReport:
        """
        Aggregate suite results into a report.

        Args:
            suite_results: Results from all suites
            execution_time_ms: Total execution time

        Returns:
            ScenarioReport object
        """
        total_tests = sum(s.total_tests for s in suite_results)
        total_passed = sum(s.passed_tests for s in suite_results)
        total_failed = sum(s.failed_tests for s in suite_results)

        divergences = []
        for suite in suite_results:
            for test in suite.test_results:
                divergences.extend(test.divergences)

        return ScenarioReport(
            timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            total_suites=len(suite_results),
            total_tests=total_tests,
            total_passed=total_passed,
            total_failed=total_failed,
            total_divergences=len(divergences),
            execution_time_ms=execution_time_ms,
            suite_results=suite_results,
            divergences=divergences,
        )

    def write_json_report(
        self,
        report: ScenarioReport,
        filename: str = "scenario-report.json",
    ) -> Optional[str]:
        """Write report as JSON file; returns its path."""
        if not self.result_dir:
            return None
        path = os.path.join(self.result_dir, filename)

        with open(path, "w") as f:
            json.dump(self._report_to_dict(report), f, indent=2)

        return path

    def write_summary(
        self,
        report: ScenarioReport,
        filename: str = "scenario-summary.txt",
    ) -> Optional[str]:
        """Write human-readable summary; returns its path."""
        if not self.result_dir:
            return None
        path = os.path.join(self.result_dir, filename)

        with open(path, "w") as f:
            f.write("\n".join(self.summary_lines(report)))

        return path

    def summary_lines(self, report: ScenarioReport) -> List[str]:
        lines = [
            "=" * 60,
            "Escrow Scenario Report",
            "=" * 60,
            f"Timestamp: {report.timestamp}",
            "",
            "Results:",
            f"  Total Tests:  {report.total_tests}",
            f"  Passed:       {report.total_passed}",
            f"  Failed:       {report.total_failed}",
            f"  Divergences:  {report.total_divergences}",
            f"  Pass Rate:    {report.total_passed / max(report.total_tests, 1) * 100:.1f}%",
            f"  Duration:     {report.execution_time_ms:.2f}ms",
            "",
            "Suite Results:",
        ]
        for suite in report.suite_results:
            status = "PASS" if suite.failed_tests == 0 else "FAIL"
            lines.append(
                f"  [{status}] {suite.suite_name}: "
                f"{suite.passed_tests}/{suite.total_tests} "
                f"({suite.pass_rate:.1f}%)"
            )

        if report.divergences:
            lines.append("")
            lines.append("Divergences:")
            for div in report.divergences:
                where = f" step {div.step}" if div.step is not None else ""
                lines.append(f"  - {div.scenario_name}{where} ({div.field}):")
                lines.append(f"      expected: {div.expected}")
                lines.append(f"      actual:   {div.actual}")
                if div.details:
                    lines.append(f"      Details: {div.details}")

        lines.append("")
        lines.append("=" * 60)
        return lines

    def print_summary(self, report: ScenarioReport) -> None:
        """Print summary to console."""
        print("\n" + "=" * 60)
        print("Escrow Scenario Results")
        print("=" * 60)
        print(f"Total:      {report.total_tests}")
        print(f"Passed:     {report.total_passed}")
        print(f"Failed:     {report.total_failed}")
        print(f"Divergences: {report.total_divergences}")
        print()

        if report.divergences:
            print("DIVERGENCES FOUND:")
            for div in report.divergences[:10]:  # Show first 10
                print(f"  - {div.scenario_name}: {div.field}")
            if len(report.divergences) > 10:
                print(f"  ... and {len(report.divergences) - 10} more")

        status = "PASSED" if report.total_failed == 0 else "FAILED"
        print()
        print(f"Overall: {status}")
        print("=" * 60)

    def _report_to_dict(self, report: ScenarioReport) -> Dict[str, Any]:
        """Convert report to dictionary for JSON serialization."""
        return {
            "timestamp": report.timestamp,
            "total_suites": report.total_suites,
            "total_tests": report.total_tests,
            "total_passed": report.total_passed,
            "total_failed": report.total_failed,
            "total_divergences": report.total_divergences,
            "execution_time_ms": report.execution_time_ms,
            "suite_results": [
                {
                    "suite_name": s.suite_name,
                    "total_tests": s.total_tests,
                    "passed_tests": s.passed_tests,
                    "failed_tests": s.failed_tests,
                    "skipped_tests": s.skipped_tests,
                    "execution_time_ms": s.execution_time_ms,
                    "pass_rate": s.pass_rate,
                    "scenarios": [
                        {
                            "scenario_name": t.scenario_name,
                            "passed": t.passed,
                            "state_digest": t.state_digest,
                            "error": t.error,
                        }
                        for t in s.test_results
                    ],
                }
                for s in report.suite_results
            ],
            "divergences": [
                {
                    "field": d.field,
                    "expected": str(d.expected),
                    "actual": str(d.actual),
                    "scenario_name": d.scenario_name,
                    "step": d.step,
                    "details": d.details,
                }
                for d in report.divergences
            ],
        }
