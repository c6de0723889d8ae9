"""YAML scenario suites replayed against a fresh ledger.

A suite file holds `scenarios:`; each scenario sets up accounts, runs
`steps` (operations or clock advances) and checks the final ledger:

    scenarios:
      - name: lock then release
        owner: deployer
        accounts: {wallet_1: 1000000}
        steps:
          - op: lock_escrow
            caller: wallet_1
            args: {payee: wallet_2, amount: 100000}
            expect: {ok: true, value: 0}
          - advance: 15
        expect:
          total_value_locked: 100000
          statuses: {0: locked}
"""

from __future__ import annotations

import glob
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .clock import Clock
from .config import LedgerConfig
from .errors import ErrorCode, EscrowError
from .fixtures_io import ledger_to_json, op_from_json
from .ledger import EscrowLedger
from .reporter import Divergence, ReportGenerator, ScenarioReport, ScenarioResult, SuiteResult
from .state_digest import compute_state_digest
from .state_transition import OpResult, apply_op

logger = logging.getLogger(__name__)


def build_ledger(scenario: Dict[str, Any]) -> EscrowLedger:
    """Create and fund the ledger described by a scenario header."""
    try:
        config = LedgerConfig(**(scenario.get("config") or {}))
    except TypeError as exc:
        raise EscrowError(ErrorCode.INVALID_INPUT, f"bad scenario config: {exc}")
    ledger = EscrowLedger(
        owner=scenario.get("owner", "deployer"),
        config=config,
        clock=Clock(int(scenario.get("block_height", 0))),
    )
    for principal, amount in (scenario.get("accounts") or {}).items():
        ledger.fund(principal, amount)
    return ledger


def replay(
    scenario: Dict[str, Any],
) -> Tuple[EscrowLedger, List[Tuple[int, Dict[str, Any], OpResult]]]:
    """Build the scenario's ledger and run its steps in order."""
    ledger = build_ledger(scenario)
    results = []
    for index, step in enumerate(scenario.get("steps") or []):
        if "advance" in step:
            ledger.clock.advance(int(step["advance"]))
            continue
        results.append((index, step, apply_op(ledger, op_from_json(step))))
    return ledger, results


def _check_step(
    name: str, index: int, expect: Dict[str, Any], result: OpResult
) -> List[Divergence]:
    divergences = []
    expected_error = expect.get("error")
    expected_ok = expect.get("ok", expected_error is None)
    actual_error = result.error.code.name if result.error else None

    if result.ok != expected_ok:
        divergences.append(Divergence(
            field="ok",
            expected=expected_ok,
            actual=result.ok,
            scenario_name=name,
            step=index,
            details=str(result.error) if result.error else None,
        ))
    if expected_error is not None and actual_error != expected_error:
        divergences.append(Divergence(
            field="error",
            expected=expected_error,
            actual=actual_error,
            scenario_name=name,
            step=index,
        ))
    if "value" in expect and result.value != expect["value"]:
        divergences.append(Divergence(
            field="value",
            expected=expect["value"],
            actual=result.value,
            scenario_name=name,
            step=index,
        ))
    return divergences


def _check_final(
    name: str, expect: Dict[str, Any], ledger: EscrowLedger, digest: str
) -> List[Divergence]:
    divergences = []

    def compare(field: str, expected: Any, actual: Any) -> None:
        if expected != actual:
            divergences.append(Divergence(
                field=field, expected=expected, actual=actual, scenario_name=name
            ))

    if "total_value_locked" in expect:
        compare("total_value_locked", expect["total_value_locked"], ledger.get_total_value_locked())
    if "escrow_nonce" in expect:
        compare("escrow_nonce", expect["escrow_nonce"], ledger.get_escrow_nonce())
    for principal, balance in (expect.get("balances") or {}).items():
        compare(f"balances.{principal}", balance, ledger.get_balance(principal))
    for escrow_id, status in (expect.get("statuses") or {}).items():
        compare(f"statuses.{escrow_id}", status, ledger.get_escrow_status_name(int(escrow_id)))
    if "state_digest" in expect:
        compare("state_digest", expect["state_digest"], digest)
    return divergences


class ScenarioRunner:
    """Runs scenario suites and aggregates a report."""

    def __init__(self, result_dir: Optional[str] = None, stop_on_first_failure: bool = False):
        self.reporter = ReportGenerator(result_dir)
        self.stop_on_first_failure = stop_on_first_failure

    def run_scenario(self, scenario: Dict[str, Any], suite_name: str = "") -> ScenarioResult:
        name = scenario.get("name", "unknown")
        start_time = time.time()
        divergences: List[Divergence] = []

        try:
            ledger, results = replay(scenario)
            for index, step, result in results:
                divergences.extend(_check_step(name, index, step.get("expect") or {}, result))

            digest = compute_state_digest(ledger_to_json(ledger))
            divergences.extend(_check_final(name, scenario.get("expect") or {}, ledger, digest))
        except (EscrowError, KeyError, TypeError, ValueError) as e:
            logger.exception(f"Error running scenario {name}")
            return ScenarioResult(
                scenario_name=name,
                suite_name=suite_name,
                passed=False,
                execution_time_ms=(time.time() - start_time) * 1000,
                error=str(e),
            )

        return ScenarioResult(
            scenario_name=name,
            suite_name=suite_name,
            passed=not divergences,
            execution_time_ms=(time.time() - start_time) * 1000,
            divergences=divergences,
            state_digest=digest,
        )

    def run_suite(self, suite_path: str) -> SuiteResult:
        """Run a scenario suite from a YAML file."""
        suite_name = Path(suite_path).stem
        logger.info(f"Running suite: {suite_name}")

        start_time = time.time()

        with open(suite_path) as f:
            suite = yaml.safe_load(f) or {}

        scenarios = suite.get("scenarios", [])
        results = []

        for scenario in scenarios:
            result = self.run_scenario(scenario, suite_name)
            results.append(result)

            status = "PASS" if result.passed else "FAIL"
            logger.info(f"  [{status}] {result.scenario_name}")

            if not result.passed and self.stop_on_first_failure:
                break

        passed = sum(1 for r in results if r.passed)

        return SuiteResult(
            suite_name=suite_name,
            total_tests=len(results),
            passed_tests=passed,
            failed_tests=len(results) - passed,
            skipped_tests=len(scenarios) - len(results),
            execution_time_ms=(time.time() - start_time) * 1000,
            test_results=results,
        )

    def run_all(self, suite_paths: List[str]) -> ScenarioReport:
        start_time = time.time()
        suite_results = []
        for path in suite_paths:
            result = self.run_suite(path)
            suite_results.append(result)
            if result.failed_tests and self.stop_on_first_failure:
                break
        return self.reporter.generate_report(
            suite_results=suite_results,
            execution_time_ms=(time.time() - start_time) * 1000,
        )


def find_suite_files(suite_dir: str) -> List[str]:
    """Find all scenario YAML files in directory."""
    patterns = [
        os.path.join(suite_dir, "**", "*.yaml"),
        os.path.join(suite_dir, "**", "*.yml"),
    ]

    files = []
    for pattern in patterns:
        files.extend(glob.glob(pattern, recursive=True))

    return sorted(files)
