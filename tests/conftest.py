"""Pytest hooks and fixtures; `--output` dumps collected ledger cases as JSON."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any, Callable

import pytest

from escrow_spec.fixtures_io import ledger_to_json, op_to_json, result_to_json
from escrow_spec.ledger import EscrowLedger
from escrow_spec.state_digest import compute_state_digest
from escrow_spec.state_transition import Operation, OpResult, apply_op
from escrow_spec.test_accounts import funded_ledger

_LEDGER_CASES: dict[str, list[dict[str, Any]]] = {}


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--output",
        action="store",
        default=None,
        help="Output directory for generated fixtures",
    )


@pytest.fixture
def ledger() -> EscrowLedger:
    return funded_ledger()


@pytest.fixture
def ledger_case() -> Callable[[str, str, EscrowLedger, Operation], OpResult]:
    """Apply an operation to a live ledger and collect it as a fixture case."""

    def _ledger_case(
        rel_path: str, name: str, ledger: EscrowLedger, op: Operation
    ) -> OpResult:
        pre_state = ledger_to_json(ledger)
        result = apply_op(ledger, op)
        post_state = ledger_to_json(ledger)
        _LEDGER_CASES.setdefault(rel_path, []).append(
            {
                "name": name,
                "config": asdict(ledger.config),
                "pre_state": pre_state,
                "op": op_to_json(op),
                "expected": {
                    **result_to_json(result),
                    "post_state": post_state,
                    "state_digest": compute_state_digest(post_state),
                },
            }
        )
        return result

    return _ledger_case


@pytest.fixture
def collected_cases() -> dict[str, list[dict[str, Any]]]:
    """Cases gathered by `ledger_case` so far, keyed by fixture path."""
    return _LEDGER_CASES


def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    output_dir = session.config.getoption("--output")
    if not output_dir:
        return

    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    for rel_path, cases in _LEDGER_CASES.items():
        if not cases:
            continue
        target = out / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps({"cases": cases}, indent=2))
