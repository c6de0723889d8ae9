"""Replay generated ledger fixtures and check results and digests."""

from __future__ import annotations

import json
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "src"))

from escrow_spec.fixtures_io import (  # noqa: E402
    ledger_from_json,
    ledger_to_json,
    op_from_json,
    result_to_json,
)
from escrow_spec.state_digest import compute_state_digest  # noqa: E402
from escrow_spec.state_transition import apply_op  # noqa: E402


def check_cases(path: Path) -> list[str]:
    failures: list[str] = []
    data = json.loads(path.read_text())

    for case in data.get("cases", []):
        name = f"{path.stem}/{case['name']}"
        ledger = ledger_from_json(case["pre_state"], case.get("config"))
        result = result_to_json(apply_op(ledger, op_from_json(case["op"])))

        expected = case["expected"]
        if result["ok"] != expected["ok"]:
            failures.append(f"{name}: ok_mismatch")
            continue
        if result["error"] != expected["error"]:
            failures.append(f"{name}: error_mismatch")
            continue
        if result["value"] != expected["value"]:
            failures.append(f"{name}: value_mismatch")
            continue

        post_state = ledger_to_json(ledger)
        if post_state != expected["post_state"]:
            failures.append(f"{name}: post_state_mismatch")
            continue
        if compute_state_digest(post_state) != expected["state_digest"]:
            failures.append(f"{name}: digest_mismatch")

    return failures


def main() -> None:
    fixtures = ROOT / "fixtures"

    failures: list[str] = []
    count = 0
    for path in sorted(fixtures.rglob("*.json")):
        count += 1
        failures.extend(check_cases(path))

    if failures:
        for f in failures:
            print("FAIL", f)
        raise SystemExit(1)

    print(f"All fixtures passed ({count} files)")


if __name__ == "__main__":
    main()
