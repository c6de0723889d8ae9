"""Concurrent callers against one ledger."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from escrow_spec.config import CUSTODY_ACCOUNT
from escrow_spec.errors import ErrorCode, EscrowError
from escrow_spec.ledger import EscrowLedger
from escrow_spec.policy import authorize
from escrow_spec.test_accounts import ALICE, BOB, CAROL, DAVE, DEPLOYER, GENESIS_BALANCE
from escrow_spec.types import DisputeResolution, EscrowStatus

PAYERS = (ALICE, CAROL, DAVE)


def test_concurrent_locks_keep_totals(ledger: EscrowLedger) -> None:
    def lock_many(payer: str) -> list[int]:
        return [ledger.lock_escrow(payer, BOB, 1_000 + i) for i in range(50)]

    with ThreadPoolExecutor(max_workers=len(PAYERS)) as pool:
        results = list(pool.map(lock_many, PAYERS))

    ids = sorted(i for batch in results for i in batch)
    assert ids == list(range(150))
    expected = len(PAYERS) * sum(1_000 + i for i in range(50))
    assert ledger.get_total_value_locked() == expected
    assert ledger.get_balance(CUSTODY_ACCOUNT) == expected
    assert ledger.get_escrow_nonce() == 150
    for payer in PAYERS:
        assert ledger.get_payer_escrow_count(payer) == 50


def test_racing_settlements_apply_once(ledger: EscrowLedger) -> None:
    escrow_id = ledger.lock_escrow(ALICE, BOB, 100_000)
    barrier = threading.Barrier(3)
    outcomes: list[str] = []
    outcomes_lock = threading.Lock()

    def attempt(action) -> None:
        barrier.wait()
        try:
            action()
            label = "ok"
        except EscrowError as exc:
            assert exc.code == ErrorCode.INVALID_STATE
            label = "rejected"
        with outcomes_lock:
            outcomes.append(label)

    threads = [
        threading.Thread(target=attempt, args=(lambda: ledger.release_escrow(ALICE, escrow_id),)),
        threading.Thread(target=attempt, args=(lambda: ledger.cancel_escrow(BOB, escrow_id),)),
        threading.Thread(target=attempt, args=(lambda: ledger.refund_escrow(DEPLOYER, escrow_id),)),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["ok", "rejected", "rejected"]
    assert ledger.get_escrow_status(escrow_id) != EscrowStatus.LOCKED
    assert ledger.get_total_value_locked() == 0
    assert ledger.get_balance(CUSTODY_ACCOUNT) == 0
    # exactly one payout happened
    total = sum(ledger.get_balance(p) for p in (ALICE, BOB, DEPLOYER))
    assert total == 3 * GENESIS_BALANCE


def test_settlements_on_distinct_escrows_run_in_parallel(ledger: EscrowLedger) -> None:
    ids = [ledger.lock_escrow(ALICE, BOB, 10_000) for _ in range(40)]

    def settle(escrow_id: int) -> None:
        if escrow_id % 2:
            ledger.release_escrow(ALICE, escrow_id)
        else:
            ledger.cancel_escrow(BOB, escrow_id)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(settle, ids))

    assert ledger.get_total_value_locked() == 0
    assert ledger.get_balance(CUSTODY_ACCOUNT) == 0
    assert ledger.get_balance(BOB) == GENESIS_BALANCE + 20 * 9_800
    assert ledger.get_balance(DEPLOYER) == GENESIS_BALANCE + 20 * 200


def _hand_over_during(check, ledger: EscrowLedger, blocked: list, handovers: list):
    """Wrap an authorization check so ownership moves to CAROL right after it."""

    def wrapped(*args, **kwargs) -> None:
        check(*args, **kwargs)
        handover = threading.Thread(target=ledger.set_owner, args=(DEPLOYER, CAROL))
        handover.start()
        handover.join(timeout=0.2)
        blocked.append(handover.is_alive())
        handovers.append(handover)

    return wrapped


def test_owner_change_waits_for_inflight_refund(ledger: EscrowLedger, monkeypatch) -> None:
    escrow_id = ledger.lock_escrow(ALICE, BOB, 100_000)
    blocked: list[bool] = []
    handovers: list[threading.Thread] = []
    monkeypatch.setattr(
        "escrow_spec.ledger.authorize", _hand_over_during(authorize, ledger, blocked, handovers)
    )

    ledger.refund_escrow(DEPLOYER, escrow_id)
    handovers[0].join()

    assert blocked == [True]
    assert ledger.get_contract_owner() == CAROL
    assert ledger.get_escrow_status(escrow_id) == EscrowStatus.REFUNDED

    monkeypatch.undo()
    second = ledger.lock_escrow(ALICE, BOB, 100_000)
    with pytest.raises(EscrowError) as exc:
        ledger.refund_escrow(DEPLOYER, second)
    assert exc.value.code == ErrorCode.UNAUTHORIZED


def test_owner_change_waits_for_inflight_resolution(ledger: EscrowLedger, monkeypatch) -> None:
    escrow_id = ledger.lock_escrow(ALICE, BOB, 100_000)
    ledger.initiate_dispute(BOB, escrow_id, "not delivered")
    blocked: list[bool] = []
    handovers: list[threading.Thread] = []
    monkeypatch.setattr(
        "escrow_spec.dispute.authorize", _hand_over_during(authorize, ledger, blocked, handovers)
    )

    ledger.resolve_dispute(DEPLOYER, escrow_id, DisputeResolution.FAVOR_PAYER)
    handovers[0].join()

    assert blocked == [True]
    assert ledger.get_contract_owner() == CAROL
    assert ledger.get_dispute(escrow_id).resolved
