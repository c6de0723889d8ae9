"""lock_escrow fixtures."""

from __future__ import annotations

import pytest

from escrow_spec.config import CUSTODY_ACCOUNT, DEFAULT_TIMEOUT_BLOCKS, MAX_TIMEOUT_BLOCKS, U128_MAX
from escrow_spec.errors import ErrorCode, EscrowError
from escrow_spec.ledger import EscrowLedger
from escrow_spec.state_transition import Operation, OpKind
from escrow_spec.test_accounts import ALICE, BOB, CAROL, DEPLOYER, GENESIS_BALANCE
from escrow_spec.types import EscrowStatus

FIXTURE = "escrow/lock_escrow.json"


def _lock(payer: str, **args) -> Operation:
    return Operation(OpKind.LOCK_ESCROW, payer, args)


def test_lock_escrow_success(ledger_case, ledger: EscrowLedger) -> None:
    ledger.clock.advance(10)
    result = ledger_case(
        FIXTURE, "lock_escrow_success", ledger,
        _lock(ALICE, payee=BOB, amount=100_000, service_id=7),
    )
    assert result.ok
    assert result.value == 0

    escrow = ledger.get_escrow(0)
    assert escrow.payer == ALICE
    assert escrow.payee == BOB
    assert escrow.amount == 100_000
    assert escrow.fee_amount == 2_000
    assert escrow.status == EscrowStatus.LOCKED
    assert escrow.created_at == 10
    assert escrow.timeout_at == 10 + DEFAULT_TIMEOUT_BLOCKS
    assert escrow.released_at is None
    assert escrow.service_id == 7

    assert ledger.get_balance(ALICE) == GENESIS_BALANCE - 100_000
    assert ledger.get_balance(CUSTODY_ACCOUNT) == 100_000
    assert ledger.get_total_value_locked() == 100_000
    assert ledger.get_escrow_nonce() == 1


def test_lock_escrow_ids_are_sequential(ledger: EscrowLedger) -> None:
    ids = [ledger.lock_escrow(ALICE, BOB, 1_000 + i) for i in range(3)]
    assert ids == [0, 1, 2]
    assert ledger.get_payer_escrows(ALICE) == [0, 1, 2]
    assert ledger.get_payee_escrows(BOB) == [0, 1, 2]
    assert ledger.get_total_value_locked() == 3_003


def test_lock_escrow_custom_timeout(ledger: EscrowLedger) -> None:
    escrow_id = ledger.lock_escrow(ALICE, BOB, 5_000, timeout_period=10)
    assert ledger.get_escrow(escrow_id).timeout_at == 10


def test_lock_escrow_minimum_amount(ledger_case, ledger: EscrowLedger) -> None:
    result = ledger_case(
        FIXTURE, "lock_escrow_minimum_amount", ledger, _lock(ALICE, payee=BOB, amount=1_000)
    )
    assert result.ok
    assert ledger.get_escrow(0).fee_amount == 20


@pytest.mark.parametrize("amount", [0, 1, 999])
def test_lock_escrow_below_minimum(ledger_case, ledger: EscrowLedger, amount: int) -> None:
    result = ledger_case(
        FIXTURE, f"lock_escrow_below_minimum_{amount}", ledger,
        _lock(ALICE, payee=BOB, amount=amount),
    )
    assert not result.ok
    assert result.error.code == ErrorCode.ZERO_AMOUNT
    assert ledger.get_escrow_nonce() == 0


def test_lock_escrow_same_parties(ledger_case, ledger: EscrowLedger) -> None:
    result = ledger_case(
        FIXTURE, "lock_escrow_same_parties", ledger, _lock(ALICE, payee=ALICE, amount=5_000)
    )
    assert result.error.code == ErrorCode.SAME_PARTIES


def test_lock_escrow_insufficient_balance(ledger_case, ledger: EscrowLedger) -> None:
    result = ledger_case(
        FIXTURE, "lock_escrow_insufficient_balance", ledger,
        _lock(ALICE, payee=BOB, amount=GENESIS_BALANCE + 1),
    )
    assert result.error.code == ErrorCode.INSUFFICIENT_BALANCE
    assert ledger.get_balance(ALICE) == GENESIS_BALANCE
    assert ledger.get_total_value_locked() == 0
    assert ledger.get_escrow_nonce() == 0


def test_lock_escrow_unfunded_payer(ledger: EscrowLedger) -> None:
    with pytest.raises(EscrowError) as exc:
        ledger.lock_escrow("ST-unfunded", BOB, 5_000)
    assert exc.value.code == ErrorCode.INSUFFICIENT_BALANCE


@pytest.mark.parametrize(
    "args",
    [
        {"payee": BOB, "amount": -5},
        {"payee": BOB, "amount": U128_MAX + 1},
        {"payee": BOB, "amount": True},
        {"payee": BOB, "amount": "5000"},
        {"payee": "", "amount": 5_000},
        {"payee": CUSTODY_ACCOUNT, "amount": 5_000},
        {"payee": BOB, "amount": 5_000, "timeout_period": 0},
        {"payee": BOB, "amount": 5_000, "timeout_period": MAX_TIMEOUT_BLOCKS + 1},
        {"payee": BOB, "amount": 5_000, "service_id": -1},
    ],
)
def test_lock_escrow_invalid_input(ledger: EscrowLedger, args: dict) -> None:
    with pytest.raises(EscrowError) as exc:
        ledger.lock_escrow(ALICE, **args)
    assert exc.value.code == ErrorCode.INVALID_INPUT
    assert ledger.get_escrow_nonce() == 0


def test_lock_escrow_disabled(ledger_case, ledger: EscrowLedger) -> None:
    ledger.set_escrows_enabled(DEPLOYER, False)
    result = ledger_case(
        FIXTURE, "lock_escrow_disabled", ledger, _lock(ALICE, payee=BOB, amount=5_000)
    )
    assert result.error.code == ErrorCode.UNAUTHORIZED

    ledger.set_escrows_enabled(DEPLOYER, True)
    assert ledger.lock_escrow(ALICE, BOB, 5_000) == 0


def test_lock_escrow_third_party_payee_indices(ledger: EscrowLedger) -> None:
    ledger.lock_escrow(ALICE, BOB, 5_000)
    ledger.lock_escrow(CAROL, BOB, 6_000)
    ledger.lock_escrow(BOB, ALICE, 7_000)
    assert ledger.get_payer_escrows(ALICE) == [0]
    assert ledger.get_payee_escrows(BOB) == [0, 1]
    assert ledger.get_payee_escrows(ALICE) == [2]
    assert ledger.get_payer_escrow_count(CAROL) == 1
    assert ledger.get_payee_escrow_count(CAROL) == 0
