"""All-or-nothing transfer batches."""

from __future__ import annotations

import pytest

from escrow_spec.config import U128_MAX
from escrow_spec.errors import ErrorCode, EscrowError
from escrow_spec.transfer import Transfer, TransferExecutor


def test_batch_applies_every_transfer() -> None:
    balances = {"custody": 100_000}
    TransferExecutor().execute(
        balances,
        [Transfer("custody", "payee", 98_000), Transfer("custody", "fees", 2_000)],
    )
    assert balances == {"custody": 0, "payee": 98_000, "fees": 2_000}


def test_failed_batch_changes_nothing() -> None:
    balances = {"custody": 100_000, "payee": 5}
    before = dict(balances)
    with pytest.raises(EscrowError) as exc:
        TransferExecutor().execute(
            balances,
            [Transfer("custody", "payee", 98_000), Transfer("custody", "fees", 3_000)],
        )
    assert exc.value.code == ErrorCode.TRANSFER_FAILED
    assert balances == before


def test_zero_transfer_is_skipped() -> None:
    balances = {"a": 10}
    TransferExecutor().execute(balances, [Transfer("a", "b", 0)])
    assert balances == {"a": 10}


@pytest.mark.parametrize(
    "transfer",
    [
        Transfer("a", "b", -1),
        Transfer("a", "a", 1),
        Transfer("a", "b", 11),
    ],
)
def test_invalid_transfer_rejected(transfer: Transfer) -> None:
    balances = {"a": 10}
    with pytest.raises(EscrowError) as exc:
        TransferExecutor().execute(balances, [transfer])
    assert exc.value.code == ErrorCode.TRANSFER_FAILED
    assert balances == {"a": 10}


def test_receiver_overflow_rejected() -> None:
    balances = {"a": 1, "b": U128_MAX}
    with pytest.raises(EscrowError) as exc:
        TransferExecutor().execute(balances, [Transfer("a", "b", 1)])
    assert exc.value.code == ErrorCode.TRANSFER_FAILED
