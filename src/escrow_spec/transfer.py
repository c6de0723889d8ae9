"""Value movement between ledger accounts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable

from .config import U128_MAX
from .errors import ErrorCode, EscrowError
from .types import Principal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Transfer:
    source: Principal
    destination: Principal
    amount: int


class TransferExecutor:
    """Applies a batch of transfers all-or-nothing.

    Balances are staged on a scratch copy of the touched accounts and only
    written back once every transfer in the batch has been validated. Callers
    must hold the ledger state lock.
    """

    def execute(self, balances: Dict[Principal, int], transfers: Iterable[Transfer]) -> None:
        staged: Dict[Principal, int] = {}

        def current(principal: Principal) -> int:
            if principal in staged:
                return staged[principal]
            return balances.get(principal, 0)

        for t in transfers:
            if t.amount == 0:
                continue
            if t.amount < 0:
                raise EscrowError(ErrorCode.TRANSFER_FAILED, "transfer amount negative")
            if t.source == t.destination:
                raise EscrowError(ErrorCode.TRANSFER_FAILED, "transfer to self")
            available = current(t.source)
            if available < t.amount:
                raise EscrowError(
                    ErrorCode.TRANSFER_FAILED,
                    f"{t.source} holds {available}, cannot send {t.amount}",
                )
            received = current(t.destination) + t.amount
            if received > U128_MAX:
                raise EscrowError(ErrorCode.TRANSFER_FAILED, "receiver balance overflow")
            staged[t.source] = available - t.amount
            staged[t.destination] = received

        balances.update(staged)
        for principal, balance in staged.items():
            logger.debug(f"balance {principal} -> {balance}")
