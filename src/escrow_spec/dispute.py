"""Dispute records and owner arbitration.

A dispute can only be opened on a Locked escrow and is settled by the
contract owner with one of two outcomes: full refund to the payer, or release
to the payee with the platform fee taken. There is no partial split.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Optional

from .config import MAX_REASON_LEN
from .errors import ErrorCode, EscrowError
from .events import EventKind, LedgerEvent, Outcome
from .policy import authorize
from .types import Action, Dispute, DisputeResolution, EscrowId, EscrowStatus, Principal

if TYPE_CHECKING:
    from .ledger import EscrowLedger

logger = logging.getLogger(__name__)


def parse_resolution(value: object) -> DisputeResolution:
    if isinstance(value, DisputeResolution):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        try:
            return DisputeResolution(value)
        except ValueError:
            pass
    raise EscrowError(ErrorCode.INVALID_INPUT, f"invalid dispute resolution: {value!r}")


def _validate_reason(reason: object) -> str:
    if not isinstance(reason, str) or not reason:
        raise EscrowError(ErrorCode.INVALID_INPUT, "dispute reason must be non-empty")
    if len(reason) > MAX_REASON_LEN:
        raise EscrowError(ErrorCode.INVALID_INPUT, "dispute reason too long")
    return reason


class DisputeResolver:
    """Owns the dispute sub-records of an EscrowLedger."""

    def __init__(self, ledger: "EscrowLedger"):
        self._ledger = ledger

    def get(self, escrow_id: EscrowId) -> Optional[Dispute]:
        with self._ledger._state_lock:
            return self._ledger.state.disputes.get(escrow_id)

    def initiate(self, caller: Principal, escrow_id: EscrowId, reason: str) -> None:
        reason = _validate_reason(reason)
        ledger = self._ledger
        with ledger._guard(escrow_id) as escrow:
            now = ledger.clock.height
            authorize(caller, escrow, Action.INITIATE_DISPUTE, now, ledger.get_contract_owner())
            with ledger._state_lock:
                if escrow_id in ledger.state.disputes:
                    raise EscrowError(
                        ErrorCode.ALREADY_EXISTS, f"escrow {escrow_id} already has a dispute"
                    )
                ledger.state.escrows[escrow_id] = replace(escrow, status=EscrowStatus.DISPUTED)
                ledger.state.disputes[escrow_id] = Dispute(
                    escrow_id=escrow_id,
                    initiated_by=caller,
                    initiated_at=now,
                    reason=reason,
                )
                ledger.events.record(
                    LedgerEvent(
                        EventKind.DISPUTE_INITIATED, escrow_id, caller, EscrowStatus.DISPUTED, now
                    )
                )

    def resolve(
        self, caller: Principal, escrow_id: EscrowId, resolution: DisputeResolution | int
    ) -> None:
        resolution = parse_resolution(resolution)
        ledger = self._ledger
        with ledger._guard(escrow_id) as escrow:
            now = ledger.clock.height
            authorize(caller, escrow, Action.RESOLVE_DISPUTE, now, ledger.get_contract_owner())
            dispute = self.get(escrow_id)
            if dispute is None:
                raise EscrowError(ErrorCode.NOT_FOUND, f"no dispute for escrow {escrow_id}")
            if dispute.resolved:
                raise EscrowError(
                    ErrorCode.INVALID_STATE, f"dispute on escrow {escrow_id} already resolved"
                )

            if resolution == DisputeResolution.FAVOR_PAYEE:
                status, outcome = EscrowStatus.RELEASED, Outcome.DISPUTE_FAVOR_PAYEE
            else:
                status, outcome = EscrowStatus.REFUNDED, Outcome.DISPUTE_FAVOR_PAYER
            settlement = ledger._settle(
                escrow, caller, now,
                status=status,
                kind=EventKind.DISPUTE_RESOLVED,
                outcome=outcome,
                dispute=replace(dispute, resolved=True, resolution=resolution),
            )
        logger.info(f"dispute on escrow {escrow_id} resolved: {outcome.value}")
        ledger.events.publish(settlement)
