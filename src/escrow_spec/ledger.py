"""Escrow ledger: custody records, indices and settlement.

Locking: each escrow has its own lock serializing its check-then-act
sequence; `_state_lock` guards balances, counters, indices and admin fields
and is always taken inside an escrow lock, never the other way round.
A transition holds both from authorization through commit.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from copy import deepcopy
from dataclasses import replace
from typing import Dict, Iterator, List, Optional

from .clock import Clock, is_expired
from .config import (
    CUSTODY_ACCOUNT,
    MAX_TIMEOUT_BLOCKS,
    MIN_TIMEOUT_BLOCKS,
    U128_MAX,
    LedgerConfig,
)
from .dispute import DisputeResolver
from .errors import ErrorCode, EscrowError
from .events import EventKind, EventLog, LedgerEvent, Outcome, SettlementEvent
from .fees import calculate_fee
from .policy import authorize, permitted_actions
from .transfer import Transfer, TransferExecutor
from .types import (
    Action,
    BlockHeight,
    Dispute,
    DisputeResolution,
    Escrow,
    EscrowId,
    EscrowStatus,
    LedgerState,
    Principal,
)

logger = logging.getLogger(__name__)


def _require_principal(value: object, what: str) -> Principal:
    if not isinstance(value, str) or not value:
        raise EscrowError(ErrorCode.INVALID_INPUT, f"{what} must be a non-empty principal")
    if value == CUSTODY_ACCOUNT:
        raise EscrowError(ErrorCode.INVALID_INPUT, f"{what} cannot be the custody account")
    return value


def _is_uint(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= U128_MAX


class EscrowLedger:
    def __init__(
        self,
        owner: Principal,
        config: Optional[LedgerConfig] = None,
        clock: Optional[Clock] = None,
        executor: Optional[TransferExecutor] = None,
        events: Optional[EventLog] = None,
    ):
        self.config = config if config is not None else LedgerConfig()
        self.config.validate()
        self.clock = clock if clock is not None else Clock()
        self.executor = executor if executor is not None else TransferExecutor()
        self.events = events if events is not None else EventLog()
        owner = _require_principal(owner, "owner")
        self.state = LedgerState(
            owner=owner,
            fee_recipient=owner,
            escrows_enabled=self.config.escrows_enabled,
        )
        self.disputes = DisputeResolver(self)
        self._state_lock = threading.RLock()
        self._escrow_locks: Dict[EscrowId, threading.Lock] = {}

    # --- genesis / accounts ---

    def fund(self, principal: Principal, amount: int) -> int:
        """Credit a genesis allocation; returns the new balance."""
        principal = _require_principal(principal, "principal")
        if not _is_uint(amount):
            raise EscrowError(ErrorCode.INVALID_INPUT, "funding amount out of range")
        with self._state_lock:
            balance = self.state.balances.get(principal, 0) + amount
            if balance > U128_MAX:
                raise EscrowError(ErrorCode.INVALID_INPUT, "balance overflow")
            self.state.balances[principal] = balance
            return balance

    def get_balance(self, principal: Principal) -> int:
        with self._state_lock:
            return self.state.balances.get(principal, 0)

    # --- administration ---

    def _require_owner(self, caller: Principal) -> None:
        if caller != self.state.owner:
            raise EscrowError(ErrorCode.UNAUTHORIZED, f"{caller} is not the contract owner")

    def set_owner(self, caller: Principal, new_owner: Principal) -> None:
        new_owner = _require_principal(new_owner, "new owner")
        with self._state_lock:
            self._require_owner(caller)
            self.state.owner = new_owner
        logger.info(f"contract owner {caller} -> {new_owner}")

    def set_fee_recipient(self, caller: Principal, recipient: Principal) -> None:
        recipient = _require_principal(recipient, "fee recipient")
        with self._state_lock:
            self._require_owner(caller)
            self.state.fee_recipient = recipient
        logger.info(f"fee recipient set to {recipient}")

    def set_escrows_enabled(self, caller: Principal, enabled: bool) -> None:
        if not isinstance(enabled, bool):
            raise EscrowError(ErrorCode.INVALID_INPUT, "enabled must be a bool")
        with self._state_lock:
            self._require_owner(caller)
            self.state.escrows_enabled = enabled
        logger.info(f"escrow creation {'enabled' if enabled else 'disabled'}")

    # --- transitions ---

    def lock_escrow(
        self,
        payer: Principal,
        payee: Principal,
        amount: int,
        service_id: Optional[int] = None,
        timeout_period: Optional[int] = None,
    ) -> EscrowId:
        """Move `amount` from payer into custody and open a Locked escrow."""
        with self._state_lock:
            if not self.state.escrows_enabled:
                raise EscrowError(ErrorCode.UNAUTHORIZED, "escrow creation is disabled")
            if not _is_uint(amount):
                raise EscrowError(ErrorCode.INVALID_INPUT, "amount must be an unsigned integer")
            if amount < self.config.min_escrow_amount:
                raise EscrowError(
                    ErrorCode.ZERO_AMOUNT,
                    f"amount must be >= {self.config.min_escrow_amount}",
                )
            if payer == payee:
                raise EscrowError(ErrorCode.SAME_PARTIES, "payer cannot be payee")
            payer = _require_principal(payer, "payer")
            payee = _require_principal(payee, "payee")
            if timeout_period is None:
                timeout_period = self.config.default_timeout_blocks
            if not _is_uint(timeout_period) or not (
                MIN_TIMEOUT_BLOCKS <= timeout_period <= MAX_TIMEOUT_BLOCKS
            ):
                raise EscrowError(ErrorCode.INVALID_INPUT, "timeout_period out of range")
            if service_id is not None and not _is_uint(service_id):
                raise EscrowError(ErrorCode.INVALID_INPUT, "service_id out of range")

            balance = self.state.balances.get(payer, 0)
            if balance < amount:
                raise EscrowError(
                    ErrorCode.INSUFFICIENT_BALANCE,
                    f"{payer} holds {balance}, cannot lock {amount}",
                )

            now = self.clock.height
            self.executor.execute(
                self.state.balances, [Transfer(payer, CUSTODY_ACCOUNT, amount)]
            )

            escrow_id = self.state.escrow_nonce
            escrow = Escrow(
                escrow_id=escrow_id,
                payer=payer,
                payee=payee,
                amount=amount,
                fee_amount=calculate_fee(amount, self.config.fee_bps),
                status=EscrowStatus.LOCKED,
                created_at=now,
                timeout_at=now + timeout_period,
                service_id=service_id,
            )
            self.state.escrows[escrow_id] = escrow
            self.state.payer_index.setdefault(payer, []).append(escrow_id)
            self.state.payee_index.setdefault(payee, []).append(escrow_id)
            self.state.total_value_locked += amount
            self.state.escrow_nonce += 1
            self._escrow_locks[escrow_id] = threading.Lock()
            self.events.record(
                LedgerEvent(EventKind.ESCROW_LOCKED, escrow_id, payer, escrow.status, now)
            )
        return escrow_id

    def release_escrow(self, caller: Principal, escrow_id: EscrowId) -> None:
        """Payer pays out: net to payee, fee to the fee recipient."""
        with self._guard(escrow_id) as escrow:
            now = self.clock.height
            authorize(caller, escrow, Action.RELEASE, now, self.get_contract_owner())
            settlement = self._settle(
                escrow, caller, now,
                status=EscrowStatus.RELEASED,
                kind=EventKind.ESCROW_RELEASED,
                outcome=Outcome.RELEASED,
            )
        self.events.publish(settlement)

    def refund_escrow(self, caller: Principal, escrow_id: EscrowId) -> None:
        """Return the full amount to the payer; no fee is taken."""
        with self._guard(escrow_id) as escrow:
            now = self.clock.height
            authorize(caller, escrow, Action.REFUND, now, self.get_contract_owner())
            settlement = self._settle(
                escrow, caller, now,
                status=EscrowStatus.REFUNDED,
                kind=EventKind.ESCROW_REFUNDED,
                outcome=Outcome.REFUNDED,
            )
        self.events.publish(settlement)

    def cancel_escrow(self, caller: Principal, escrow_id: EscrowId) -> None:
        """Payee backs out; funds go back to the payer as with a refund."""
        with self._guard(escrow_id) as escrow:
            now = self.clock.height
            authorize(caller, escrow, Action.CANCEL, now, self.get_contract_owner())
            settlement = self._settle(
                escrow, caller, now,
                status=EscrowStatus.CANCELLED,
                kind=EventKind.ESCROW_CANCELLED,
                outcome=Outcome.CANCELLED,
            )
        self.events.publish(settlement)

    def initiate_dispute(self, caller: Principal, escrow_id: EscrowId, reason: str) -> None:
        self.disputes.initiate(caller, escrow_id, reason)

    def resolve_dispute(
        self, caller: Principal, escrow_id: EscrowId, resolution: DisputeResolution | int
    ) -> None:
        self.disputes.resolve(caller, escrow_id, resolution)

    @contextmanager
    def _guard(self, escrow_id: EscrowId) -> Iterator[Escrow]:
        """Hold the escrow's lock and the state lock; yield the current record.

        The state lock stays held for the whole check-then-settle body so an
        owner change cannot land between authorization and commit.
        """
        if not _is_uint(escrow_id):
            raise EscrowError(ErrorCode.INVALID_INPUT, f"invalid escrow id: {escrow_id!r}")
        with self._state_lock:
            lock = self._escrow_locks.get(escrow_id)
        if lock is None:
            raise EscrowError(ErrorCode.NOT_FOUND, f"escrow {escrow_id} not found")
        with lock:
            with self._state_lock:
                yield self.state.escrows[escrow_id]

    def _settle(
        self,
        escrow: Escrow,
        caller: Principal,
        now: BlockHeight,
        status: EscrowStatus,
        kind: EventKind,
        outcome: Outcome,
        dispute: Optional[Dispute] = None,
    ) -> SettlementEvent:
        """Pay out a custody escrow and commit its terminal status.

        Must be called under the escrow's lock. Nothing is written unless
        the transfer batch succeeds.
        """
        with self._state_lock:
            if status == EscrowStatus.RELEASED:
                transfers = [
                    Transfer(CUSTODY_ACCOUNT, escrow.payee, escrow.net_amount),
                    Transfer(CUSTODY_ACCOUNT, self.state.fee_recipient, escrow.fee_amount),
                ]
                fee_taken = escrow.fee_amount
            else:
                transfers = [Transfer(CUSTODY_ACCOUNT, escrow.payer, escrow.amount)]
                fee_taken = 0
            if self.state.total_value_locked < escrow.amount:
                raise EscrowError(ErrorCode.INVALID_STATE, "total value locked underflow")

            self.executor.execute(self.state.balances, transfers)

            settled = replace(escrow, status=status, released_at=now)
            self.state.escrows[escrow.escrow_id] = settled
            if dispute is not None:
                self.state.disputes[escrow.escrow_id] = dispute
            self.state.total_value_locked -= escrow.amount

            settlement = SettlementEvent(
                escrow_id=escrow.escrow_id,
                payer=escrow.payer,
                payee=escrow.payee,
                amount=escrow.amount,
                fee_amount=fee_taken,
                outcome=outcome,
                block_height=now,
            )
            self.events.record(
                LedgerEvent(kind, escrow.escrow_id, caller, status, now), settlement
            )
        return settlement

    # --- read-only ---

    def get_escrow(self, escrow_id: EscrowId) -> Optional[Escrow]:
        if not _is_uint(escrow_id):
            return None
        with self._state_lock:
            return self.state.escrows.get(escrow_id)

    def get_dispute(self, escrow_id: EscrowId) -> Optional[Dispute]:
        return self.disputes.get(escrow_id)

    def get_escrow_status(self, escrow_id: EscrowId) -> Optional[EscrowStatus]:
        escrow = self.get_escrow(escrow_id)
        return escrow.status if escrow is not None else None

    def get_escrow_status_name(self, escrow_id: EscrowId) -> Optional[str]:
        status = self.get_escrow_status(escrow_id)
        return status.label if status is not None else None

    def get_total_value_locked(self) -> int:
        with self._state_lock:
            return self.state.total_value_locked

    def get_escrow_nonce(self) -> int:
        with self._state_lock:
            return self.state.escrow_nonce

    def get_contract_owner(self) -> Principal:
        with self._state_lock:
            return self.state.owner

    def get_fee_recipient(self) -> Principal:
        with self._state_lock:
            return self.state.fee_recipient

    def are_escrows_enabled(self) -> bool:
        with self._state_lock:
            return self.state.escrows_enabled

    def is_escrow_expired(self, escrow_id: EscrowId) -> bool:
        escrow = self.get_escrow(escrow_id)
        if escrow is None:
            return False
        return is_expired(escrow.timeout_at, self.clock.height)

    def calculate_fee(self, amount: int) -> int:
        return calculate_fee(amount, self.config.fee_bps)

    def permitted_actions(self, caller: Principal, escrow_id: EscrowId) -> frozenset[Action]:
        escrow = self.get_escrow(escrow_id)
        if escrow is None:
            return frozenset()
        return permitted_actions(caller, escrow, self.clock.height, self.get_contract_owner())

    def get_payer_escrows(self, payer: Principal) -> List[EscrowId]:
        with self._state_lock:
            return list(self.state.payer_index.get(payer, []))

    def get_payee_escrows(self, payee: Principal) -> List[EscrowId]:
        with self._state_lock:
            return list(self.state.payee_index.get(payee, []))

    def get_payer_escrow_count(self, payer: Principal) -> int:
        with self._state_lock:
            return len(self.state.payer_index.get(payer, []))

    def get_payee_escrow_count(self, payee: Principal) -> int:
        with self._state_lock:
            return len(self.state.payee_index.get(payee, []))

    def get_payer_escrow_by_index(self, payer: Principal, index: int) -> Optional[Escrow]:
        return self._by_index(self.state.payer_index, payer, index)

    def get_payee_escrow_by_index(self, payee: Principal, index: int) -> Optional[Escrow]:
        return self._by_index(self.state.payee_index, payee, index)

    def _by_index(
        self, index: Dict[Principal, List[EscrowId]], party: Principal, position: int
    ) -> Optional[Escrow]:
        with self._state_lock:
            ids = index.get(party, [])
            if not _is_uint(position) or position >= len(ids):
                return None
            return self.state.escrows[ids[position]]

    def get_escrow_constants(self) -> Dict[str, int]:
        return {
            "min-escrow-amount": self.config.min_escrow_amount,
            "default-timeout-blocks": self.config.default_timeout_blocks,
            "platform-fee-bps": self.config.fee_bps,
            "status-locked": int(EscrowStatus.LOCKED),
            "status-released": int(EscrowStatus.RELEASED),
            "status-refunded": int(EscrowStatus.REFUNDED),
            "status-disputed": int(EscrowStatus.DISPUTED),
            "status-cancelled": int(EscrowStatus.CANCELLED),
        }

    @classmethod
    def from_state(
        cls,
        state: LedgerState,
        config: Optional[LedgerConfig] = None,
        clock: Optional[Clock] = None,
    ) -> "EscrowLedger":
        """Rebuild a ledger around previously exported state."""
        ledger = cls(state.owner, config=config, clock=clock)
        ledger.state = state
        ledger._escrow_locks = {escrow_id: threading.Lock() for escrow_id in state.escrows}
        return ledger

    def snapshot(self) -> LedgerState:
        """Deep copy of the ledger state, consistent at one instant."""
        with self._state_lock:
            return deepcopy(self.state)
