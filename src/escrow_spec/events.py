"""Audit trail and settlement notifications.

The reputation module subscribes to settlement events; this package never
calls into it directly.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .types import BlockHeight, EscrowId, EscrowStatus, Principal

logger = logging.getLogger(__name__)


class EventKind(Enum):
    ESCROW_LOCKED = "escrow-locked"
    ESCROW_RELEASED = "escrow-released"
    ESCROW_REFUNDED = "escrow-refunded"
    ESCROW_CANCELLED = "escrow-cancelled"
    DISPUTE_INITIATED = "dispute-initiated"
    DISPUTE_RESOLVED = "dispute-resolved"


class Outcome(Enum):
    RELEASED = "released"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"
    DISPUTE_FAVOR_PAYER = "dispute-favor-payer"
    DISPUTE_FAVOR_PAYEE = "dispute-favor-payee"


@dataclass(frozen=True)
class LedgerEvent:
    kind: EventKind
    escrow_id: EscrowId
    caller: Principal
    status: EscrowStatus
    block_height: BlockHeight


@dataclass(frozen=True)
class SettlementEvent:
    escrow_id: EscrowId
    payer: Principal
    payee: Principal
    amount: int
    fee_amount: int
    outcome: Outcome
    block_height: BlockHeight

    def to_json(self) -> Dict[str, Any]:
        data = asdict(self)
        data["outcome"] = self.outcome.value
        return data


SettlementListener = Callable[[SettlementEvent], None]


class EventLog:
    """Ordered audit trail plus settlement subscribers."""

    def __init__(self) -> None:
        self._events: List[LedgerEvent] = []
        self._settlements: List[SettlementEvent] = []
        self._listeners: List[SettlementListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: SettlementListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: SettlementListener) -> None:
        with self._lock:
            self._listeners.remove(listener)

    def record(
        self, event: LedgerEvent, settlement: Optional[SettlementEvent] = None
    ) -> None:
        with self._lock:
            self._events.append(event)
            if settlement is not None:
                self._settlements.append(settlement)
        logger.info(f"{event.kind.value} escrow={event.escrow_id} caller={event.caller}")

    def publish(self, settlement: SettlementEvent) -> None:
        """Notify listeners; runs after the ledger has released its locks."""
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(settlement)

    @property
    def events(self) -> List[LedgerEvent]:
        with self._lock:
            return list(self._events)

    @property
    def settlements(self) -> List[SettlementEvent]:
        with self._lock:
            return list(self._settlements)

    def for_escrow(self, escrow_id: EscrowId) -> List[LedgerEvent]:
        return [e for e in self.events if e.escrow_id == escrow_id]
