"""Core types for the escrow custody ledger.

Escrow and dispute records are frozen: every transition replaces the stored
record, so a terminal record handed out by a read never changes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, List, Optional

Principal = str
EscrowId = int
BlockHeight = int


class EscrowStatus(IntEnum):
    LOCKED = 1
    RELEASED = 2
    REFUNDED = 3
    DISPUTED = 4
    CANCELLED = 5

    @property
    def label(self) -> str:
        return self.name.lower()

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    EscrowStatus.RELEASED,
    EscrowStatus.REFUNDED,
    EscrowStatus.CANCELLED,
})

# Statuses whose amount counts towards total value locked.
CUSTODY_STATUSES = frozenset({
    EscrowStatus.LOCKED,
    EscrowStatus.DISPUTED,
})


class DisputeResolution(IntEnum):
    FAVOR_PAYER = 1
    FAVOR_PAYEE = 2


class Action(Enum):
    RELEASE = "release"
    REFUND = "refund"
    CANCEL = "cancel"
    INITIATE_DISPUTE = "initiate_dispute"
    RESOLVE_DISPUTE = "resolve_dispute"


@dataclass(frozen=True)
class Escrow:
    escrow_id: EscrowId
    payer: Principal
    payee: Principal
    amount: int
    fee_amount: int
    status: EscrowStatus
    created_at: BlockHeight
    timeout_at: BlockHeight
    released_at: Optional[BlockHeight] = None
    service_id: Optional[int] = None

    @property
    def net_amount(self) -> int:
        return self.amount - self.fee_amount


@dataclass(frozen=True)
class Dispute:
    escrow_id: EscrowId
    initiated_by: Principal
    initiated_at: BlockHeight
    reason: str
    resolved: bool = False
    resolution: Optional[DisputeResolution] = None


@dataclass
class LedgerState:
    """All mutable ledger data; owned by a single EscrowLedger."""

    owner: Principal
    fee_recipient: Principal
    escrows_enabled: bool = True
    escrow_nonce: int = 0
    total_value_locked: int = 0
    balances: Dict[Principal, int] = field(default_factory=dict)
    escrows: Dict[EscrowId, Escrow] = field(default_factory=dict)
    disputes: Dict[EscrowId, Dispute] = field(default_factory=dict)
    payer_index: Dict[Principal, List[EscrowId]] = field(default_factory=dict)
    payee_index: Dict[Principal, List[EscrowId]] = field(default_factory=dict)
