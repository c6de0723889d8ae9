"""Operation entrypoints for the escrow ledger.

Ledger methods raise `EscrowError`; this module is the result-typed surface
used by scenario replay and fixture generation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .errors import ErrorCode, EscrowError
from .ledger import EscrowLedger
from .types import Principal

logger = logging.getLogger(__name__)


class OpKind(Enum):
    LOCK_ESCROW = "lock_escrow"
    RELEASE_ESCROW = "release_escrow"
    REFUND_ESCROW = "refund_escrow"
    CANCEL_ESCROW = "cancel_escrow"
    INITIATE_DISPUTE = "initiate_dispute"
    RESOLVE_DISPUTE = "resolve_dispute"
    SET_OWNER = "set_owner"
    SET_FEE_RECIPIENT = "set_fee_recipient"
    SET_ESCROWS_ENABLED = "set_escrows_enabled"


@dataclass
class Operation:
    kind: OpKind
    caller: Principal
    args: Dict[str, Any] = field(default_factory=dict)


class OpResult:
    """Thin wrapper for operation results."""

    def __init__(self, ok: bool, value: Any = None, error: Optional[EscrowError] = None):
        self.ok = ok
        self.value = value
        self.error = error

    @classmethod
    def success(cls, value: Any = None) -> "OpResult":
        return cls(True, value, None)

    @classmethod
    def failure(cls, error: EscrowError) -> "OpResult":
        return cls(False, None, error)

    def __repr__(self) -> str:
        if self.ok:
            return f"OpResult(ok, value={self.value!r})"
        return f"OpResult(err, {self.error})"


def _lock(ledger: EscrowLedger, op: Operation) -> Any:
    a = op.args
    return ledger.lock_escrow(
        op.caller,
        a.get("payee"),
        a.get("amount"),
        service_id=a.get("service_id"),
        timeout_period=a.get("timeout_period"),
    )


_DISPATCH: Dict[OpKind, Callable[[EscrowLedger, Operation], Any]] = {
    OpKind.LOCK_ESCROW: _lock,
    OpKind.RELEASE_ESCROW: lambda l, op: l.release_escrow(op.caller, op.args.get("escrow_id")),
    OpKind.REFUND_ESCROW: lambda l, op: l.refund_escrow(op.caller, op.args.get("escrow_id")),
    OpKind.CANCEL_ESCROW: lambda l, op: l.cancel_escrow(op.caller, op.args.get("escrow_id")),
    OpKind.INITIATE_DISPUTE: lambda l, op: l.initiate_dispute(
        op.caller, op.args.get("escrow_id"), op.args.get("reason")
    ),
    OpKind.RESOLVE_DISPUTE: lambda l, op: l.resolve_dispute(
        op.caller, op.args.get("escrow_id"), op.args.get("resolution")
    ),
    OpKind.SET_OWNER: lambda l, op: l.set_owner(op.caller, op.args.get("new_owner")),
    OpKind.SET_FEE_RECIPIENT: lambda l, op: l.set_fee_recipient(
        op.caller, op.args.get("recipient")
    ),
    OpKind.SET_ESCROWS_ENABLED: lambda l, op: l.set_escrows_enabled(
        op.caller, op.args.get("enabled")
    ),
}


def apply_op(ledger: EscrowLedger, op: Operation) -> OpResult:
    """Apply one operation; a failure leaves the ledger unchanged."""
    handler = _DISPATCH.get(op.kind)
    if handler is None:
        return OpResult.failure(EscrowError(ErrorCode.INVALID_INPUT, f"unknown op {op.kind}"))
    try:
        value = handler(ledger, op)
    except EscrowError as exc:
        logger.debug(f"{op.kind.value} by {op.caller} rejected: {exc}")
        return OpResult.failure(exc)
    return OpResult.success(value)


def apply_block(ledger: EscrowLedger, ops: List[Operation]) -> List[OpResult]:
    """Apply a block worth of operations in order, then advance the clock.

    Each operation succeeds or fails on its own (failed operations are
    included with their error and change nothing), matching how a chain
    includes failed contract calls in a block.
    """
    results = [apply_op(ledger, op) for op in ops]
    ledger.clock.advance(1)
    return results
