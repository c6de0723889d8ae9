"""Helpers to serialize ledger state and operations for fixtures."""

from __future__ import annotations

from typing import Any, Dict, Optional

from .ledger import EscrowLedger
from .state_transition import Operation, OpKind, OpResult
from .clock import Clock
from .config import LedgerConfig
from .types import Dispute, DisputeResolution, Escrow, EscrowStatus, LedgerState


def escrow_to_json(e: Escrow) -> Dict[str, Any]:
    return {
        "escrow_id": e.escrow_id,
        "payer": e.payer,
        "payee": e.payee,
        "amount": e.amount,
        "fee_amount": e.fee_amount,
        "status": e.status.label,
        "created_at": e.created_at,
        "timeout_at": e.timeout_at,
        "released_at": e.released_at,
        "service_id": e.service_id,
    }


def dispute_to_json(d: Dispute) -> Dict[str, Any]:
    return {
        "escrow_id": d.escrow_id,
        "initiated_by": d.initiated_by,
        "initiated_at": d.initiated_at,
        "reason": d.reason,
        "resolved": d.resolved,
        "resolution": d.resolution.name.lower() if d.resolution is not None else None,
    }


def state_to_json(state: LedgerState, block_height: int = 0) -> Dict[str, Any]:
    return {
        "block_height": block_height,
        "owner": state.owner,
        "fee_recipient": state.fee_recipient,
        "escrows_enabled": state.escrows_enabled,
        "escrow_nonce": state.escrow_nonce,
        "total_value_locked": state.total_value_locked,
        "balances": [
            {"principal": p, "balance": b} for p, b in sorted(state.balances.items())
        ],
        "escrows": [escrow_to_json(e) for _, e in sorted(state.escrows.items())],
        "disputes": [dispute_to_json(d) for _, d in sorted(state.disputes.items())],
    }


def op_to_json(op: Operation) -> Dict[str, Any]:
    return {"op": op.kind.value, "caller": op.caller, "args": dict(op.args)}


def op_from_json(data: Dict[str, Any]) -> Operation:
    return Operation(
        kind=OpKind(data["op"]),
        caller=data["caller"],
        args=dict(data.get("args") or {}),
    )


def result_to_json(result: OpResult) -> Dict[str, Any]:
    error: Optional[str] = result.error.code.name if result.error else None
    return {"ok": result.ok, "value": result.value, "error": error}


def ledger_to_json(ledger: EscrowLedger) -> Dict[str, Any]:
    """Export a consistent snapshot of a live ledger."""
    return state_to_json(ledger.snapshot(), ledger.clock.height)


def escrow_from_json(data: Dict[str, Any]) -> Escrow:
    return Escrow(
        escrow_id=data["escrow_id"],
        payer=data["payer"],
        payee=data["payee"],
        amount=data["amount"],
        fee_amount=data["fee_amount"],
        status=EscrowStatus[data["status"].upper()],
        created_at=data["created_at"],
        timeout_at=data["timeout_at"],
        released_at=data.get("released_at"),
        service_id=data.get("service_id"),
    )


def dispute_from_json(data: Dict[str, Any]) -> Dispute:
    resolution = data.get("resolution")
    return Dispute(
        escrow_id=data["escrow_id"],
        initiated_by=data["initiated_by"],
        initiated_at=data["initiated_at"],
        reason=data["reason"],
        resolved=data.get("resolved", False),
        resolution=DisputeResolution[resolution.upper()] if resolution else None,
    )


def state_from_json(data: Dict[str, Any]) -> LedgerState:
    state = LedgerState(
        owner=data["owner"],
        fee_recipient=data["fee_recipient"],
        escrows_enabled=data.get("escrows_enabled", True),
        escrow_nonce=data.get("escrow_nonce", 0),
        total_value_locked=data.get("total_value_locked", 0),
    )
    for entry in data.get("balances", []):
        state.balances[entry["principal"]] = entry["balance"]
    # Party indices are not exported; ids are allocated in order, so sorting
    # by id restores index order.
    for item in sorted(data.get("escrows", []), key=lambda e: e["escrow_id"]):
        escrow = escrow_from_json(item)
        state.escrows[escrow.escrow_id] = escrow
        state.payer_index.setdefault(escrow.payer, []).append(escrow.escrow_id)
        state.payee_index.setdefault(escrow.payee, []).append(escrow.escrow_id)
    for item in data.get("disputes", []):
        dispute = dispute_from_json(item)
        state.disputes[dispute.escrow_id] = dispute
    return state


def ledger_from_json(
    data: Dict[str, Any], config: Optional[Dict[str, Any]] = None
) -> EscrowLedger:
    """Rebuild a live ledger from `state_to_json` output."""
    return EscrowLedger.from_state(
        state_from_json(data),
        config=LedgerConfig(**(config or {})),
        clock=Clock(data.get("block_height", 0)),
    )
