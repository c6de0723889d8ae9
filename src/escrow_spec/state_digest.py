"""Canonical ledger state digest (v1)."""
from __future__ import annotations

from typing import Any

from blake3 import blake3

_STATUS_CODES = {
    "locked": 1,
    "released": 2,
    "refunded": 3,
    "disputed": 4,
    "cancelled": 5,
}
_RESOLUTION_CODES = {None: 0, "favor_payer": 1, "favor_payee": 2}


def _u128_be(value: int) -> bytes:
    if value < 0:
        raise ValueError("u128 must be non-negative")
    return int(value).to_bytes(16, "big", signed=False)


def _str(value: str) -> bytes:
    data = value.encode("utf-8")
    return _u128_be(len(data)) + data


def _opt(value: Any) -> bytes:
    if value is None:
        return b"\x00"
    return b"\x01" + _u128_be(int(value))


def compute_state_digest(state: dict[str, Any]) -> str:
    """Compute state digest v1 from an exported ledger state.

    Fields are encoded in canonical order (escrows by id, balances by
    principal) and hashed with BLAKE3-256.
    """
    buf = bytearray()
    for name in ("block_height", "escrow_nonce", "total_value_locked"):
        buf += _u128_be(int(state.get(name, 0)))
    buf += _str(state.get("owner", ""))
    buf += _str(state.get("fee_recipient", ""))
    buf += b"\x01" if state.get("escrows_enabled", True) else b"\x00"

    balances = sorted(state.get("balances", []), key=lambda b: b["principal"])
    buf += _u128_be(len(balances))
    for b in balances:
        buf += _str(b["principal"])
        buf += _u128_be(b["balance"])

    escrows = sorted(state.get("escrows", []), key=lambda e: e["escrow_id"])
    buf += _u128_be(len(escrows))
    for e in escrows:
        buf += _u128_be(e["escrow_id"])
        buf += _str(e["payer"])
        buf += _str(e["payee"])
        for name in ("amount", "fee_amount"):
            buf += _u128_be(e[name])
        buf += bytes([_STATUS_CODES[e["status"]]])
        buf += _u128_be(e["created_at"])
        buf += _u128_be(e["timeout_at"])
        buf += _opt(e.get("released_at"))
        buf += _opt(e.get("service_id"))

    disputes = sorted(state.get("disputes", []), key=lambda d: d["escrow_id"])
    buf += _u128_be(len(disputes))
    for d in disputes:
        buf += _u128_be(d["escrow_id"])
        buf += _str(d["initiated_by"])
        buf += _u128_be(d["initiated_at"])
        buf += _str(d["reason"])
        buf += b"\x01" if d["resolved"] else b"\x00"
        buf += bytes([_RESOLUTION_CODES[d.get("resolution")]])

    return blake3(buf).hexdigest()
