"""Platform fee arithmetic (integer basis points, rounded down)."""

from __future__ import annotations

from .config import BPS_DIVISOR, MAX_BPS, PLATFORM_FEE_BPS
from .errors import ErrorCode, EscrowError


def calculate_fee(amount: int, fee_bps: int = PLATFORM_FEE_BPS) -> int:
    """fee = floor(amount * fee_bps / BPS_DIVISOR)."""
    if amount < 0:
        raise EscrowError(ErrorCode.INVALID_INPUT, "amount must be >= 0")
    if fee_bps < 0 or fee_bps > MAX_BPS:
        raise EscrowError(ErrorCode.INVALID_INPUT, "fee_bps out of range")
    return amount * fee_bps // BPS_DIVISOR


def split_amount(amount: int, fee_bps: int = PLATFORM_FEE_BPS) -> tuple[int, int]:
    """Return (fee, net) with fee + net == amount."""
    fee = calculate_fee(amount, fee_bps)
    return fee, amount - fee
