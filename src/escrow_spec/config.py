"""Escrow spec configuration constants.

Keep this file aligned with the constants exported by the escrow-manager
contract (`get-escrow-constants`).
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .errors import ErrorCode, EscrowError

# Amounts
MIN_ESCROW_AMOUNT = 1000
U128_MAX = (1 << 128) - 1

# Fees
PLATFORM_FEE_BPS = 200  # 2%
BPS_DIVISOR = 10_000
MAX_BPS = 10_000

# Timeouts (logical blocks)
DEFAULT_TIMEOUT_BLOCKS = 2016  # ~2 weeks of blocks
MIN_TIMEOUT_BLOCKS = 1
MAX_TIMEOUT_BLOCKS = 525_600

# Disputes
MAX_REASON_LEN = 256

# Principal holding locked funds; its balance always equals total value locked.
CUSTODY_ACCOUNT = "escrow-custody"

_TRUE_VALUES = ("true", "1", "yes")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise EscrowError(ErrorCode.INVALID_INPUT, f"{name} must be an integer, got {raw!r}")


@dataclass
class LedgerConfig:
    """Tunable parameters of an escrow ledger."""

    fee_bps: int = PLATFORM_FEE_BPS
    min_escrow_amount: int = MIN_ESCROW_AMOUNT
    default_timeout_blocks: int = DEFAULT_TIMEOUT_BLOCKS
    escrows_enabled: bool = True

    @classmethod
    def from_env(cls) -> "LedgerConfig":
        """Load configuration from environment variables."""
        config = cls()
        config.fee_bps = _env_int("ESCROW_FEE_BPS", config.fee_bps)
        config.min_escrow_amount = _env_int("ESCROW_MIN_AMOUNT", config.min_escrow_amount)
        config.default_timeout_blocks = _env_int(
            "ESCROW_DEFAULT_TIMEOUT", config.default_timeout_blocks
        )
        enabled = os.environ.get("ESCROW_ENABLED")
        if enabled:
            config.escrows_enabled = enabled.lower() in _TRUE_VALUES
        config.validate()
        return config

    def validate(self) -> None:
        if self.fee_bps < 0 or self.fee_bps > MAX_BPS:
            raise EscrowError(ErrorCode.INVALID_INPUT, "fee_bps out of range")
        if self.min_escrow_amount <= 0:
            raise EscrowError(ErrorCode.INVALID_INPUT, "min_escrow_amount must be > 0")
        if not MIN_TIMEOUT_BLOCKS <= self.default_timeout_blocks <= MAX_TIMEOUT_BLOCKS:
            raise EscrowError(ErrorCode.INVALID_INPUT, "default_timeout_blocks out of range")
