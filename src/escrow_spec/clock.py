"""Logical block clock used for escrow expiry."""

from __future__ import annotations

import threading

from .errors import ErrorCode, EscrowError
from .types import BlockHeight


def is_expired(timeout_at: BlockHeight, now: BlockHeight) -> bool:
    """An escrow expires strictly after its timeout height."""
    return now > timeout_at


class Clock:
    """Monotonic block height; only moves through explicit ticks."""

    def __init__(self, height: BlockHeight = 0):
        if height < 0:
            raise EscrowError(ErrorCode.INVALID_INPUT, "block height must be >= 0")
        self._height = height
        self._lock = threading.Lock()

    @property
    def height(self) -> BlockHeight:
        return self._height

    def advance(self, ticks: int = 1) -> BlockHeight:
        if ticks < 0:
            raise EscrowError(ErrorCode.INVALID_INPUT, "clock cannot move backwards")
        with self._lock:
            self._height += ticks
            return self._height
