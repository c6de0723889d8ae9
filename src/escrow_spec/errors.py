"""Escrow error codes and exceptions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class ErrorCode(IntEnum):
    # Values match the contract's `err uNNN` responses.
    UNAUTHORIZED = 400
    INVALID_INPUT = 401
    NOT_FOUND = 402
    INVALID_STATE = 403
    INSUFFICIENT_BALANCE = 404
    ALREADY_EXISTS = 405
    EXPIRED = 406
    NOT_EXPIRED = 407
    TRANSFER_FAILED = 408
    ZERO_AMOUNT = 409
    SAME_PARTIES = 410


@dataclass(frozen=True)
class EscrowError(Exception):
    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.name}({int(self.code)}): {self.message}"


# Allow Python's Exception machinery to set __traceback__/__context__/__cause__
# while keeping dataclass fields frozen.
_EXCEPTION_ATTRS = frozenset(("__traceback__", "__context__", "__cause__"))
_frozen_setattr = EscrowError.__setattr__


def _escrow_error_setattr(self: EscrowError, name: str, value: object) -> None:
    if name in _EXCEPTION_ATTRS:
        object.__setattr__(self, name, value)
    else:
        _frozen_setattr(self, name, value)


EscrowError.__setattr__ = _escrow_error_setattr  # type: ignore[method-assign]
