"""Authorization policy for escrow transitions.

Every permission rule lives here; the ledger never compares callers to
parties directly.
"""

from __future__ import annotations

from enum import Enum

from .clock import is_expired
from .errors import ErrorCode, EscrowError
from .types import Action, BlockHeight, Escrow, EscrowStatus, Principal


class Role(Enum):
    PAYER = "payer"
    PAYEE = "payee"
    OWNER = "owner"


# Roles allowed to attempt each action.
_GRANTS: dict[Action, frozenset[Role]] = {
    Action.RELEASE: frozenset({Role.PAYER}),
    Action.REFUND: frozenset({Role.PAYER, Role.PAYEE, Role.OWNER}),
    Action.CANCEL: frozenset({Role.PAYEE}),
    Action.INITIATE_DISPUTE: frozenset({Role.PAYER, Role.PAYEE}),
    Action.RESOLVE_DISPUTE: frozenset({Role.OWNER}),
}

# Roles whose grant only holds once the escrow has expired.
_EXPIRY_GATED: dict[Action, frozenset[Role]] = {
    Action.REFUND: frozenset({Role.PAYER}),
}

_REQUIRED_STATUS: dict[Action, EscrowStatus] = {
    Action.RELEASE: EscrowStatus.LOCKED,
    Action.REFUND: EscrowStatus.LOCKED,
    Action.CANCEL: EscrowStatus.LOCKED,
    Action.INITIATE_DISPUTE: EscrowStatus.LOCKED,
    Action.RESOLVE_DISPUTE: EscrowStatus.DISPUTED,
}


def roles_of(caller: Principal, escrow: Escrow, owner: Principal) -> frozenset[Role]:
    roles = set()
    if caller == escrow.payer:
        roles.add(Role.PAYER)
    if caller == escrow.payee:
        roles.add(Role.PAYEE)
    if caller == owner:
        roles.add(Role.OWNER)
    return frozenset(roles)


def authorize(
    caller: Principal,
    escrow: Escrow,
    action: Action,
    now: BlockHeight,
    owner: Principal,
) -> None:
    """Raise the first rule violated by `caller` attempting `action`.

    Checks run in a fixed order: role, expiry gate, then escrow status.
    """
    held = roles_of(caller, escrow, owner) & _GRANTS[action]
    if not held:
        raise EscrowError(
            ErrorCode.UNAUTHORIZED, f"{caller} may not {action.value} escrow {escrow.escrow_id}"
        )

    gated = _EXPIRY_GATED.get(action, frozenset())
    if held <= gated and not is_expired(escrow.timeout_at, now):
        raise EscrowError(
            ErrorCode.NOT_EXPIRED,
            f"escrow {escrow.escrow_id} expires after block {escrow.timeout_at}",
        )

    required = _REQUIRED_STATUS[action]
    if escrow.status != required:
        raise EscrowError(
            ErrorCode.INVALID_STATE,
            f"escrow {escrow.escrow_id} is {escrow.status.label}, expected {required.label}",
        )


def can(
    caller: Principal,
    escrow: Escrow,
    action: Action,
    now: BlockHeight,
    owner: Principal,
) -> bool:
    try:
        authorize(caller, escrow, action, now, owner)
    except EscrowError:
        return False
    return True


def permitted_actions(
    caller: Principal,
    escrow: Escrow,
    now: BlockHeight,
    owner: Principal,
) -> frozenset[Action]:
    return frozenset(a for a in Action if can(caller, escrow, a, now, owner))
