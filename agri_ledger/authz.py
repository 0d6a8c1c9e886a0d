"""
Authorization lattice for ledger actions.

    owner      -> every action
    grantee    -> verify
    authority  -> verify, emergency restriction

`can_act` answers the question; `authorize` raises the error code that
belongs to the action when the answer is no. Lock gating is separate: a
locked record refuses the actions in LOCK_GATED even for its owner.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Type

from agri_ledger.errors import (
    AccessForbidden,
    AuthorityRequired,
    LedgerError,
    OwnershipMismatch,
    PermissionDenied,
)
from agri_ledger.models import AssetRecord


class Action(str, Enum):
    CREATE = "create-agricultural-record"
    VERIFY = "verify-asset-authenticity"
    TRANSFER = "transfer-asset-ownership"
    REVOKE = "revoke-ledger-access"
    APPEND_METADATA = "append-asset-metadata"
    MODIFY = "modify-asset-record"
    PURGE = "purge-asset-record"
    EMERGENCY_RESTRICT = "activate-emergency-restriction"

    @property
    def mutates(self) -> bool:
        return self is not Action.VERIFY


DENIALS: Dict[Action, Type[LedgerError]] = {
    Action.VERIFY: PermissionDenied,
    Action.EMERGENCY_RESTRICT: AuthorityRequired,
}

LOCK_GATED = frozenset({
    Action.TRANSFER,
    Action.APPEND_METADATA,
    Action.MODIFY,
    Action.PURGE,
})


def can_act(
    action: Action,
    record: AssetRecord,
    caller: str,
    *,
    authority: str,
    granted: bool = False,
) -> bool:
    if caller == record.cultivator_address:
        return True
    if action is Action.VERIFY:
        return granted or caller == authority
    if action is Action.EMERGENCY_RESTRICT:
        return caller == authority
    return False


def authorize(
    action: Action,
    record: AssetRecord,
    caller: str,
    *,
    authority: str,
    granted: bool = False,
) -> None:
    if not can_act(action, record, caller, authority=authority, granted=granted):
        denial = DENIALS.get(action, OwnershipMismatch)
        raise denial(f"{caller} may not {action.value}")


def ensure_unlocked(action: Action, record: AssetRecord) -> None:
    if record.locked and action in LOCK_GATED:
        raise AccessForbidden(f"record is under emergency restriction; {action.value} refused")
