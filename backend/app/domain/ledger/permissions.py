"""
Account permission rules.

keyPerson may always view and edit. Other roles must appear in the
account's edit set to post, or in its view or edit set to read.
"""

from typing import Iterable

from backend.app.core.exceptions import InsufficientPermissionsError
from backend.app.models.account import Account
from backend.app.models.enums import UserRole, PERMISSION_ROLES


def _role_values(roles: Iterable) -> set:
    return {r.value if isinstance(r, UserRole) else str(r) for r in roles or ()}


def can_edit(account: Account, role: UserRole) -> bool:
    if role == UserRole.KEY_PERSON:
        return True
    if role not in PERMISSION_ROLES:
        return False
    return role.value in _role_values(account.edit_permission)


def can_view(account: Account, role: UserRole) -> bool:
    if can_edit(account, role):
        return True
    if role not in PERMISSION_ROLES:
        return False
    return role.value in _role_values(account.view_permission)


def ensure_can_edit(account: Account, role: UserRole) -> None:
    if not can_edit(account, role):
        raise InsufficientPermissionsError(
            f"Role {role.value} may not post to account '{account.name}'",
            details={"account": account.name, "required": sorted(_role_values(account.edit_permission))},
        )


def ensure_can_view(account: Account, role: UserRole) -> None:
    if not can_view(account, role):
        raise InsufficientPermissionsError(
            f"Role {role.value} may not view account '{account.name}'",
            details={"account": account.name},
        )
