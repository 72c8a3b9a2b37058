"""
Account Service.

Chart-of-accounts operations. Accounts are created once with an opening
entry and never deleted; entries are only appended through the poster.
"""

import logging
from datetime import date as date_type
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import (
    ConflictError,
    InsufficientPermissionsError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from backend.app.domain.ledger.codec import DecodedEntry, LedgerEntryCodec
from backend.app.domain.ledger.collaborators import Cipher, IdentityProvider
from backend.app.domain.ledger.permissions import can_view, ensure_can_view
from backend.app.domain.ledger.poster import (
    CREATION_DESCRIPTION,
    OPENING_DESCRIPTION,
    EntryRequest,
    LedgerPoster,
    PostedEntry,
    validate_amounts,
)
from backend.app.domain.ledger.running_total import ZERO
from backend.app.models.account import Account
from backend.app.models.account_entry import AccountEntry
from backend.app.models.enums import PERMISSION_ROLES, UserRole
from backend.app.models.general_journal import GeneralJournalEntry
from backend.app.models.ledger_enums import Basket

logger = logging.getLogger("bookkeeper.accounts")

MAX_NAME_LENGTH = 100

ACCOUNT_CREATOR_ROLES = (UserRole.KEY_PERSON, UserRole.MANAGER, UserRole.ACCOUNTANT)
DEFAULT_EDIT_PERMISSION = [UserRole.MANAGER.value]
DEFAULT_VIEW_PERMISSION = [UserRole.VIEWER.value]


def normalize_account_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationFailedError("Account name is required")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise ValidationFailedError(
            f"Account name must be at most {MAX_NAME_LENGTH} characters",
            details={"length": len(cleaned)},
        )
    return cleaned


def normalize_permission(roles: Optional[Sequence], default: List[str]) -> List[str]:
    if roles is None:
        return list(default)
    values = []
    for role in roles:
        try:
            parsed = UserRole(role)
        except ValueError:
            raise ValidationFailedError(f"Unknown role '{role}'")
        if parsed not in PERMISSION_ROLES:
            raise ValidationFailedError(
                f"Role {parsed.value} cannot appear in account permissions",
                details={"allowed": [r.value for r in PERMISSION_ROLES]},
            )
        if parsed.value not in values:
            values.append(parsed.value)
    return values


class AccountService:

    @staticmethod
    async def create_account(
        db: AsyncSession,
        poster: LedgerPoster,
        identity: IdentityProvider,
        role: UserRole,
        creator_public_key: str,
        name: str,
        basket: Basket,
        edit_permission: Optional[Sequence] = None,
        view_permission: Optional[Sequence] = None,
        opening_date: Optional[date_type] = None,
        opening_debit: Decimal = ZERO,
        opening_credit: Decimal = ZERO,
    ) -> Tuple[Account, PostedEntry]:
        """
        Create an account and post its opening entry in one transaction.

        The opening entry is described as "Beginning balance" when it
        carries an amount, otherwise "Account creation".
        """
        if role not in ACCOUNT_CREATOR_ROLES:
            raise InsufficientPermissionsError("Role may not create accounts")

        name = normalize_account_name(name)
        validate_amounts(opening_debit, opening_credit)
        edit = normalize_permission(edit_permission, DEFAULT_EDIT_PERMISSION)
        view = normalize_permission(view_permission, DEFAULT_VIEW_PERMISSION)

        existing = await db.execute(select(Account.id).where(Account.name == name))
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(f"Account '{name}' already exists", details={"account": name})

        has_amount = opening_debit > ZERO or opening_credit > ZERO
        account = Account(
            name=name,
            basket=basket,
            edit_permission=edit,
            view_permission=view,
            created_by=creator_public_key,
        )
        request = EntryRequest(
            account_name=name,
            date=opening_date or date_type.today(),
            description=OPENING_DESCRIPTION if has_amount else CREATION_DESCRIPTION,
            debit=opening_debit,
            credit=opening_credit,
            basket=basket,
        )
        posted = await poster.open_account(db, account, request, identity)
        await db.refresh(account)
        logger.info("Account created", extra={"account": name, "basket": basket.value})
        return account, posted

    @staticmethod
    async def list_accounts(db: AsyncSession, role: UserRole) -> List[Account]:
        result = await db.execute(select(Account).order_by(Account.name))
        return [a for a in result.scalars().all() if can_view(a, role)]

    @staticmethod
    async def get_viewable_account(db: AsyncSession, name: str, role: UserRole) -> Account:
        result = await db.execute(select(Account).where(Account.name == name))
        account = result.scalar_one_or_none()
        if account is None:
            raise ResourceNotFoundError("Account", name)
        ensure_can_view(account, role)
        return account

    @staticmethod
    async def get_raw_entries(db: AsyncSession, name: str, role: UserRole) -> List[AccountEntry]:
        """Entries in posting order with their encrypted bags untouched."""
        account = await AccountService.get_viewable_account(db, name, role)
        result = await db.execute(
            select(AccountEntry)
            .where(AccountEntry.account_id == account.id)
            .order_by(AccountEntry.sequence_no)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_entries(
        db: AsyncSession, cipher: Cipher, name: str, role: UserRole
    ) -> Tuple[Account, List[Tuple[AccountEntry, DecodedEntry]]]:
        account = await AccountService.get_viewable_account(db, name, role)
        result = await db.execute(
            select(AccountEntry)
            .where(AccountEntry.account_id == account.id)
            .order_by(AccountEntry.sequence_no)
        )
        codec = LedgerEntryCodec(cipher)
        decoded = [(entry, await codec.decode(entry.encrypted_data)) for entry in result.scalars().all()]
        return account, decoded

    @staticmethod
    async def get_last_entry(
        db: AsyncSession, name: str, role: UserRole
    ) -> Tuple[Account, Optional[AccountEntry]]:
        account = await AccountService.get_viewable_account(db, name, role)
        result = await db.execute(
            select(AccountEntry)
            .where(AccountEntry.account_id == account.id)
            .order_by(AccountEntry.sequence_no.desc())
            .limit(1)
        )
        return account, result.scalar_one_or_none()

    @staticmethod
    async def get_journal(
        db: AsyncSession, cipher: Cipher, role: UserRole
    ) -> List[Tuple[GeneralJournalEntry, DecodedEntry]]:
        """General journal in posting order, limited to accounts the role may view."""
        result = await db.execute(select(Account))
        viewable = {a.id for a in result.scalars().all() if can_view(a, role)}

        result = await db.execute(select(GeneralJournalEntry).order_by(GeneralJournalEntry.id))
        codec = LedgerEntryCodec(cipher)
        return [
            (row, await codec.decode(row.encrypted_data))
            for row in result.scalars().all()
            if row.account_id in viewable
        ]
