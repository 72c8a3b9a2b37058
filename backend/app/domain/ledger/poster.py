"""
Entry Poster (Domain Logic).

Computes, encrypts and persists ledger entries together with their
general-journal mirror. Must be transactional and serialized per account.
"""

import logging
from dataclasses import dataclass, replace
from datetime import date as date_type
from decimal import Decimal
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    AppException,
    ConflictError,
    LedgerIntegrityError,
    PostingError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from backend.app.domain.ledger.codec import EntryFields, LedgerEntryCodec
from backend.app.domain.ledger.collaborators import AuditRef, AuditService, Cipher, IdentityProvider
from backend.app.domain.ledger.permissions import ensure_can_edit
from backend.app.domain.ledger.running_total import ZERO, compute_running_total
from backend.app.models.account import Account
from backend.app.models.account_entry import AccountEntry
from backend.app.models.enums import UserRole
from backend.app.models.general_journal import GeneralJournalEntry
from backend.app.models.ledger_enums import Basket
from backend.app.services.account_locking import account_locks, lock_account_row

logger = logging.getLogger("bookkeeper.ledger.poster")

T = TypeVar("T")

OPENING_DESCRIPTION = "Beginning balance"
CREATION_DESCRIPTION = "Account creation"


@dataclass(frozen=True)
class EntryRequest:
    """One line to append to an account."""
    account_name: str
    date: date_type
    description: str
    debit: Decimal
    credit: Decimal
    basket: Optional[Basket] = None
    idempotency_key: Optional[str] = None


@dataclass(frozen=True)
class PostedEntry:
    account_name: str
    basket: Basket
    entry_id: int
    journal_id: int
    sequence_no: int
    date: date_type
    fields: EntryFields
    audit_ref: AuditRef
    replayed: bool = False


def validate_amounts(debit: Decimal, credit: Decimal) -> None:
    """
    Reject amounts a single entry may not carry.

    Both sides must be non-negative and at most one of them non-zero.
    A zero/zero entry is allowed (account creation marker).
    """
    if debit is None or credit is None:
        raise ValidationFailedError("Debit and credit are required")
    if not debit.is_finite() or not credit.is_finite():
        raise ValidationFailedError("Debit and credit must be finite numbers")
    if debit < ZERO or credit < ZERO:
        raise ValidationFailedError(
            "Debit and credit must be non-negative",
            details={"debit": str(debit), "credit": str(credit)},
        )
    if debit > ZERO and credit > ZERO:
        raise ValidationFailedError(
            "An entry is either a debit or a credit, not both",
            details={"debit": str(debit), "credit": str(credit)},
        )


def validate_request(request: EntryRequest) -> None:
    if not request.account_name or not request.account_name.strip():
        raise ValidationFailedError("Account name is required")
    if request.date is None:
        raise ValidationFailedError("Entry date is required")
    validate_amounts(request.debit, request.credit)


class LedgerPoster:
    """
    Posts entries to accounts.

    Flow per entry (one database transaction, account lock held):
    1. Load the account row (FOR UPDATE) and its last entry
    2. Compute the new running total from the decoded prior total
    3. Encode the sensitive fields into an encrypted bag
    4. Request an external audit record
    5. Insert the account entry (next sequence number)
    6. Insert the general-journal mirror

    A failure at any step rolls the database back. The external audit
    record from step 4 is append-only and is not compensated.
    """

    def __init__(self, cipher: Cipher, audit_service: AuditService):
        self.codec = LedgerEntryCodec(cipher)
        self.audit_service = audit_service

    async def post_entry(
        self,
        db: AsyncSession,
        request: EntryRequest,
        identity: IdentityProvider,
        role: UserRole,
    ) -> PostedEntry:
        """Append an entry to an existing account."""
        validate_request(request)
        owner_key = await identity.get_public_key("Transaction authorization")

        async def work() -> PostedEntry:
            account = await self._load_for_posting(db, request, role)
            return await self._append(db, account, request, owner_key)

        posted = await self._run(db, [request.account_name], work)
        self._log_posted(posted)
        return posted

    async def post_initial_entry(
        self,
        db: AsyncSession,
        request: EntryRequest,
        identity: IdentityProvider,
        role: UserRole,
    ) -> PostedEntry:
        """Post the opening entry of an account that has no entries yet."""
        validate_request(request)
        owner_key = await identity.get_public_key("Account creation authorization")

        async def work() -> PostedEntry:
            account = await self._load_for_posting(db, request, role)
            return await self._append(db, account, request, owner_key, initial=True)

        posted = await self._run(db, [request.account_name], work)
        self._log_posted(posted)
        return posted

    async def open_account(
        self,
        db: AsyncSession,
        account: Account,
        request: EntryRequest,
        identity: IdentityProvider,
    ) -> PostedEntry:
        """
        Persist a new account together with its opening entry.

        The account row and the opening entry commit or roll back together.
        """
        validate_request(request)
        owner_key = await identity.get_public_key("Account creation authorization")

        async def work() -> PostedEntry:
            db.add(account)
            await db.flush()
            return await self._append(db, account, request, owner_key, initial=True)

        posted = await self._run(db, [account.name], work)
        self._log_posted(posted)
        return posted

    async def post_transaction(
        self,
        db: AsyncSession,
        debit_account: str,
        credit_account: str,
        entry_date: date_type,
        description: str,
        debit_amount: Decimal,
        credit_amount: Decimal,
        identity: IdentityProvider,
        role: UserRole,
        idempotency_key: Optional[str] = None,
    ) -> tuple[PostedEntry, PostedEntry]:
        """
        Post a balanced double-entry transaction across two accounts.

        Debits one account and credits the other for the same amount,
        in a single database transaction.
        """
        if debit_amount != credit_amount:
            raise ValidationFailedError("Debit and Credit amounts must be equal.")
        if debit_amount is None or debit_amount <= ZERO:
            raise ValidationFailedError("Transaction amount must be positive")
        if debit_account == credit_account:
            raise ValidationFailedError("Debit and credit accounts must differ")

        debit_request = EntryRequest(
            account_name=debit_account,
            date=entry_date,
            description=description,
            debit=debit_amount,
            credit=ZERO,
            idempotency_key=f"{idempotency_key}:debit" if idempotency_key else None,
        )
        credit_request = EntryRequest(
            account_name=credit_account,
            date=entry_date,
            description=description,
            debit=ZERO,
            credit=credit_amount,
            idempotency_key=f"{idempotency_key}:credit" if idempotency_key else None,
        )
        validate_request(debit_request)
        validate_request(credit_request)
        owner_key = await identity.get_public_key("Transaction authorization")

        async def work() -> tuple[PostedEntry, PostedEntry]:
            # Row locks in name order, matching the in-process lock order
            loaded = {}
            for req in sorted((debit_request, credit_request), key=lambda r: r.account_name):
                loaded[req.account_name] = await self._load_for_posting(db, req, role)
            debit_posted = await self._append(db, loaded[debit_account], debit_request, owner_key)
            credit_posted = await self._append(db, loaded[credit_account], credit_request, owner_key)
            return debit_posted, credit_posted

        debit_posted, credit_posted = await self._run(db, [debit_account, credit_account], work)
        self._log_posted(debit_posted)
        self._log_posted(credit_posted)
        return debit_posted, credit_posted

    async def _run(self, db: AsyncSession, account_names: list, work: Callable[[], Awaitable[T]]) -> T:
        async with account_locks(*account_names):
            try:
                result = await work()
                await db.commit()
                return result
            except AppException:
                await db.rollback()
                raise
            except IntegrityError as exc:
                await db.rollback()
                logger.warning("Concurrent post rejected", extra={"accounts": account_names})
                raise ConflictError(
                    "Account ledger changed during posting; retry the entry",
                    details={"accounts": account_names},
                ) from exc
            except Exception as exc:
                await db.rollback()
                logger.exception("Posting failed", extra={"accounts": account_names})
                raise PostingError(", ".join(account_names)) from exc

    async def _load_for_posting(self, db: AsyncSession, request: EntryRequest, role: UserRole) -> Account:
        account = await lock_account_row(db, request.account_name)
        if account is None:
            raise ResourceNotFoundError("Account", request.account_name)
        ensure_can_edit(account, role)
        if request.basket is not None and request.basket != account.basket:
            raise ValidationFailedError(
                f"Account '{account.name}' is a {account.basket.value} account",
                details={"expected": account.basket.value, "given": request.basket.value},
            )
        return account

    async def _append(
        self,
        db: AsyncSession,
        account: Account,
        request: EntryRequest,
        owner_key: str,
        initial: bool = False,
    ) -> PostedEntry:
        if request.idempotency_key:
            replayed = await self._find_replay(db, account, request.idempotency_key)
            if replayed is not None:
                return replayed

        # 1. Prior balance
        last_entry = await self._last_entry(db, account.id)
        if initial and last_entry is not None:
            raise ConflictError(
                f"Account '{account.name}' already has entries",
                details={"account": account.name},
            )
        prior_total = ZERO
        if last_entry is not None:
            decoded = await self.codec.decode(last_entry.encrypted_data)
            if "runningTotal" in decoded.failed_fields:
                raise LedgerIntegrityError(account.name, last_entry.sequence_no)
            prior_total = decoded.fields.running_total

        # 2. New balance
        new_total = compute_running_total(prior_total, account.basket, request.debit, request.credit)

        # 3. Encrypted bag
        fields = EntryFields(
            description=request.description or "",
            debit=request.debit,
            credit=request.credit,
            running_total=new_total,
            owner_public_key=owner_key,
        )
        encrypted_data = await self.codec.encode(fields)

        # 4. External audit record
        audit_ref = await self.audit_service.record(
            protocol_id=settings.entry_protocol_id,
            key_id=owner_key,
            fields=[request.date.isoformat(), encrypted_data, account.name],
            description=f"Transaction entry for {account.name}",
        )

        # 5. Account entry
        sequence_no = last_entry.sequence_no + 1 if last_entry is not None else 1
        entry = AccountEntry(
            account_id=account.id,
            sequence_no=sequence_no,
            date=request.date,
            encrypted_data=encrypted_data,
            txid=audit_ref.txid,
            output_script=audit_ref.output_script,
            audit_metadata=audit_ref.metadata,
            idempotency_key=request.idempotency_key,
        )
        db.add(entry)
        await db.flush()

        # 6. General-journal mirror
        journal = GeneralJournalEntry(
            account_id=account.id,
            entry_id=entry.id,
            account_name=account.name,
            date=request.date,
            encrypted_data=encrypted_data,
            txid=audit_ref.txid,
            output_script=audit_ref.output_script,
            audit_metadata=audit_ref.metadata,
        )
        db.add(journal)
        await db.flush()

        return PostedEntry(
            account_name=account.name,
            basket=account.basket,
            entry_id=entry.id,
            journal_id=journal.id,
            sequence_no=sequence_no,
            date=request.date,
            fields=fields,
            audit_ref=audit_ref,
        )

    async def _last_entry(self, db: AsyncSession, account_id: int) -> Optional[AccountEntry]:
        result = await db.execute(
            select(AccountEntry)
            .where(AccountEntry.account_id == account_id)
            .order_by(AccountEntry.sequence_no.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _find_replay(self, db: AsyncSession, account: Account, key: str) -> Optional[PostedEntry]:
        result = await db.execute(
            select(AccountEntry, GeneralJournalEntry.id)
            .join(GeneralJournalEntry, GeneralJournalEntry.entry_id == AccountEntry.id)
            .where(AccountEntry.account_id == account.id, AccountEntry.idempotency_key == key)
        )
        row = result.first()
        if row is None:
            return None

        entry, journal_id = row
        decoded = await self.codec.decode(entry.encrypted_data)
        return PostedEntry(
            account_name=account.name,
            basket=account.basket,
            entry_id=entry.id,
            journal_id=journal_id,
            sequence_no=entry.sequence_no,
            date=entry.date,
            fields=decoded.fields,
            audit_ref=AuditRef(
                txid=entry.txid or "",
                output_script=entry.output_script or "",
                metadata=entry.audit_metadata or {},
            ),
            replayed=True,
        )

    @staticmethod
    def _log_posted(posted: PostedEntry) -> None:
        logger.info(
            "Entry posted" if not posted.replayed else "Entry replayed",
            extra={"account": posted.account_name, "sequence_no": posted.sequence_no},
        )
