"""
Accounts API endpoints.

Chart of accounts, entry posting and account read-back. Every read and
write is checked against the account's view/edit permission sets.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from backend.app.db.session import get_db
from backend.app.core.dependencies import (
    current_role,
    get_budget_aggregator,
    get_cipher,
    get_identity_provider,
    get_ledger_poster,
)
from backend.app.core.guards import require_ledger_member
from backend.app.domain.ledger.budget import BudgetAggregator
from backend.app.domain.ledger.collaborators import Cipher, IdentityProvider
from backend.app.domain.ledger.poster import EntryRequest, LedgerPoster, PostedEntry
from backend.app.schemas.ledger import (
    AccountCreate,
    AccountCreatedResponse,
    AccountEntriesResponse,
    AccountResponse,
    AccountSummaryResponse,
    AuditRefResponse,
    EntryCreate,
    EntryResponse,
    LastEntryResponse,
    PostedEntryResponse,
    RawEntryResponse,
    TransactionCreate,
    TransactionResponse,
)
from backend.app.services.account_service import AccountService
from backend.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/accounts", tags=["Accounts"])


def posted_entry_response(posted: PostedEntry) -> PostedEntryResponse:
    return PostedEntryResponse(
        account_name=posted.account_name,
        basket=posted.basket,
        sequence_no=posted.sequence_no,
        entry_id=posted.entry_id,
        journal_id=posted.journal_id,
        date=posted.date,
        description=posted.fields.description,
        debit=posted.fields.debit,
        credit=posted.fields.credit,
        running_total=posted.fields.running_total,
        audit_ref=AuditRefResponse(
            txid=posted.audit_ref.txid,
            output_script=posted.audit_ref.output_script,
            metadata=posted.audit_ref.metadata,
        ),
        replayed=posted.replayed,
    )


def entry_request(entry_data: EntryCreate) -> EntryRequest:
    return EntryRequest(
        account_name=entry_data.account_name.strip(),
        date=entry_data.date,
        description=entry_data.description,
        debit=entry_data.debit,
        credit=entry_data.credit,
        basket=entry_data.basket,
        idempotency_key=entry_data.idempotency_key,
    )


@router.post("/create", response_model=AccountCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_account(
    account_data: AccountCreate,
    current_user: dict = Depends(require_ledger_member),
    poster: LedgerPoster = Depends(get_ledger_poster),
    identity: IdentityProvider = Depends(get_identity_provider),
    db: AsyncSession = Depends(get_db)
):
    """
    Create an account together with its opening entry.

    Names are trimmed and must be unique. Default permissions: edit by
    Manager, view by Viewer.
    """
    account, posted = await AccountService.create_account(
        db,
        poster,
        identity,
        role=current_role(current_user),
        creator_public_key=current_user["sub"],
        name=account_data.account_name,
        basket=account_data.basket,
        edit_permission=account_data.edit_permission,
        view_permission=account_data.view_permission,
        opening_date=account_data.opening_date,
        opening_debit=account_data.opening_debit,
        opening_credit=account_data.opening_credit,
    )

    await log_event(
        db,
        AuditAction.ACCOUNT_CREATED,
        actor_public_key=current_user["sub"],
        target=account.name,
        metadata={"basket": account.basket.value, "txid": posted.audit_ref.txid}
    )

    return AccountCreatedResponse(
        account=AccountResponse.model_validate(account),
        opening_entry=posted_entry_response(posted),
    )


@router.get("", response_model=List[AccountResponse])
async def list_accounts(
    current_user: dict = Depends(require_ledger_member),
    db: AsyncSession = Depends(get_db)
):
    """List the accounts the caller may view."""
    return await AccountService.list_accounts(db, current_role(current_user))


@router.post("/entry", response_model=PostedEntryResponse, status_code=status.HTTP_201_CREATED)
async def post_entry(
    entry_data: EntryCreate,
    current_user: dict = Depends(require_ledger_member),
    poster: LedgerPoster = Depends(get_ledger_poster),
    identity: IdentityProvider = Depends(get_identity_provider),
    db: AsyncSession = Depends(get_db)
):
    """
    Append an entry to an account.

    The running total is derived server-side from the previous entry.
    Re-posting with the same idempotency_key returns the stored entry.
    """
    posted = await poster.post_entry(db, entry_request(entry_data), identity, current_role(current_user))

    if not posted.replayed:
        await log_event(
            db,
            AuditAction.ENTRY_POSTED,
            actor_public_key=current_user["sub"],
            target=posted.account_name,
            metadata={"sequence_no": posted.sequence_no, "txid": posted.audit_ref.txid}
        )

    return posted_entry_response(posted)


@router.post("/transaction", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def post_transaction(
    transaction: TransactionCreate,
    current_user: dict = Depends(require_ledger_member),
    poster: LedgerPoster = Depends(get_ledger_poster),
    identity: IdentityProvider = Depends(get_identity_provider),
    db: AsyncSession = Depends(get_db)
):
    """Debit one account and credit another for the same amount, atomically."""
    debit_posted, credit_posted = await poster.post_transaction(
        db,
        debit_account=transaction.debit_account.strip(),
        credit_account=transaction.credit_account.strip(),
        entry_date=transaction.date,
        description=transaction.description,
        debit_amount=transaction.debit_amount,
        credit_amount=transaction.credit_amount,
        identity=identity,
        role=current_role(current_user),
        idempotency_key=transaction.idempotency_key,
    )

    if not debit_posted.replayed:
        await log_event(
            db,
            AuditAction.TRANSACTION_POSTED,
            actor_public_key=current_user["sub"],
            target=f"{debit_posted.account_name} / {credit_posted.account_name}",
            metadata={
                "debit_sequence_no": debit_posted.sequence_no,
                "credit_sequence_no": credit_posted.sequence_no,
            }
        )

    return TransactionResponse(
        debit=posted_entry_response(debit_posted),
        credit=posted_entry_response(credit_posted),
    )


@router.get("/last-entry/{account_name}", response_model=LastEntryResponse)
async def get_last_entry(
    account_name: str,
    current_user: dict = Depends(require_ledger_member),
    db: AsyncSession = Depends(get_db)
):
    """Encrypted bag of the latest entry plus the account basket."""
    account, entry = await AccountService.get_last_entry(db, account_name, current_role(current_user))
    return LastEntryResponse(
        encrypted_data=entry.encrypted_data if entry else None,
        basket=account.basket,
        sequence_no=entry.sequence_no if entry else None,
    )


@router.get("/{account_name}", response_model=AccountEntriesResponse)
async def get_account_entries(
    account_name: str,
    current_user: dict = Depends(require_ledger_member),
    cipher: Cipher = Depends(get_cipher),
    db: AsyncSession = Depends(get_db)
):
    """Decoded entries in posting order. Undecodable fields carry fallbacks."""
    account, decoded_entries = await AccountService.get_entries(
        db, cipher, account_name, current_role(current_user)
    )
    return AccountEntriesResponse(
        account=AccountResponse.model_validate(account),
        entries=[
            EntryResponse(
                sequence_no=entry.sequence_no,
                date=entry.date,
                description=decoded.fields.description,
                debit=decoded.fields.debit,
                credit=decoded.fields.credit,
                running_total=decoded.fields.running_total,
                owner_public_key=decoded.fields.owner_public_key,
                txid=entry.txid,
                failed_fields=list(decoded.failed_fields),
                created_at=entry.created_at,
            )
            for entry, decoded in decoded_entries
        ],
    )


@router.get("/{account_name}/entries", response_model=List[RawEntryResponse])
async def get_raw_entries(
    account_name: str,
    current_user: dict = Depends(require_ledger_member),
    db: AsyncSession = Depends(get_db)
):
    """Entries with their encrypted bags, for client-side decryption."""
    return await AccountService.get_raw_entries(db, account_name, current_role(current_user))


@router.get("/{account_name}/distinct-months", response_model=List[str])
async def get_distinct_months(
    account_name: str,
    current_user: dict = Depends(require_ledger_member),
    aggregator: BudgetAggregator = Depends(get_budget_aggregator),
    db: AsyncSession = Depends(get_db)
):
    """Sorted YYYY-MM values that have at least one entry."""
    await AccountService.get_viewable_account(db, account_name, current_role(current_user))
    return await aggregator.distinct_months(db, account_name)


@router.get("/{account_name}/summary", response_model=AccountSummaryResponse)
async def get_account_summary(
    account_name: str,
    current_user: dict = Depends(require_ledger_member),
    aggregator: BudgetAggregator = Depends(get_budget_aggregator),
    db: AsyncSession = Depends(get_db)
):
    """Balance and monthly averages of one account."""
    account = await AccountService.get_viewable_account(db, account_name, current_role(current_user))
    return AccountSummaryResponse(
        name=account.name,
        basket=account.basket,
        running_total=await aggregator.running_total(db, account.name),
        month_count=await aggregator.distinct_month_count(db, account.name),
        monthly_average=await aggregator.account_average(db, account.name),
        liability_average=await aggregator.liability_average(db, account.name),
    )
