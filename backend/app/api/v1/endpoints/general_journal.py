"""
General Journal API endpoints.

The journal is a cross-account mirror; it is only ever written by the
poster alongside an account entry.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from backend.app.db.session import get_db
from backend.app.core.dependencies import current_role, get_cipher, get_identity_provider, get_ledger_poster
from backend.app.core.guards import require_ledger_member
from backend.app.domain.ledger.collaborators import Cipher, IdentityProvider
from backend.app.domain.ledger.poster import LedgerPoster
from backend.app.api.v1.endpoints.accounts import entry_request, posted_entry_response
from backend.app.schemas.ledger import EntryCreate, JournalEntryResponse, PostedEntryResponse
from backend.app.services.account_service import AccountService
from backend.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/general-journal", tags=["General Journal"])


@router.get("", response_model=List[JournalEntryResponse])
async def list_journal(
    current_user: dict = Depends(require_ledger_member),
    cipher: Cipher = Depends(get_cipher),
    db: AsyncSession = Depends(get_db)
):
    """Decoded journal in posting order, limited to viewable accounts."""
    rows = await AccountService.get_journal(db, cipher, current_role(current_user))
    return [
        JournalEntryResponse(
            id=row.id,
            account_name=row.account_name,
            date=row.date,
            description=decoded.fields.description,
            debit=decoded.fields.debit,
            credit=decoded.fields.credit,
            running_total=decoded.fields.running_total,
            owner_public_key=decoded.fields.owner_public_key,
            txid=row.txid,
            failed_fields=list(decoded.failed_fields),
            created_at=row.created_at,
        )
        for row, decoded in rows
    ]


@router.post("/entry", response_model=PostedEntryResponse, status_code=status.HTTP_201_CREATED)
async def post_journal_entry(
    entry_data: EntryCreate,
    current_user: dict = Depends(require_ledger_member),
    poster: LedgerPoster = Depends(get_ledger_poster),
    identity: IdentityProvider = Depends(get_identity_provider),
    db: AsyncSession = Depends(get_db)
):
    """Post through the journal; the account entry and mirror are written together."""
    posted = await poster.post_entry(db, entry_request(entry_data), identity, current_role(current_user))

    if not posted.replayed:
        await log_event(
            db,
            AuditAction.ENTRY_POSTED,
            actor_public_key=current_user["sub"],
            target=posted.account_name,
            metadata={"sequence_no": posted.sequence_no, "journal_id": posted.journal_id}
        )

    return posted_entry_response(posted)
