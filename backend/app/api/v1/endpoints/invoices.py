"""
Invoice API endpoints.

Upload to and download from the content-addressable blob store.
"""

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from backend.app.db.session import get_db
from backend.app.core.dependencies import get_blob_store
from backend.app.core.guards import require_ledger_member
from backend.app.domain.ledger.collaborators import BlobStore
from backend.app.schemas.invoice import InvoiceResponse
from backend.app.services.audit import log_event, AuditAction
from backend.app.services.invoice_service import InvoiceService

router = APIRouter(prefix="/invoices", tags=["Invoices"])


@router.post("", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
async def upload_invoice(
    file: UploadFile = File(...),
    retention_minutes: Optional[int] = Form(None),
    current_user: dict = Depends(require_ledger_member),
    blob_store: BlobStore = Depends(get_blob_store),
    db: AsyncSession = Depends(get_db)
):
    """Publish a file for 180, 1440, 10080, 43200 or 129600 minutes."""
    content = await file.read()
    invoice = await InvoiceService.upload(
        db,
        blob_store,
        uploader_public_key=current_user["sub"],
        filename=file.filename,
        content=content,
        content_type=file.content_type,
        retention_minutes=retention_minutes,
    )

    await log_event(
        db,
        AuditAction.INVOICE_UPLOADED,
        actor_public_key=current_user["sub"],
        target=invoice.uhrp_hash,
        metadata={"filename": invoice.filename, "retention_minutes": invoice.retention_minutes}
    )
    return invoice


@router.get("", response_model=List[InvoiceResponse])
async def list_invoices(
    current_user: dict = Depends(require_ledger_member),
    db: AsyncSession = Depends(get_db)
):
    return await InvoiceService.list_invoices(db)


@router.get("/download")
async def download_invoice(
    url: str = Query(..., min_length=1, description="UHRP URL of the file"),
    current_user: dict = Depends(require_ledger_member),
    blob_store: BlobStore = Depends(get_blob_store)
):
    """Stream the stored content back with its MIME type."""
    blob = await InvoiceService.download(blob_store, url)
    return Response(content=blob.data, media_type=blob.mime_type)
