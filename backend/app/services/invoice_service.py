"""
Invoice Service.

Publishes invoice files to the blob store and keeps a local index of
what was uploaded.
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import ValidationFailedError
from backend.app.domain.ledger.collaborators import BlobStore, DownloadedBlob
from backend.app.models.invoice import Invoice

logger = logging.getLogger("bookkeeper.invoices")

# 3 hours, 1 day, 1 week, 30 days, 90 days
ALLOWED_RETENTION_MINUTES = (180, 1440, 10080, 43200, 129600)


class InvoiceService:

    @staticmethod
    async def upload(
        db: AsyncSession,
        blob_store: BlobStore,
        uploader_public_key: str,
        filename: str,
        content: bytes,
        content_type: Optional[str],
        retention_minutes: Optional[int] = None,
    ) -> Invoice:
        retention = retention_minutes or settings.default_retention_minutes
        if retention not in ALLOWED_RETENTION_MINUTES:
            raise ValidationFailedError(
                "Unsupported retention period",
                details={"allowed": list(ALLOWED_RETENTION_MINUTES), "given": retention},
            )
        if not filename:
            raise ValidationFailedError("File name is required")
        if not content:
            raise ValidationFailedError("File is empty")

        blob = await blob_store.publish(filename, content, content_type, retention)

        invoice = Invoice(
            uhrp_hash=blob.uhrp_hash,
            public_url=blob.public_url,
            filename=filename,
            content_type=content_type,
            size_bytes=len(content),
            retention_minutes=retention,
            uploaded_by=uploader_public_key,
        )
        db.add(invoice)
        await db.commit()
        await db.refresh(invoice)
        logger.info("Invoice uploaded", extra={"invoice_id": invoice.id, "uhrp_hash": blob.uhrp_hash})
        return invoice

    @staticmethod
    async def list_invoices(db: AsyncSession) -> List[Invoice]:
        result = await db.execute(select(Invoice).order_by(Invoice.created_at.desc(), Invoice.id.desc()))
        return list(result.scalars().all())

    @staticmethod
    async def download(blob_store: BlobStore, uhrp_url: str) -> DownloadedBlob:
        if not uhrp_url or not uhrp_url.strip():
            raise ValidationFailedError("UHRP URL is required")
        return await blob_store.download(uhrp_url.strip())
