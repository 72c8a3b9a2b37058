"""
Invoice Schemas.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class InvoiceResponse(BaseModel):
    id: int
    uhrp_hash: str
    public_url: str
    filename: str
    content_type: Optional[str] = None
    size_bytes: int
    retention_minutes: int
    uploaded_by: str
    created_at: datetime

    class Config:
        from_attributes = True
