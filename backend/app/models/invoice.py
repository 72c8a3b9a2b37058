"""
Invoice database model.

Records files published to the content-addressable blob store.
"""

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from backend.app.db.session import Base


class Invoice(Base):
    """Uploaded invoice or receipt; the content itself lives in the blob store."""
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    uhrp_hash = Column(String(255), nullable=False, index=True)
    public_url = Column(String(1024), nullable=False)
    filename = Column(String(255), nullable=False)
    content_type = Column(String(255), nullable=True)
    size_bytes = Column(Integer, nullable=False)
    retention_minutes = Column(Integer, nullable=False)
    uploaded_by = Column(String(255), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Invoice(id={self.id}, filename='{self.filename}', hash='{self.uhrp_hash}')>"
