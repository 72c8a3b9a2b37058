"""
General Journal database model.

Cross-account mirror of every posted account entry.
"""

from sqlalchemy import Column, Integer, String, Text, Date, DateTime, ForeignKey, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base


class GeneralJournalEntry(Base):
    """
    Mirror of one AccountEntry, written in the same transaction.

    Carries the same encrypted bag plus the plaintext account name.
    """
    __tablename__ = "general_journal"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    entry_id = Column(Integer, ForeignKey("account_entries.id"), nullable=False, unique=True)
    account_name = Column(String(100), nullable=False, index=True)

    date = Column(Date, nullable=False, index=True)
    encrypted_data = Column(Text, nullable=False)

    txid = Column(String(128), nullable=True)
    output_script = Column(Text, nullable=True)
    audit_metadata = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<GeneralJournalEntry(id={self.id}, account='{self.account_name}', entry_id={self.entry_id})>"
