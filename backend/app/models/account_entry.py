"""
Account Entry database model.

Append-only ledger lines. Sensitive fields live in one encrypted bag.
"""

from sqlalchemy import Column, Integer, String, Text, Date, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.sql import func
from backend.app.db.session import Base


class AccountEntry(Base):
    """
    Account Entry model.

    Entries of one account form a gapless sequence starting at 1.
    NO updates or deletions allowed.
    """
    __tablename__ = "account_entries"
    __table_args__ = (
        UniqueConstraint("account_id", "sequence_no", name="uq_account_entries_sequence"),
        UniqueConstraint("account_id", "idempotency_key", name="uq_account_entries_idempotency"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Linkage
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    sequence_no = Column(Integer, nullable=False)

    # Plaintext metadata
    date = Column(Date, nullable=False, index=True)

    # Serialized bag of encrypted fields (description, debit, credit, runningTotal, publicKey)
    encrypted_data = Column(Text, nullable=False)

    # External audit reference
    txid = Column(String(128), nullable=True)
    output_script = Column(Text, nullable=True)
    audit_metadata = Column(JSON, nullable=True)

    idempotency_key = Column(String(128), nullable=True)

    # Timestamps (Immutable - no updated_at)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<AccountEntry(id={self.id}, account_id={self.account_id}, seq={self.sequence_no})>"
