"""
Audit Log Database Model.

Local record of team and ledger administration events, kept alongside
the external audit references stored on users and entries.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model for tracking administrative actions.

    Events logged:
    - SESSION_STARTED / KEY_PERSON_REGISTERED
    - USER_ADDED / USER_REMOVED / USER_REACTIVATED
    - ACCOUNT_CREATED / ENTRY_POSTED / TRANSACTION_POSTED
    - MESSAGE_SENT / MESSAGE_STATUS_CHANGED
    - INVOICE_UPLOADED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_public_key = Column(String(255), index=True, nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # What the action targeted (user email, account name, message id ...)
    target = Column(String(255), index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    ip_address = Column(String(50), nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', target={self.target})>"
