"""
Payment Message database model.

Requests, approvals and notifications exchanged between team members.
"""

from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
import enum


class MessageType(str, enum.Enum):
    REQUEST = "request"
    APPROVAL = "approval"
    NOTIFICATION = "notification"
    PAYMENT = "payment"


class MessageStatus(str, enum.Enum):
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    ERROR = "error"


class PaymentMessage(Base):
    """
    Message between two public keys.
    Append-only except for the status column.
    """
    __tablename__ = "payment_messages"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    sender_public_key = Column(String(255), nullable=False, index=True)
    recipient_public_key = Column(String(255), nullable=False, index=True)

    message_type = Column(Enum(MessageType, values_callable=lambda e: [m.value for m in e]), nullable=False)
    status = Column(
        Enum(MessageStatus, values_callable=lambda e: [m.value for m in e]),
        default=MessageStatus.PENDING,
        nullable=False,
        index=True,
    )

    # Content
    amount = Column(Numeric(18, 2), nullable=True)
    purpose = Column(String(255), nullable=True)
    body = Column(Text, nullable=True)

    in_reply_to = Column(Integer, ForeignKey("payment_messages.id"), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<PaymentMessage(id={self.id}, type='{self.message_type.value}', status='{self.status.value}')>"
