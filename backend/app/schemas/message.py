"""
Payment Message Schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional
from backend.app.models.payment_message import MessageStatus, MessageType


class MessageCreate(BaseModel):
    recipient_public_key: str = Field(..., min_length=1, max_length=255)
    message_type: MessageType
    amount: Optional[Decimal] = Field(default=None, ge=0)
    purpose: Optional[str] = Field(default=None, max_length=255)
    body: Optional[str] = None


class MessageStatusUpdate(BaseModel):
    status: MessageStatus


class MessageResponse(BaseModel):
    id: int
    sender_public_key: str
    recipient_public_key: str
    message_type: MessageType
    status: MessageStatus
    amount: Optional[Decimal] = None
    purpose: Optional[str] = None
    body: Optional[str] = None
    in_reply_to: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
