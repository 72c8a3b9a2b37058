"""
Payment Message Service.

Requests, approvals and notifications between team members. Messages are
append-only; only the recipient may move a pending message on.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import (
    ConflictError,
    InsufficientPermissionsError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from backend.app.models.enums import UserRole
from backend.app.models.payment_message import MessageStatus, MessageType, PaymentMessage
from backend.app.models.user import User

logger = logging.getLogger("bookkeeper.messages")

# pending is the only state that may change
ALLOWED_TRANSITIONS = {
    MessageStatus.PENDING: {MessageStatus.ACKNOWLEDGED, MessageStatus.ERROR},
}


class MessageService:

    @staticmethod
    async def send(
        db: AsyncSession,
        sender_public_key: str,
        recipient_public_key: str,
        message_type: MessageType,
        amount: Optional[Decimal] = None,
        purpose: Optional[str] = None,
        body: Optional[str] = None,
        in_reply_to: Optional[int] = None,
    ) -> PaymentMessage:
        """Create a pending message to an active team member."""
        if not recipient_public_key:
            raise ValidationFailedError("Recipient public key is required")
        if amount is not None and amount < 0:
            raise ValidationFailedError("Amount must be non-negative")
        if message_type in (MessageType.REQUEST, MessageType.PAYMENT) and amount is None:
            raise ValidationFailedError(f"A {message_type.value} message needs an amount")

        result = await db.execute(
            select(User).where(
                User.public_key == recipient_public_key,
                User.role != UserRole.DELETED,
            )
        )
        if result.scalar_one_or_none() is None:
            raise ResourceNotFoundError("Recipient", recipient_public_key)

        message = PaymentMessage(
            sender_public_key=sender_public_key,
            recipient_public_key=recipient_public_key,
            message_type=message_type,
            status=MessageStatus.PENDING,
            amount=amount,
            purpose=purpose,
            body=body,
            in_reply_to=in_reply_to,
        )
        db.add(message)
        await db.flush()  # Caller commits
        logger.info("Message sent", extra={"message_id": message.id, "type": message_type.value})
        return message

    @staticmethod
    async def inbox(db: AsyncSession, public_key: str) -> List[PaymentMessage]:
        result = await db.execute(
            select(PaymentMessage)
            .where(PaymentMessage.recipient_public_key == public_key)
            .order_by(PaymentMessage.created_at.desc(), PaymentMessage.id.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def pending(db: AsyncSession, public_key: str) -> List[PaymentMessage]:
        result = await db.execute(
            select(PaymentMessage)
            .where(
                PaymentMessage.recipient_public_key == public_key,
                PaymentMessage.status == MessageStatus.PENDING,
            )
            .order_by(PaymentMessage.created_at.desc(), PaymentMessage.id.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def sent(db: AsyncSession, public_key: str) -> List[PaymentMessage]:
        result = await db.execute(
            select(PaymentMessage)
            .where(PaymentMessage.sender_public_key == public_key)
            .order_by(PaymentMessage.created_at.desc(), PaymentMessage.id.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def update_status(
        db: AsyncSession, message_id: int, actor_public_key: str, new_status: MessageStatus
    ) -> PaymentMessage:
        """
        Move a pending message to acknowledged or error.

        Raises:
            ResourceNotFoundError: Unknown message
            InsufficientPermissionsError: Actor is not the recipient
            ConflictError: Transition not allowed from the current status
        """
        message = await db.get(PaymentMessage, message_id)
        if message is None:
            raise ResourceNotFoundError("Message", message_id)
        if message.recipient_public_key != actor_public_key:
            raise InsufficientPermissionsError("Only the recipient can update a message")

        allowed = ALLOWED_TRANSITIONS.get(message.status, set())
        if new_status not in allowed:
            raise ConflictError(
                f"Cannot change message status from {message.status.value} to {new_status.value}",
                details={"message_id": message_id, "status": message.status.value},
            )

        message.status = new_status
        await db.flush()
        return message

    @staticmethod
    async def approve_request(
        db: AsyncSession, message_id: int, actor_public_key: str
    ) -> PaymentMessage:
        """Acknowledge a pending request and send an approval back to its sender."""
        message = await db.get(PaymentMessage, message_id)
        if message is None:
            raise ResourceNotFoundError("Message", message_id)
        if message.message_type != MessageType.REQUEST:
            raise ValidationFailedError("Only request messages can be approved")

        await MessageService.update_status(db, message_id, actor_public_key, MessageStatus.ACKNOWLEDGED)
        return await MessageService.send(
            db,
            sender_public_key=actor_public_key,
            recipient_public_key=message.sender_public_key,
            message_type=MessageType.APPROVAL,
            amount=message.amount,
            purpose=message.purpose,
            body=f"Approved request #{message.id}",
            in_reply_to=message.id,
        )
