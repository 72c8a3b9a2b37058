"""
Payment Message API endpoints.
"""

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from backend.app.db.session import get_db
from backend.app.core.dependencies import get_current_user
from backend.app.schemas.message import MessageCreate, MessageResponse, MessageStatusUpdate
from backend.app.services.audit import log_event, AuditAction
from backend.app.services.message_service import MessageService

router = APIRouter(prefix="/messages", tags=["Messages"])


@router.post("", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
    message_data: MessageCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Send a request, approval, notification or payment message."""
    message = await MessageService.send(
        db,
        sender_public_key=current_user["sub"],
        recipient_public_key=message_data.recipient_public_key,
        message_type=message_data.message_type,
        amount=message_data.amount,
        purpose=message_data.purpose,
        body=message_data.body,
    )
    await db.commit()
    await db.refresh(message)

    await log_event(
        db,
        AuditAction.MESSAGE_SENT,
        actor_public_key=current_user["sub"],
        target=str(message.id),
        metadata={"type": message.message_type.value}
    )
    return message


@router.get("", response_model=List[MessageResponse])
async def list_inbox(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Messages addressed to the caller, newest first."""
    return await MessageService.inbox(db, current_user["sub"])


@router.get("/sent", response_model=List[MessageResponse])
async def list_sent(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await MessageService.sent(db, current_user["sub"])


@router.get("/pending/{public_key}", response_model=List[MessageResponse])
async def list_pending(
    public_key: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Pending messages for a recipient key."""
    return await MessageService.pending(db, public_key)


@router.patch("/{message_id}", response_model=MessageResponse)
async def update_message_status(
    status_update: MessageStatusUpdate,
    message_id: int = Path(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Recipient acknowledges a pending message or flags it as an error."""
    message = await MessageService.update_status(db, message_id, current_user["sub"], status_update.status)
    await db.commit()
    await db.refresh(message)

    await log_event(
        db,
        AuditAction.MESSAGE_STATUS_CHANGED,
        actor_public_key=current_user["sub"],
        target=str(message.id),
        metadata={"status": message.status.value}
    )
    return message


@router.post("/{message_id}/approve", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def approve_request(
    message_id: int = Path(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Approve a pending request; returns the approval sent back to the requester."""
    approval = await MessageService.approve_request(db, message_id, current_user["sub"])
    await db.commit()
    await db.refresh(approval)

    await log_event(
        db,
        AuditAction.REQUEST_APPROVED,
        actor_public_key=current_user["sub"],
        target=str(message_id),
        metadata={"approval_id": approval.id}
    )
    return approval
