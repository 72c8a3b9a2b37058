"""
Audit logging service for team and ledger administration events.

Keeps a local, queryable trail next to the external audit references
stored on users and entries.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from backend.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    SESSION_STARTED = "SESSION_STARTED"
    SESSION_REJECTED = "SESSION_REJECTED"
    KEY_PERSON_REGISTERED = "KEY_PERSON_REGISTERED"
    KEY_PERSON_ONBOARDED = "KEY_PERSON_ONBOARDED"

    # Team management
    USER_ADDED = "USER_ADDED"
    USER_REACTIVATED = "USER_REACTIVATED"
    USER_REMOVED = "USER_REMOVED"

    # Ledger
    ACCOUNT_CREATED = "ACCOUNT_CREATED"
    ENTRY_POSTED = "ENTRY_POSTED"
    TRANSACTION_POSTED = "TRANSACTION_POSTED"

    # Messages
    MESSAGE_SENT = "MESSAGE_SENT"
    MESSAGE_STATUS_CHANGED = "MESSAGE_STATUS_CHANGED"
    REQUEST_APPROVED = "REQUEST_APPROVED"

    # Invoices
    INVOICE_UPLOADED = "INVOICE_UPLOADED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_public_key: Optional[str] = None,
    target: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None
) -> AuditLog:
    """
    Log an administration event to the audit log.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_public_key: Identity key of the acting user
        target: What the action touched (email, account name, message id)
        metadata: Additional context as JSON
        ip_address: IP address of the request

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_public_key=actor_public_key,
        action=action,
        target=target,
        meta_data=metadata,
        ip_address=ip_address
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    target: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering, most recent first.
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if target:
        query = query.where(AuditLog.target == target)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
