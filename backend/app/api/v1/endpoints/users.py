"""
Team management API endpoints.

Adding and removing members is restricted to the keyPerson and Managers;
lookups are open to any authenticated member.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from backend.app.db.session import get_db
from backend.app.core.dependencies import (
    get_audit_service,
    get_cipher,
    get_current_member,
    get_current_user,
    get_identity_provider,
)
from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.core.guards import require_team_admin
from backend.app.domain.ledger.collaborators import AuditService, Cipher, IdentityProvider
from backend.app.models.user import User
from backend.app.schemas.auth import EmailResponse, OnboardRequest, RoleResponse, UserCreate, UserResponse
from backend.app.services.audit import log_event, AuditAction
from backend.app.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("", response_model=List[UserResponse])
async def list_users(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Active team members."""
    return await UserService.list_active_users(db)


@router.get("/role/{public_key}", response_model=RoleResponse)
async def get_role(
    public_key: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    user = await UserService.get_by_public_key(db, public_key)
    return RoleResponse(role=user.role if user else None)


@router.get("/email/{public_key}", response_model=EmailResponse)
async def get_email(
    public_key: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    user = await UserService.get_by_public_key(db, public_key)
    if user is None:
        raise ResourceNotFoundError("User", public_key)
    return EmailResponse(email=user.email)


@router.get("/{email}", response_model=UserResponse)
async def get_user_by_email(
    email: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    user = await UserService.get_by_email(db, email)
    if user is None:
        raise ResourceNotFoundError("User", email)
    return user


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def add_user(
    user_data: UserCreate,
    current_user: dict = Depends(require_team_admin),
    actor: User = Depends(get_current_member),
    cipher: Cipher = Depends(get_cipher),
    audit_service: AuditService = Depends(get_audit_service),
    identity: IdentityProvider = Depends(get_identity_provider),
    db: AsyncSession = Depends(get_db)
):
    """
    Add a team member with an assignable role.

    A previously removed member is reactivated with the new role.
    """
    existing = await UserService.get_by_public_key(db, user_data.public_key)
    was_removed = existing is not None and not existing.is_active

    user = await UserService.add_user(
        db,
        actor,
        public_key=user_data.public_key,
        email=user_data.email,
        role=user_data.role,
        cipher=cipher,
        audit_service=audit_service,
        identity=identity,
    )

    await log_event(
        db,
        AuditAction.USER_REACTIVATED if was_removed else AuditAction.USER_ADDED,
        actor_public_key=actor.public_key,
        target=user.email,
        metadata={"role": user.role.value, "txid": user.txid}
    )
    return user


@router.post("/onboard", response_model=UserResponse)
async def onboard_key_person(
    onboard_data: OnboardRequest,
    current_user: dict = Depends(get_current_user),
    actor: User = Depends(get_current_member),
    cipher: Cipher = Depends(get_cipher),
    audit_service: AuditService = Depends(get_audit_service),
    identity: IdentityProvider = Depends(get_identity_provider),
    db: AsyncSession = Depends(get_db)
):
    """Record the key person's email."""
    user = await UserService.onboard_key_person(
        db, actor, onboard_data.email, cipher, audit_service, identity
    )
    await log_event(db, AuditAction.KEY_PERSON_ONBOARDED, actor_public_key=user.public_key, target=user.email)
    return user


@router.delete("/{email}", response_model=UserResponse)
async def remove_user(
    email: str,
    current_user: dict = Depends(require_team_admin),
    actor: User = Depends(get_current_member),
    audit_service: AuditService = Depends(get_audit_service),
    identity: IdentityProvider = Depends(get_identity_provider),
    db: AsyncSession = Depends(get_db)
):
    """Soft-remove a member (role Deleted) and revoke their sessions."""
    user = await UserService.remove_user(db, actor, email, audit_service, identity)
    await log_event(
        db,
        AuditAction.USER_REMOVED,
        actor_public_key=actor.public_key,
        target=email,
        metadata={"txid": user.txid}
    )
    return user
