"""
User Service.

Team membership keyed by wallet identity public key. Additions and
removals are recorded with the external audit service; removal is a
soft transition to role Deleted.
"""

import logging
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    ConflictError,
    InsufficientPermissionsError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from backend.app.core.token_revocation import clear_user_token_revocation, revoke_all_user_tokens
from backend.app.domain.ledger.collaborators import AuditRef, AuditService, Cipher, IdentityProvider
from backend.app.models.enums import ASSIGNABLE_ROLES, TEAM_ADMIN_ROLES, UserRole
from backend.app.models.user import User

logger = logging.getLogger("bookkeeper.users")


def _apply_audit_ref(user: User, audit_ref: AuditRef) -> None:
    user.txid = audit_ref.txid
    user.output_script = audit_ref.output_script
    user.audit_metadata = audit_ref.metadata


def _ensure_team_admin(actor: User) -> None:
    if actor.role not in TEAM_ADMIN_ROLES:
        raise InsufficientPermissionsError("Only the key person or a Manager can manage the team")


class UserService:

    @staticmethod
    async def resolve_role(db: AsyncSession, public_key: str) -> Optional[User]:
        """
        Resolve a public key to its team member.

        The very first key ever seen is registered as keyPerson. Any other
        unknown key resolves to None.
        """
        if not public_key or not public_key.strip():
            raise ValidationFailedError("Public key is required")

        user = await UserService.get_by_public_key(db, public_key)
        if user is not None:
            return user

        user_count = await db.scalar(select(func.count()).select_from(User))
        if user_count:
            return None

        user = User(public_key=public_key, role=UserRole.KEY_PERSON)
        db.add(user)
        await db.commit()
        await db.refresh(user)
        logger.info("Key person registered", extra={"user_id": user.id})
        return user

    @staticmethod
    async def add_user(
        db: AsyncSession,
        actor: User,
        public_key: str,
        email: str,
        role: UserRole,
        cipher: Cipher,
        audit_service: AuditService,
        identity: IdentityProvider,
    ) -> User:
        """
        Add a team member, or reactivate a Deleted one with a new role.

        Raises:
            InsufficientPermissionsError: Actor is not keyPerson/Manager
            ValidationFailedError: Missing key/email or non-assignable role
            ConflictError: Key or email already belongs to an active member
        """
        _ensure_team_admin(actor)
        if not public_key or not public_key.strip():
            raise ValidationFailedError("Public key is required")
        if not email or not email.strip():
            raise ValidationFailedError("Email is required")
        if role not in ASSIGNABLE_ROLES:
            raise ValidationFailedError(
                f"Role {role.value} cannot be assigned",
                details={"allowed": [r.value for r in ASSIGNABLE_ROLES]},
            )

        existing = await UserService.get_by_public_key(db, public_key)
        if existing is not None and existing.is_active:
            raise ConflictError("User already exists", details={"email": existing.email})

        email_owner = await UserService.get_by_email(db, email)
        if email_owner is not None and email_owner.public_key != public_key:
            raise ConflictError("Email already belongs to another team member", details={"email": email})

        actor_key = await identity.get_public_key("User addition authorization")
        encrypted_email = await cipher.encrypt(email)
        encrypted_key = await cipher.encrypt(public_key)
        audit_ref = await audit_service.record(
            protocol_id=settings.user_protocol_id,
            key_id=actor_key,
            fields=[encrypted_email, encrypted_key, "User Addition"],
            description=f"Add user: {email}",
        )

        reactivated = existing is not None
        user = existing or User(public_key=public_key)
        user.email = email
        user.role = role
        _apply_audit_ref(user, audit_ref)
        if not reactivated:
            db.add(user)
        await db.commit()
        await db.refresh(user)

        if reactivated:
            await clear_user_token_revocation(user.id)

        logger.info(
            "User reactivated" if reactivated else "User added",
            extra={"user_id": user.id, "role": role.value},
        )
        return user

    @staticmethod
    async def onboard_key_person(
        db: AsyncSession,
        actor: User,
        email: str,
        cipher: Cipher,
        audit_service: AuditService,
        identity: IdentityProvider,
    ) -> User:
        """Record the key person's email and log the onboarding externally."""
        if actor.role != UserRole.KEY_PERSON:
            raise InsufficientPermissionsError("Only the key person can complete onboarding")
        if not email or not email.strip():
            raise ValidationFailedError("Email is required")

        actor_key = await identity.get_public_key("Key person onboarding")
        encrypted_email = await cipher.encrypt(email)
        encrypted_key = await cipher.encrypt(actor.public_key)
        audit_ref = await audit_service.record(
            protocol_id=settings.user_protocol_id,
            key_id=actor_key,
            fields=[encrypted_email, encrypted_key, "Key Person Onboarding"],
            description=f"Onboard key person: {email}",
        )

        actor.email = email
        _apply_audit_ref(actor, audit_ref)
        await db.commit()
        await db.refresh(actor)
        logger.info("Key person onboarded", extra={"user_id": actor.id})
        return actor

    @staticmethod
    async def remove_user(
        db: AsyncSession,
        actor: User,
        email: str,
        audit_service: AuditService,
        identity: IdentityProvider,
    ) -> User:
        """
        Soft-remove an active team member and revoke their sessions.

        The key person cannot be removed.
        """
        _ensure_team_admin(actor)
        user = await UserService.get_by_email(db, email)
        if user is None:
            raise ResourceNotFoundError("User", email)
        if user.role == UserRole.KEY_PERSON:
            raise InsufficientPermissionsError("The key person cannot be removed")

        actor_key = await identity.get_public_key("User removal authorization")
        audit_ref = await audit_service.record(
            protocol_id=settings.user_protocol_id,
            key_id=actor_key,
            fields=[email, "deleted", "User Deletion"],
            description=f"Delete user: {email}",
        )

        user.role = UserRole.DELETED
        _apply_audit_ref(user, audit_ref)
        await db.commit()
        await db.refresh(user)

        await revoke_all_user_tokens(user.id)
        logger.info("User removed", extra={"user_id": user.id})
        return user

    @staticmethod
    async def list_active_users(db: AsyncSession) -> List[User]:
        result = await db.execute(
            select(User).where(User.role != UserRole.DELETED).order_by(User.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_by_public_key(db: AsyncSession, public_key: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.public_key == public_key))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> Optional[User]:
        """Active member with this email, if any."""
        result = await db.execute(
            select(User).where(User.email == email, User.role != UserRole.DELETED)
        )
        return result.scalars().first()
