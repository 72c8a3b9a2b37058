"""
Authentication API endpoints.

Exchanges a wallet identity public key for a session token carrying the
caller's team role. A caller naming a key first fetches a challenge and
signs it with that key; without a key the server's paired wallet
identity is used.
"""

from fastapi import APIRouter, Depends, Request, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from backend.app.core.config import settings
from backend.app.db.session import get_db
from backend.app.models.enums import UserRole
from backend.app.schemas.auth import (
    ChallengeRequest,
    ChallengeResponse,
    SessionRequest,
    SessionResponse,
    UserResponse,
)
from backend.app.core.exceptions import AuthenticationError, InsufficientPermissionsError, ResourceNotFoundError
from backend.app.core.jwt import create_session_token
from backend.app.core.dependencies import (
    get_current_member,
    get_current_user,
    get_operator_identity,
    get_signature_verifier,
    security,
)
from backend.app.core.session_challenge import consume_challenge, issue_challenge
from backend.app.core.token_revocation import revoke_token
from backend.app.domain.ledger.collaborators import IdentityProvider, SignatureVerifier
from backend.app.models.user import User
from backend.app.services.audit import log_event, AuditAction
from backend.app.services.user_service import UserService

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/challenge", response_model=ChallengeResponse)
async def create_challenge(challenge_request: ChallengeRequest):
    """Issue a single-use nonce for the caller to sign with its identity key."""
    nonce = await issue_challenge(challenge_request.public_key)
    return ChallengeResponse(nonce=nonce, expires_in=settings.session_challenge_ttl_seconds)


async def _verified_public_key(session_request: SessionRequest, verifier: SignatureVerifier) -> str:
    public_key = session_request.public_key
    if not session_request.nonce or not session_request.signature:
        raise AuthenticationError("A signed challenge is required to start a session for a public key")

    # Consumed before verification so a nonce is never tried twice
    if await consume_challenge(session_request.nonce) != public_key:
        raise AuthenticationError("Challenge is unknown, expired or issued for another key")
    if not await verifier.verify(public_key, session_request.nonce, session_request.signature):
        raise AuthenticationError("Challenge signature is invalid")
    return public_key


@router.post("/session", response_model=SessionResponse)
async def start_session(
    session_request: SessionRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    operator_identity: IdentityProvider = Depends(get_operator_identity),
    verifier: SignatureVerifier = Depends(get_signature_verifier)
):
    """
    Start a session for an identity key.

    - A key in the body needs a signature over a nonce from /challenge (401 otherwise).
    - The first key ever seen becomes the keyPerson.
    - Unknown keys are rejected (404); removed users get 403.
    """
    ip_address = request.client.host if request.client else None
    if session_request.public_key is None:
        public_key = await operator_identity.get_public_key("Sign in")
    else:
        try:
            public_key = await _verified_public_key(session_request, verifier)
        except AuthenticationError:
            await log_event(
                db,
                AuditAction.SESSION_REJECTED,
                target=session_request.public_key,
                ip_address=ip_address
            )
            raise

    is_new_key = await UserService.get_by_public_key(db, public_key) is None
    user = await UserService.resolve_role(db, public_key)
    if user is None:
        raise ResourceNotFoundError("User", public_key)
    if user.role == UserRole.DELETED:
        raise InsufficientPermissionsError("User has been removed from the team")

    if is_new_key:
        await log_event(db, AuditAction.KEY_PERSON_REGISTERED, actor_public_key=public_key, ip_address=ip_address)
    await log_event(
        db,
        AuditAction.SESSION_STARTED,
        actor_public_key=public_key,
        metadata={"role": user.role.value},
        ip_address=ip_address
    )

    access_token = create_session_token(user)

    return SessionResponse(
        access_token=access_token,
        token_type="bearer",
        user_id=user.id,
        public_key=user.public_key,
        role=user.role,
        email=user.email
    )


@router.get("/me", response_model=UserResponse)
async def get_me(member: User = Depends(get_current_member)):
    """Current team member."""
    return member


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def end_session(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    current_user: dict = Depends(get_current_user)
):
    """Revoke the caller's session token."""
    await revoke_token(credentials.credentials, current_user["user_id"])
