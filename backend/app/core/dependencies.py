"""
FastAPI dependencies.

Session authentication plus providers for the external collaborators
(wallet cipher, audit service, identity, signature checks, blob store)
and the ledger services built on them. Tests swap collaborators via
``app.dependency_overrides``.
"""

from typing import Optional

import httpx
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from backend.app.core.config import settings
from backend.app.core.jwt import decode_access_token
from backend.app.core.token_revocation import is_token_revoked, are_user_tokens_revoked
from backend.app.db.session import get_db
from backend.app.domain.ledger.budget import BudgetAggregator
from backend.app.domain.ledger.collaborators import (
    AuditService,
    BlobStore,
    Cipher,
    IdentityProvider,
    SignatureVerifier,
    StaticIdentityProvider,
)
from backend.app.domain.ledger.poster import LedgerPoster
from backend.app.models.enums import UserRole
from backend.app.models.user import User
from backend.app.services.nanostore import NanostoreClient
from backend.app.services.wallet import (
    WalletAuditService,
    WalletCipher,
    WalletClient,
    WalletIdentityProvider,
    WalletSignatureVerifier,
)

# HTTP Bearer security scheme
security = HTTPBearer()

# Shared outbound client; closed on application shutdown
_http_client: Optional[httpx.AsyncClient] = None


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    FastAPI dependency for session-token authentication.

    Checks:
    1. Validates JWT token signature and expiry
    2. Checks if token has been explicitly revoked
    3. Checks if all user tokens have been revoked (user removed)
    4. Re-reads the user so role changes apply immediately

    Returns:
        Token payload (sub = identity public key, user_id, role) with the
        role refreshed from the database

    Raises:
        HTTPException: 401 if authentication fails, 403 for Deleted users
    """
    token = credentials.credentials

    # 1. Decode and validate JWT
    payload = decode_access_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # 2. Check if this specific token has been revoked
    if await is_token_revoked(token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has been revoked",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # 3. Check if all user tokens have been revoked (user was removed)
    if await are_user_tokens_revoked(user_id):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User access has been revoked",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # 4. Real-time database check
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user or user.public_key != payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User has been removed from the team",
        )

    payload["role"] = user.role.value
    return payload


def current_role(current_user: dict) -> UserRole:
    return UserRole(current_user["role"])


def get_http_client() -> httpx.AsyncClient:
    global _http_client
    if _http_client is None:
        _http_client = httpx.AsyncClient(timeout=settings.wallet_timeout_seconds)
    return _http_client


async def close_http_client() -> None:
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None


def get_wallet_client(http_client: httpx.AsyncClient = Depends(get_http_client)) -> WalletClient:
    return WalletClient(http_client)


def get_cipher(wallet: WalletClient = Depends(get_wallet_client)) -> Cipher:
    return WalletCipher(wallet)


def get_audit_service(wallet: WalletClient = Depends(get_wallet_client)) -> AuditService:
    return WalletAuditService(wallet)


def get_operator_identity(wallet: WalletClient = Depends(get_wallet_client)) -> IdentityProvider:
    """Identity of the wallet this server is paired with."""
    return WalletIdentityProvider(wallet)


def get_signature_verifier(wallet: WalletClient = Depends(get_wallet_client)) -> SignatureVerifier:
    return WalletSignatureVerifier(wallet)


def get_identity_provider(current_user: dict = Depends(get_current_user)) -> IdentityProvider:
    """Identity of the authenticated caller."""
    return StaticIdentityProvider(current_user["sub"])


def get_blob_store(http_client: httpx.AsyncClient = Depends(get_http_client)) -> BlobStore:
    return NanostoreClient(http_client)


def get_ledger_poster(
    cipher: Cipher = Depends(get_cipher),
    audit_service: AuditService = Depends(get_audit_service),
) -> LedgerPoster:
    return LedgerPoster(cipher, audit_service)


def get_budget_aggregator(cipher: Cipher = Depends(get_cipher)) -> BudgetAggregator:
    return BudgetAggregator(cipher)


async def get_current_member(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> User:
    """The authenticated caller as a User row (same session as the request)."""
    return await db.get(User, current_user["user_id"])
