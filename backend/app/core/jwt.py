"""
JWT session tokens.

Members have no username or password; they are known only by their
wallet identity public key. A session token therefore carries that key
as ``sub``, next to the member's row id and the role resolved when the
session started. The key is what the ledger records as the acting
identity, and get_current_user rejects a token whose ``sub`` no longer
matches the member row.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from backend.app.core.config import settings


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: Claims to encode (sessions use sub, user_id, role)
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def create_session_token(user) -> str:
    """
    Session token for a team member.

    Example payload:
        {
            "sub": "02a1b2...",   # identity public key
            "user_id": 1,
            "role": "Accountant",
            "exp": 1234567890
        }
    """
    return create_access_token(data={
        "sub": user.public_key,
        "user_id": user.id,
        "role": user.role.value,
    })


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and validate a JWT access token.

    Returns:
        Decoded payload (sub, user_id, role, exp) if the signature and
        expiry are valid, None otherwise
    """
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
