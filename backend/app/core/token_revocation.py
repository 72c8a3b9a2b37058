"""
Token Revocation System using Redis.

Implements token blacklisting to immediately invalidate session tokens
when users are soft-deleted or end their session.
"""

import logging

from backend.app.core import redis_client as redis_module
from backend.app.core.config import settings

logger = logging.getLogger("bookkeeper.auth")

# Redis key prefix for blacklisted tokens
TOKEN_BLACKLIST_PREFIX = "blacklist:token:"
USER_TOKENS_PREFIX = "user:tokens:"


def _ttl_seconds() -> int:
    # Tokens expire on their own after this long
    return settings.access_token_expire_minutes * 60


async def revoke_token(token: str, user_id: int) -> bool:
    """
    Revoke a specific session token by adding it to the blacklist.

    Args:
        token: The JWT token string to revoke
        user_id: User ID who owns the token

    Returns:
        True if successfully revoked, False otherwise
    """
    try:
        key = f"{TOKEN_BLACKLIST_PREFIX}{token}"
        await redis_module.redis_client.setex(key, _ttl_seconds(), str(user_id))
        return True
    except Exception:
        logger.exception("Error revoking token", extra={"user_id": user_id})
        return False


async def is_token_revoked(token: str) -> bool:
    """
    Check if a token has been revoked.

    Args:
        token: JWT token string to check

    Returns:
        True if token is revoked, False otherwise
    """
    try:
        key = f"{TOKEN_BLACKLIST_PREFIX}{token}"
        exists = await redis_module.redis_client.exists(key)
        return exists > 0
    except Exception:
        # Fail-open: the per-request database check still rejects Deleted users
        logger.warning("Token revocation check unavailable")
        return False


async def revoke_all_user_tokens(user_id: int) -> bool:
    """
    Revoke all active tokens for a specific user.

    Called when a user is soft-deleted to immediately terminate all sessions.

    Args:
        user_id: User ID whose tokens should be revoked

    Returns:
        True if successful
    """
    try:
        key = f"{USER_TOKENS_PREFIX}{user_id}:revoked"
        await redis_module.redis_client.setex(key, _ttl_seconds(), "1")
        return True
    except Exception:
        logger.exception("Error revoking all tokens", extra={"user_id": user_id})
        return False


async def are_user_tokens_revoked(user_id: int) -> bool:
    """
    Check if all tokens for a user have been revoked.

    Args:
        user_id: User ID to check

    Returns:
        True if all user tokens are revoked, False otherwise
    """
    try:
        key = f"{USER_TOKENS_PREFIX}{user_id}:revoked"
        exists = await redis_module.redis_client.exists(key)
        return exists > 0
    except Exception:
        logger.warning("User token revocation check unavailable", extra={"user_id": user_id})
        return False


async def clear_user_token_revocation(user_id: int) -> bool:
    """
    Clear the global token revocation flag for a user.

    Called when a Deleted user is re-added to the team.

    Args:
        user_id: User ID to clear revocation for

    Returns:
        True if successful
    """
    try:
        key = f"{USER_TOKENS_PREFIX}{user_id}:revoked"
        await redis_module.redis_client.delete(key)
        return True
    except Exception:
        logger.exception("Error clearing token revocation", extra={"user_id": user_id})
        return False
