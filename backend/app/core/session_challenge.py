"""
Session challenges using Redis.

A caller who names an identity key must sign a fresh nonce with that key
before a session token is issued. Nonces are single use and expire
after ``session_challenge_ttl_seconds``.
"""

import logging
import secrets
from typing import Optional

from backend.app.core import redis_client as redis_module
from backend.app.core.config import settings
from backend.app.core.exceptions import CollaboratorError

logger = logging.getLogger("bookkeeper.auth")

CHALLENGE_PREFIX = "auth:challenge:"


async def issue_challenge(public_key: str) -> str:
    """
    Create a nonce bound to ``public_key``.

    Raises:
        CollaboratorError: Redis is unavailable (no challenge, no session)
    """
    nonce = secrets.token_urlsafe(32)
    try:
        await redis_module.redis_client.setex(
            f"{CHALLENGE_PREFIX}{nonce}", settings.session_challenge_ttl_seconds, public_key
        )
    except Exception as exc:
        logger.error("Could not store session challenge")
        raise CollaboratorError("redis", "Session challenge store unavailable") from exc
    return nonce


async def consume_challenge(nonce: str) -> Optional[str]:
    """
    Return the key a nonce was issued for and invalidate it.

    Unknown, expired or already used nonces give None. A Redis failure
    also gives None, so no session is issued without a stored challenge.
    """
    key = f"{CHALLENGE_PREFIX}{nonce}"
    try:
        public_key = await redis_module.redis_client.get(key)
        if public_key is None:
            return None
        if not await redis_module.redis_client.delete(key):
            # Consumed concurrently by another request
            return None
        return public_key
    except Exception:
        logger.warning("Session challenge check unavailable")
        return None
