"""
Caching Service.

Redis-backed cache for budget aggregates. Keys embed the account's last
sequence number, so a new post simply makes the old key unreachable and
it expires on its own.
"""

import json
import logging
from typing import Any, Optional

from backend.app.core import redis_client as redis_module
from backend.app.core.config import settings

logger = logging.getLogger("bookkeeper.cache")

BUDGET_PREFIX = "budget:"


def budget_key(account_id: int, last_sequence_no: int, metric: str) -> str:
    return f"{BUDGET_PREFIX}{account_id}:{last_sequence_no}:{metric}"


class CacheService:

    @staticmethod
    async def get(key: str) -> Optional[Any]:
        """Return the cached JSON value, or None on miss or cache failure."""
        try:
            raw = await redis_module.redis_client.get(key)
        except Exception:
            logger.warning("Cache read failed", extra={"key": key})
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Discarding unreadable cache value", extra={"key": key})
            return None

    @staticmethod
    async def set(key: str, data: Any, ttl_seconds: Optional[int] = None) -> bool:
        ttl = ttl_seconds if ttl_seconds is not None else settings.budget_cache_ttl_seconds
        try:
            await redis_module.redis_client.setex(key, ttl, json.dumps(data))
            return True
        except Exception:
            logger.warning("Cache write failed", extra={"key": key})
            return False
