"""
Account locking service.

Serializes "read last entry -> compute -> append" per account. The
in-process lock covers concurrent requests inside one worker; the row
lock covers other workers sharing the database.
"""

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.account import Account

# Locks live only while some coroutine holds a reference to them
_account_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def _lock_for(account_name: str) -> asyncio.Lock:
    lock = _account_locks.get(account_name)
    if lock is None:
        lock = asyncio.Lock()
        _account_locks[account_name] = lock
    return lock


@asynccontextmanager
async def account_locks(*account_names: str):
    """
    Hold the in-process locks of several accounts.

    Locks are taken in name order so two multi-account posts cannot deadlock.
    """
    locks = [_lock_for(name) for name in sorted(set(account_names))]
    acquired = []
    try:
        for lock in locks:
            await lock.acquire()
            acquired.append(lock)
        yield
    finally:
        for lock in reversed(acquired):
            lock.release()


async def lock_account_row(db: AsyncSession, account_name: str) -> Optional[Account]:
    """
    Load an account with a row-level lock (SELECT ... FOR UPDATE).

    Dialects without row locks (SQLite) ignore the clause.

    Returns:
        The account, or None if it does not exist
    """
    result = await db.execute(
        select(Account).where(Account.name == account_name).with_for_update()
    )
    return result.scalar_one_or_none()
