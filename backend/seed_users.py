"""
Database seeding script for the key person.

Registers the owner of the books by identity public key so the first
session does not depend on which wallet happens to connect first.
Run this script after database is set up but before first use.

Usage:
    python backend/seed_users.py <identity-public-key> [email]
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.app.db.session import AsyncSessionLocal, engine, Base
from backend.app.models.user import User
from backend.app.models.enums import UserRole
from sqlalchemy import select, func


async def seed_key_person(public_key: str, email: str = None):
    """
    Seed the keyPerson.

    Skips seeding when the team already has members; the first member
    is always the keyPerson.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting key person seeding...")

        user_count = await db.scalar(select(func.count()).select_from(User))
        if user_count:
            result = await db.execute(select(User).where(User.role == UserRole.KEY_PERSON))
            existing = result.scalar_one_or_none()
            owner = existing.public_key if existing else "unknown"
            print(f"ℹ️  Team already has {user_count} member(s) (keyPerson: {owner}), skipping seeding")
            return

        key_person = User(
            public_key=public_key,
            email=email,
            role=UserRole.KEY_PERSON,
        )
        db.add(key_person)
        await db.commit()

        print(f"✅ Created keyPerson ({public_key})")
        print("\nNote: other members are added via POST /api/users")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)
    asyncio.run(seed_key_person(sys.argv[1], sys.argv[2] if len(sys.argv) > 2 else None))
