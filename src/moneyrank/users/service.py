"""User provisioning. Identity comes from the auth provider; we only keep a row per id."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from moneyrank.db.models import User
from moneyrank.stats.aggregate_service import dialect_insert


async def ensure_user(db: AsyncSession, user_id: str, display_name: str | None = None) -> None:
    """Create the user row if it does not exist yet. Does not commit."""
    stmt = dialect_insert(db, User).values(
        id=user_id,
        display_name=display_name,
        created_at=datetime.now(timezone.utc),
    )
    await db.execute(stmt.on_conflict_do_nothing(index_elements=["id"]))


async def get_user(db: AsyncSession, user_id: str) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()
