"""Per-(user, challenge) submission lock.

On PostgreSQL the lock is a transaction-scoped advisory lock, released by
COMMIT or ROLLBACK. Other dialects fall back to an in-process asyncio.Lock
registry; SQLite allows a single writer, so every write there shares one lock.
The registry only serialises callers that share it, so requests go through
the one process-wide instance from get_submission_lock().
"""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from moneyrank.config import get_settings
from moneyrank.database import dialect_name

_SQLITE_WRITER_KEY = "sqlite:writer"


def lock_key(user_id: str, challenge_id: str) -> str:
    return f"attempt:{user_id}:{challenge_id}"


class SubmissionLock:
    """Serialises concurrent submissions for the same (user, challenge) pair."""

    def __init__(self, lock_timeout_seconds: float = 5.0) -> None:
        self.lock_timeout_seconds = lock_timeout_seconds
        self._local: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    @asynccontextmanager
    async def hold(self, db: AsyncSession, user_id: str, challenge_id: str) -> AsyncIterator[None]:
        """Hold the pair lock for the body of the block.

        The caller must commit inside the block so that the in-process
        fallback is released only after the transaction is durable.
        """
        dialect = dialect_name(db)
        key = lock_key(user_id, challenge_id)

        if dialect == "postgresql":
            timeout_ms = int(self.lock_timeout_seconds * 1000)
            await db.execute(text(f"SET LOCAL lock_timeout = {timeout_ms}"))
            await db.execute(text("SELECT pg_advisory_xact_lock(hashtext(:key))"), {"key": key})
            yield
            return

        if dialect == "sqlite":
            key = _SQLITE_WRITER_KEY
        lock = self._local.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._local[key] = lock
        await asyncio.wait_for(lock.acquire(), timeout=self.lock_timeout_seconds)
        try:
            yield
        finally:
            lock.release()


@lru_cache
def get_submission_lock() -> SubmissionLock:
    """Process-wide submission lock shared by every request."""
    return SubmissionLock(get_settings().lock_timeout_seconds)
