"""Shared test fixtures.

Each test gets a fresh SQLite database built from the ORM metadata. Set
MR_TEST_DATABASE_URL (e.g. postgresql+asyncpg://...) to run the suite against
PostgreSQL instead; tables are dropped and recreated per test.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from moneyrank.attempts.pipeline import SubmissionPipeline
from moneyrank.attempts.retry import RetryConfig
from moneyrank.auth.jwt import create_access_token, reset_keys
from moneyrank.config import get_settings
from moneyrank.database import close_db, get_engine, get_session_factory, init_db
from moneyrank.db import models  # noqa: F401
from moneyrank.db.base import Base
from moneyrank.db.models import Challenge, ChallengeOption
from moneyrank.gamification.seed import seed_badges
from moneyrank.main import create_app

TEST_JWT_SECRET = "moneyrank-test-secret-0123456789abcdef0123456789abcdef"

_TIER_LABELS = ("Optimal", "Reasonable", "Reasonable", "Risky")


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch: pytest.MonkeyPatch):
    """HS256 tokens with a shared secret; no key files needed."""
    monkeypatch.setenv("MR_JWT_ALGORITHM", "HS256")
    monkeypatch.setenv("MR_JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("MR_LOG_FORMAT", "console")
    get_settings.cache_clear()
    reset_keys()
    yield
    get_settings.cache_clear()
    reset_keys()


@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Initialise the app engine against a clean schema."""
    url = os.environ.get("MR_TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'moneyrank.db'}"
    await init_db(url)
    engine = get_engine()
    async with engine.begin() as conn:
        if engine.dialect.name != "sqlite":
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await close_db()


@pytest_asyncio.fixture
async def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """The app's session factory, with badge definitions seeded."""
    factory = get_session_factory()
    async with factory() as db:
        await seed_badges(db)
    return factory


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for test setup and assertions."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def retry_config() -> RetryConfig:
    return RetryConfig(max_retries=3, base_delay=0.001, max_delay=0.01, jitter=False)


@pytest.fixture
def pipeline(session_factory, retry_config: RetryConfig) -> SubmissionPipeline:
    return SubmissionPipeline(session_factory, retry_config=retry_config, timeout_seconds=5.0)


@pytest.fixture
def make_challenge(session_factory) -> Callable:
    """Factory: insert a published challenge with n options, ideal order a, b, c, ..."""

    async def _make(date_key: str = "2026-10-19", n_options: int = 4, published: bool = True) -> Challenge:
        challenge_id = f"ch-{date_key}"
        challenge = Challenge(
            id=challenge_id,
            date_key=date_key,
            title=f"Your $5,000 bonus ({date_key})",
            scenario_text="You just received a $5,000 work bonus. Rank what to do with it.",
            category="budgeting",
            difficulty=2,
            is_published=published,
            options=[
                ChallengeOption(
                    id=f"{challenge_id}-{chr(ord('a') + i)}",
                    option_text=f"Option {chr(ord('A') + i)}",
                    tier_label=_TIER_LABELS[min(i, len(_TIER_LABELS) - 1)],
                    explanation_short="",
                    ideal_rank=i + 1,
                )
                for i in range(n_options)
            ],
        )
        async with session_factory() as db:
            db.add(challenge)
            await db.commit()
        return challenge

    return _make


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    def _headers(user_id: str = "user-1") -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _headers


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the app; Redis is not initialised, so it is skipped."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
