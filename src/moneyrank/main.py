"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from moneyrank.attempts.router import router as attempts_router
from moneyrank.challenges.router import router as challenges_router
from moneyrank.config import get_settings
from moneyrank.database import close_db, get_session, init_db
from moneyrank.gamification.router import router as badges_router
from moneyrank.gamification.seed import seed_badges
from moneyrank.health.router import router as health_router
from moneyrank.middleware import setup_middleware
from moneyrank.redis_client import close_redis, init_redis
from moneyrank.users.router import router as users_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    # Seed badge definitions (idempotent)
    try:
        async for db in get_session():
            await seed_badges(db)
            break
    except Exception:
        logger.warning("Badge seeding failed (tables may not exist yet)", exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="MoneyRank API",
        description="Daily money-decision ranking game: scoring, results and streaks",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(challenges_router)
    app.include_router(attempts_router)
    app.include_router(users_router)
    app.include_router(badges_router)

    return app


app = create_app()
