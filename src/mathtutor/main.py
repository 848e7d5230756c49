"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from mathtutor.competition.router import router as competition_router
from mathtutor.config import get_settings
from mathtutor.database import close_db, create_schema, get_engine, init_db
from mathtutor.gamification.router import router as gamification_router
from mathtutor.health.router import router as health_router
from mathtutor.middleware import setup_middleware
from mathtutor.practice.router import router as practice_router
from mathtutor.redis_client import close_redis, init_redis
from mathtutor.social.router import router as social_router


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    if settings.auto_create_schema:
        await create_schema(get_engine())

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Math Tutor Progress API",
        description="XP, levels, streaks, leaderboard, adaptive practice and nudges for the math tutor",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(gamification_router)
    app.include_router(competition_router)
    app.include_router(practice_router)
    app.include_router(social_router)

    return app


app = create_app()
