"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from mindgym.config import get_settings
from mindgym.database import close_db, init_db
from mindgym.health.router import router as health_router
from mindgym.leaderboard.router import router as leaderboard_router
from mindgym.middleware import setup_middleware
from mindgym.redis_client import close_redis, init_redis
from mindgym.training.router import router as training_router


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the database engine and Redis pool; close them on shutdown."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="MindGym API",
        description="Session settlement, unlock progression and leaderboards for MindGym training games",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(training_router)
    app.include_router(leaderboard_router)

    return app


app = create_app()
