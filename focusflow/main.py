import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from focusflow.core.config import get_settings
from focusflow.core.exceptions import register_exception_handlers
from focusflow.core.logging_config import setup_logging
from focusflow.core.middleware import CorrelationIDMiddleware, RequestLoggingMiddleware
from focusflow.core.rate_limit import rate_limit_exceeded_handler
from focusflow.core.redis import close_redis, init_redis
from focusflow.models.limits import RateLimitExceededError
from focusflow.routers import ai, health, leaderboard, rooms, sessions, stats

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    setup_logging()
    logger.info("Starting %s...", settings.app_name)
    await init_redis()
    logger.info("Redis connection initialized")
    yield
    logger.info("Shutting down %s...", settings.app_name)
    await close_redis()
    logger.info("Redis connection closed")


app = FastAPI(
    title=settings.app_name,
    description="Live session, presence, leaderboard and streak API for FocusFlow",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)
# Added last so it runs first and the ID is set for every other middleware's logs
app.add_middleware(CorrelationIDMiddleware)

app.add_exception_handler(RateLimitExceededError, rate_limit_exceeded_handler)
register_exception_handlers(app)

app.include_router(health.router, tags=["Health"])
app.include_router(sessions.router, prefix=f"{settings.api_prefix}/sessions", tags=["Sessions"])
app.include_router(rooms.router, prefix=f"{settings.api_prefix}/rooms", tags=["Rooms"])
app.include_router(
    leaderboard.router, prefix=f"{settings.api_prefix}/leaderboard", tags=["Leaderboard"]
)
app.include_router(stats.router, prefix=f"{settings.api_prefix}/stats", tags=["Stats"])
app.include_router(ai.router, prefix=f"{settings.api_prefix}/ai", tags=["AI"])
