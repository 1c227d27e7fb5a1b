"""
ReelRank API Server

FastAPI server for fishing competitions: catch logging, competition
scoring and the global/state/friends leaderboards.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
import uvicorn
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore

from reelrank.api.routes import router, limiter as routes_limiter
from reelrank.database import db
from reelrank.services.score_queue import get_score_queue, register_score_queue_handlers
from reelrank.services.competition_lifecycle_service import get_competition_lifecycle_service

# Set up logging
# Allow log level to be configured via environment variable (default: INFO)
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    # Startup
    logger.info("Starting up ReelRank API...")

    # Initialize database (create tables if they don't exist)
    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)
        # Don't raise - allow app to start even if initialization fails

    # Register recompute handlers (must be done before starting worker)
    try:
        register_score_queue_handlers()
        logger.info("Score queue handlers registered")
    except Exception as e:
        logger.error(f"Failed to register score queue handlers: {e}", exc_info=True)

    # Requeue jobs interrupted by a previous shutdown, then start the worker
    try:
        queue = get_score_queue()
        async with db.AsyncSessionLocal() as session:
            await queue.recover_running_jobs(session)
        queue.start_background_worker()
        logger.info("Score queue worker started")
    except Exception as e:
        logger.error(f"Failed to start score queue worker: {e}", exc_info=True)

    # Start competition lifecycle worker (status transitions, leaderboard rebuilds)
    try:
        get_competition_lifecycle_service().start()
    except Exception as e:
        logger.error(f"Failed to start competition lifecycle worker: {e}", exc_info=True)

    yield  # App is running

    # Shutdown
    logger.info("Shutting down ReelRank API...")

    try:
        get_score_queue().stop_background_worker()
        logger.info("Score queue worker stopped")
    except Exception as e:
        logger.error(f"Error stopping score queue worker: {e}", exc_info=True)

    try:
        get_competition_lifecycle_service().stop()
    except Exception as e:
        logger.error(f"Error stopping competition lifecycle worker: {e}", exc_info=True)

    await db.engine.dispose()


app = FastAPI(
    title="ReelRank API",
    description="Fishing competition scoring and leaderboards",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup rate limiter
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware, origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:8081").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router)


@app.get("/api/health")
async def health():
    """Liveness check."""
    return {"status": "ok"}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
