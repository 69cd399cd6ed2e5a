"""
Main FastAPI application for the NCAAB Power Ratings API.
"""
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from prometheus_fastapi_instrumentator import Instrumentator

from power_ratings.core.config import settings
from power_ratings.core.database import init_db
from power_ratings.core.logging import configure_logging, get_correlation_id, get_logger
from power_ratings.core.middleware import CorrelationIdMiddleware
from power_ratings.core.rate_limit import limiter
from power_ratings.core import metrics
from power_ratings.api.routes import excluded_games, overrides, ratings
from power_ratings.services.ratings.closing_lines import ClosingLineCache

# Load environment variables from .env file
from dotenv import load_dotenv
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

configure_logging(
    level=settings.LOG_LEVEL,
    json_output=settings.LOG_JSON
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan events."""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    init_db()

    if settings.SCHEDULER_ENABLED:
        from power_ratings.core.scheduler import start_scheduler
        await start_scheduler(app.state.closing_line_cache)
        logger.info("Automation scheduler started")
    else:
        logger.info("Automation scheduler disabled (SCHEDULER_ENABLED=false)")

    metrics.update_scheduler_metrics()
    logger.info("Application started")

    yield

    # Shutdown
    from power_ratings.core.scheduler import stop_scheduler
    await stop_scheduler()
    logger.info("Shutting down application")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Market-driven NCAA men's basketball power ratings, adjusted game by game from closing spreads",
    lifespan=lifespan
)
app.state.limiter = limiter
app.state.closing_line_cache = ClosingLineCache()
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add correlation ID middleware (must be added before CORS for proper header handling)
app.add_middleware(CorrelationIdMiddleware)

# Initialize Prometheus metrics BEFORE including routes
instrumentator = Instrumentator()
instrumentator.instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API v1
app.include_router(ratings.router, prefix="/api/v1")
app.include_router(overrides.router, prefix="/api/v1")
app.include_router(excluded_games.router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "endpoints": {
            "ratings": "/api/v1/ratings",
            "sync": "/api/v1/ratings/sync",
            "recalculate": "/api/v1/ratings/recalculate",
            "matching_logs": "/api/v1/ratings/matching-logs",
            "overrides": "/api/v1/overrides",
            "excluded_games": "/api/v1/excluded-games",
            "metrics": "/metrics",
        }
    }


@app.get("/health")
@limiter.limit("120/minute")  # Higher limit for health checks
async def health_check(request: Request):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION
    }


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log unhandled errors and return a JSON 500 with the correlation id."""
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "correlation_id": get_correlation_id() or None,
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "power_ratings.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
