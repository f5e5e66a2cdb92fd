"""AniNotion Recommendations API - FastAPI Application."""

import logging
from contextlib import asynccontextmanager

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from aninotion.middleware import CorrelationIDFilter, CorrelationIDMiddleware

# Configure logging - cleaner output for development
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] [%(correlation_id)s] %(message)s",
    datefmt="%H:%M:%S",
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(CorrelationIDFilter())

# Suppress noisy loggers - SQLAlchemy is especially chatty
logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("asyncio").setLevel(logging.WARNING)

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from aninotion.api.deps import limiter
from aninotion.api.v1.router import api_router
from aninotion.config import get_settings
from aninotion.core.counters import EngagementCounters, get_counters
from aninotion.db.database import check_db, init_db

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    await init_db()

    counters = get_counters()
    if counters.is_enabled() and not await counters.ping():
        logger.warning("Redis configured but not reachable; counters will degrade")

    yield

    logger.info("Shutting down application...")
    await counters.close()
    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.app_name,
    description="Content-based post recommendations and engagement counters for AniNotion",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware - restricted methods and headers for security
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Correlation-ID"],
    expose_headers=["X-Correlation-ID"],
)

# Correlation ID middleware for request tracing
app.add_middleware(CorrelationIDMiddleware)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    content = {"success": False, "message": "Internal server error"}
    if settings.debug:
        content["error"] = str(exc)
    return JSONResponse(status_code=500, content=content)


# Include API routes
app.include_router(api_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


@app.get("/health/db")
async def db_status():
    """Check that PostgreSQL answers queries."""
    healthy = await check_db()
    return {"status": "healthy" if healthy else "error", "database": healthy}


@app.get("/health/counters")
async def counters_status(counters: EngagementCounters = Depends(get_counters)):
    """Report whether the Redis counter store is configured and reachable."""
    enabled = counters.is_enabled()
    reachable = await counters.ping() if enabled else False
    return {
        "status": "healthy" if reachable or not enabled else "degraded",
        "enabled": enabled,
        "reachable": reachable,
    }


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": settings.app_name,
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }
