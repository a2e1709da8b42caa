"""
Event Registration API - Main Application Entry Point

Registration into capacity-limited events with:
- Automatic admission, waitlisting and promotion under a per-event critical section
- Redis caching of the public event listing
- Structured logging with request correlation
- Fire-and-forget participant notifications
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import get_settings
from app.core.exceptions import InvariantViolation, RegistrationError
from app.core.logging import setup_logging, get_logger
from app.core.metrics import metrics_endpoint
from app.api.deps import get_admission_controller
from app.api.router import api_router
from app.api.middleware import RequestLoggingMiddleware
from app.db.session import async_session_factory
from app.services.cache_service import get_redis, close_redis, get_cache_stats
from app.services.seed import seed_demo_data

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    if settings.SEED_DEMO_DATA and settings.ENVIRONMENT != "production":
        await seed_demo_data(async_session_factory)

    yield

    # Let queued notifications finish before the loop goes away
    await get_admission_controller().dispatcher.drain()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Event registration with capacity-aware admission and waitlist promotion",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


@app.exception_handler(RegistrationError)
async def registration_error_handler(request: Request, exc: RegistrationError) -> JSONResponse:
    if isinstance(exc, InvariantViolation):
        logger.error("invariant_violation", **exc.to_dict())
    else:
        logger.info("request_rejected", **exc.to_dict())
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom middleware
app.add_middleware(RequestLoggingMiddleware)

# Routes
app.include_router(api_router)


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
    }


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
