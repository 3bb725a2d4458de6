"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from skillloop.api import ai, health
from skillloop.config import get_settings
from skillloop.services.generation import create_orchestrator_from_settings
from skillloop.services.provisioning import create_provisioner_from_settings
from skillloop.utils.errors import SkillLoopError, status_for
from skillloop.utils.logging import setup_logging

# Configure logging with file output
settings = get_settings()
setup_logging(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup: one orchestrator (and one key pool) per process
    if getattr(app.state, "orchestrator", None) is None:
        app.state.orchestrator = create_orchestrator_from_settings()
    orchestrator = app.state.orchestrator
    if getattr(app.state, "provisioner", None) is None:
        app.state.provisioner = create_provisioner_from_settings(orchestrator.store)
    logger.info(f"Starting application in {settings.environment} mode")
    logger.info(f"Gemini key pool size: {orchestrator.pool.pool_size}")
    logger.info(f"Server OpenAI key configured: {orchestrator.config.has_server_primary()}")
    yield
    # Shutdown
    logger.info("Shutting down application")


# Create FastAPI app
app = FastAPI(
    title="SkillLoop AI API",
    description="Provider routing, key pooling and token quotas for AI generation",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

# Attach rate limiter to app
app.state.limiter = ai.limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(SkillLoopError)
async def skillloop_error_handler(request: Request, exc: SkillLoopError) -> JSONResponse:
    """Report domain errors with their user-facing message."""
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": exc.message,
            "error": type(exc).__name__,
            "provider": exc.details.get("provider"),
        },
    )


# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(health.router, tags=["Health"])
app.include_router(ai.router, prefix="/ai", tags=["AI"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "SkillLoop AI API",
        "version": "1.0.0",
        "docs": "/docs" if not settings.is_production else None,
    }
