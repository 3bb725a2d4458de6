"""Health check endpoint."""

from fastapi import APIRouter

from skillloop.api.deps import Orchestrator

router = APIRouter()


@router.get("/health")
async def health_check(orchestrator: Orchestrator):
    """Health check endpoint for monitoring."""
    pool = orchestrator.pool.snapshot()
    return {
        "status": "healthy" if pool["pool_size"] else "degraded",
        "version": "1.0.0",
        "server_openai": orchestrator.config.has_server_primary(),
        "gemini_pool": pool,
    }
