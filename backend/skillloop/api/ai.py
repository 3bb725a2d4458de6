"""AI generation and quota routes.

These are consumed by the curriculum, slide, article and translation
handlers; the caller id is supplied by those trusted internal callers.
"""

import logging

from fastapi import APIRouter, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from skillloop.api.deps import Orchestrator, Provisioner
from skillloop.config import get_settings
from skillloop.models.schemas import (
    ErrorResponse,
    GenerateRequest,
    GenerateResponse,
    ProvisionResponse,
    QuotaResponse,
)
from skillloop.utils.errors import bad_request

router = APIRouter()
settings = get_settings()
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)

ERROR_RESPONSES = {
    404: {"model": ErrorResponse, "description": "Unknown caller"},
    429: {"model": ErrorResponse, "description": "Monthly quota reached"},
    502: {"model": ErrorResponse, "description": "Provider error"},
    503: {"model": ErrorResponse, "description": "All Gemini keys rate-limited"},
}


@router.post("/generate", response_model=GenerateResponse, responses=ERROR_RESPONSES)
@limiter.limit(settings.generate_rate_limit)
async def generate(
    request: Request,
    body: GenerateRequest,
    orchestrator: Orchestrator,
):
    """Generate text for a caller on the best available provider."""
    if not body.prompt.strip():
        raise bad_request("Prompt must not be blank")

    result = await orchestrator.generate(body.caller_id, body.prompt, body.max_tokens)

    logger.info(
        f"[AI] Served user {body.caller_id} via {result.provider.value} "
        f"({result.model}, {result.tokens} tokens)"
    )
    return GenerateResponse(**result.to_dict())


@router.get(
    "/quota/{caller_id}",
    response_model=QuotaResponse,
    responses={404: ERROR_RESPONSES[404]},
)
async def get_quota(caller_id: str, orchestrator: Orchestrator):
    """Report remaining monthly quota per provider."""
    quota = orchestrator.get_remaining_quota(caller_id)
    return QuotaResponse(
        **quota.to_dict(),
        available=orchestrator.is_available(caller_id),
    )


@router.post(
    "/provision/{caller_id}",
    response_model=ProvisionResponse,
    responses={404: ERROR_RESPONSES[404]},
)
async def provision(caller_id: str, provisioner: Provisioner, orchestrator: Orchestrator):
    """Record shared Gemini access for a caller that has no Gemini key."""
    provisioner.provision(caller_id)
    quota = orchestrator.get_remaining_quota(caller_id)
    return ProvisionResponse(caller_id=caller_id, key_type=quota.secondary.key_type)
