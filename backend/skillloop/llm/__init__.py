"""LLM building blocks for AI generation in SkillLoop.

This package provides what the generation service routes across:
- Provider adapters for OpenAI and Gemini through LiteLLM
- A shared Gemini key pool with consistent-hash assignment and cooldowns
- Credential resolution for dedicated vs pooled Gemini keys
- Model pricing and subscription tier limits
- Rate-limit classification for key rotation

Example usage:
    from skillloop.services.generation import create_orchestrator_from_settings

    orchestrator = create_orchestrator_from_settings()

    result = await orchestrator.generate(
        caller_id="user-123",
        prompt="Write a 5-day plan for learning SQL...",
        max_tokens=2000,
    )
    print(result.provider, result.model, result.tokens)

    quota = orchestrator.get_remaining_quota("user-123")
"""

from .adapters import (
    AdapterResult,
    GeminiAdapter,
    OpenAIAdapter,
    ProviderAdapter,
)
from .config import (
    MODEL_COSTS,
    TIER_LIMITS,
    EntitlementTier,
    KeyKind,
    Provider,
    RoutingConfig,
    TierLimits,
    get_tier_limits,
)
from .key_pool import KeyPool
from .key_resolver import KeyResolver, ResolvedKey, infer_key_kind, pooled_key_identifier

__all__ = [
    # Config
    "RoutingConfig",
    "Provider",
    "EntitlementTier",
    "KeyKind",
    "TierLimits",
    "TIER_LIMITS",
    "MODEL_COSTS",
    "get_tier_limits",
    # Adapters
    "ProviderAdapter",
    "AdapterResult",
    "OpenAIAdapter",
    "GeminiAdapter",
    # Keys
    "KeyPool",
    "KeyResolver",
    "ResolvedKey",
    "infer_key_kind",
    "pooled_key_identifier",
]
