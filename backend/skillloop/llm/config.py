"""LLM configuration and model definitions.

This module defines the provider tiers, model pricing, entitlement limits
and the routing configuration consumed by the generation orchestrator.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Provider(Enum):
    """Provider tiers, in fallback order."""

    PRIMARY = "primary"  # OpenAI (paid, higher quality)
    SECONDARY = "secondary"  # Gemini (free tier, pooled keys)

    @property
    def vendor(self) -> str:
        """LiteLLM provider prefix for this tier."""
        return "openai" if self is Provider.PRIMARY else "gemini"


class EntitlementTier(Enum):
    """Subscription levels."""

    FREE = "free"
    PRO = "pro"


class KeyKind(Enum):
    """Whether a stored Gemini credential is the caller's own or a pool identifier."""

    OWN = "own"
    POOLED = "pooled"


# Cost per 1M tokens (approximate blended input/output)
MODEL_COSTS: dict[str, float] = {
    "gpt-4o": 5.00,  # ~$2.50 in / $10.00 out
    "gpt-4o-mini": 0.30,  # ~$0.15 in / $0.60 out
    "gpt-3.5-turbo": 1.00,  # Legacy
    "gemini-1.5-flash": 0.00,  # Free tier mostly
    "gemini-2.0-flash": 0.00,  # Free tier mostly
}

DEFAULT_COST_PER_1M = 0.30


def estimate_monthly_cost(model: str, monthly_token_limit: int) -> float:
    """Estimate the USD cost of spending a full monthly token allowance on a model."""
    rate = MODEL_COSTS.get(model, DEFAULT_COST_PER_1M)
    return round(monthly_token_limit / 1_000_000 * rate, 2)


@dataclass(frozen=True)
class TierLimits:
    """AI entitlements granted by a subscription tier."""

    secondary_monthly_token_limit: int
    use_server_primary: bool
    primary_model: str


TIER_LIMITS: dict[EntitlementTier, TierLimits] = {
    EntitlementTier.FREE: TierLimits(
        secondary_monthly_token_limit=7_000,
        use_server_primary=False,
        primary_model="",
    ),
    EntitlementTier.PRO: TierLimits(
        secondary_monthly_token_limit=3_000_000,
        use_server_primary=True,
        primary_model="gpt-4o-mini",
    ),
}


def get_tier_limits(tier: EntitlementTier) -> TierLimits:
    """Get the limits for a tier, defaulting to the free tier."""
    return TIER_LIMITS.get(tier, TIER_LIMITS[EntitlementTier.FREE])


@dataclass
class RoutingConfig:
    """Configuration for the generation orchestrator."""

    # Server-funded OpenAI key for pro callers
    server_primary_key: Optional[str] = None

    # Models used when the caller has not chosen one
    default_primary_model: str = "gpt-4o-mini"
    default_secondary_model: str = "gemini-2.0-flash"

    # Upper bound on the wait when every pool key is cooling down
    max_backoff_seconds: float = 10.0

    # Cooldown applied when a 429 carries no retry hint
    default_cooldown_seconds: int = 60

    # Timeout configuration
    timeout_seconds: int = 120

    def has_server_primary(self) -> bool:
        """Check if a server-funded primary credential is configured."""
        return bool(self.server_primary_key)
