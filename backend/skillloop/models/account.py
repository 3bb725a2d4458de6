"""Caller account model used by the AI routing layer.

Only the subset of the user record that provider selection and quota
accounting need is represented here.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from skillloop.llm.config import EntitlementTier, KeyKind, Provider


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ProviderUsage:
    """Per-provider credential, model and token accounting."""

    api_key: Optional[str]
    model: str
    monthly_token_limit: int
    token_usage_period: int = 0
    period_start: datetime = field(default_factory=_utcnow)

    @property
    def has_key(self) -> bool:
        return bool(self.api_key)


@dataclass
class CallerAccount:
    """A user on whose behalf generations are made."""

    id: str
    primary: ProviderUsage
    secondary: ProviderUsage
    secondary_key_kind: KeyKind = KeyKind.POOLED
    subscription_tier: EntitlementTier = EntitlementTier.FREE
    subscription_status: str = "inactive"
    subscription_end: Optional[datetime] = None

    def usage_for(self, provider: Provider) -> ProviderUsage:
        """Get the usage record for a provider."""
        if provider is Provider.PRIMARY:
            return self.primary
        return self.secondary

    def effective_tier(self, now: Optional[datetime] = None) -> EntitlementTier:
        """Resolve the tier actually in force.

        Pro only counts while the subscription is active and not past its end.
        """
        if (
            self.subscription_tier is EntitlementTier.PRO
            and self.subscription_status == "active"
        ):
            now = now or _utcnow()
            if self.subscription_end is not None and self.subscription_end < now:
                return EntitlementTier.FREE
            return EntitlementTier.PRO
        return EntitlementTier.FREE
