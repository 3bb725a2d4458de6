"""Monthly token quota enforcement per caller and provider."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from dateutil.relativedelta import relativedelta

from skillloop.llm.config import Provider, get_tier_limits
from skillloop.models.account import CallerAccount
from skillloop.services.accounts import AccountStore

logger = logging.getLogger(__name__)

# Length of one accounting period
QUOTA_PERIOD = relativedelta(months=1)


@dataclass
class QuotaStatus:
    """Current token usage for one provider."""

    used: int
    limit: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

    @property
    def exceeded(self) -> bool:
        return self.used >= self.limit


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuotaTracker:
    """Tracks token usage against monthly limits.

    Both providers share one period: the reset is decided on the primary
    period start and re-stamps both.
    """

    def __init__(self, store: AccountStore, clock: Callable[[], datetime] = _utcnow):
        self.store = store
        self._clock = clock

    def period_elapsed(self, account: CallerAccount, now: datetime) -> bool:
        """Check if at least one calendar month has passed since the period began."""
        return now - QUOTA_PERIOD >= account.primary.period_start

    def check_and_reset_period(self, account: CallerAccount) -> CallerAccount:
        """Reset usage counters if the monthly period has rolled over.

        Args:
            account: Freshly loaded caller account

        Returns:
            The account as it stands after any reset. Calling again within the
            same period returns it unchanged.
        """
        now = self._clock()
        if not self.period_elapsed(account, now):
            return account

        updated = self.store.reset_usage_period(
            account.id, now=now, older_than=now - QUOTA_PERIOD
        )
        if updated is None:
            # Another request reset the period first
            updated = self.store.get_account(account.id) or account
        else:
            logger.info(f"[QUOTA] Usage period reset for user {account.id}")
        return updated

    def increment_usage(self, caller_id: str, provider: Provider, tokens: int) -> None:
        """Add tokens to a caller's running counter for a provider.

        Raises:
            ValueError: If tokens is negative
        """
        if tokens < 0:
            raise ValueError(f"Token count must be non-negative, got {tokens}")
        if tokens == 0:
            return

        self.store.increment_usage(caller_id, provider, tokens)
        logger.debug(f"[QUOTA] +{tokens} {provider.value} tokens for user {caller_id}")

    def monthly_limit(self, account: CallerAccount, provider: Provider) -> int:
        """Token ceiling in force for a provider.

        The Gemini ceiling is never below the allowance of the caller's
        effective subscription tier.
        """
        limit = account.usage_for(provider).monthly_token_limit
        if provider is Provider.SECONDARY:
            tier = account.effective_tier(self._clock())
            limit = max(limit, get_tier_limits(tier).secondary_monthly_token_limit)
        return limit

    def status(self, account: CallerAccount, provider: Provider) -> QuotaStatus:
        """Usage snapshot for one provider."""
        return QuotaStatus(
            used=account.usage_for(provider).token_usage_period,
            limit=self.monthly_limit(account, provider),
        )
