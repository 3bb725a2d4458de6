"""Generation orchestrator: the single entry point for AI generation.

Provider priority for every request:
1. Pro tier: server-funded OpenAI key with the tier's model
2. Caller's own OpenAI key, while within their OpenAI limit
3. Gemini, once the caller's Gemini limit is checked, using the caller's
   dedicated key or the shared key pool with rotation on 429

Failures on the two OpenAI tiers are logged and fall through, since Gemini
is always left to try. Only the Gemini tier surfaces errors to the caller.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Awaitable, Callable, Optional

from skillloop.config import get_settings
from skillloop.llm.adapters import (
    AdapterResult,
    GeminiAdapter,
    OpenAIAdapter,
    ProviderAdapter,
)
from skillloop.llm.config import (
    KeyKind,
    Provider,
    RoutingConfig,
    estimate_monthly_cost,
    get_tier_limits,
)
from skillloop.llm.key_pool import KeyPool
from skillloop.llm.key_resolver import KeyResolver, ResolvedKey
from skillloop.llm.outcomes import (
    AttemptFailed,
    AttemptRateLimited,
    AttemptSucceeded,
    attempt,
)
from skillloop.models.account import CallerAccount
from skillloop.services.accounts import (
    AccountStore,
    InMemoryAccountStore,
    SupabaseAccountStore,
)
from skillloop.services.quota import QuotaTracker
from skillloop.utils.errors import (
    CallerNotFoundError,
    CapacityExceededError,
    ProviderConfigurationError,
    QuotaExceededError,
    UpstreamError,
)
from skillloop.utils.logging import mask_key

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 2500


@dataclass
class GenerationResult:
    """Normalized result of a generation request."""

    text: str
    provider: Provider
    model: str
    tokens: int

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "provider": self.provider.value,
            "model": self.model,
            "tokens": self.tokens,
        }


@dataclass
class PrimaryQuota:
    used: int
    limit: int
    has_key: bool
    cost_estimate: float


@dataclass
class SecondaryQuota:
    used: int
    limit: int
    has_key: bool
    key_type: str  # "dedicated" | "shared" | "none"


@dataclass
class RemainingQuota:
    """Per-provider usage for display. Not used for enforcement."""

    primary: PrimaryQuota
    secondary: SecondaryQuota

    def to_dict(self) -> dict:
        return asdict(self)


class GenerationOrchestrator:
    """Selects a provider and credential for each request and records usage."""

    def __init__(
        self,
        config: RoutingConfig,
        store: AccountStore,
        pool: KeyPool,
        quota: Optional[QuotaTracker] = None,
        resolver: Optional[KeyResolver] = None,
        adapters: Optional[dict[Provider, ProviderAdapter]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the orchestrator.

        Args:
            config: Routing configuration
            store: Caller account store
            pool: Shared Gemini key pool
            quota: Quota tracker (built on ``store`` if omitted)
            resolver: Gemini key resolver (built on ``pool`` if omitted)
            adapters: Provider adapters keyed by provider tier
            sleep: Awaitable used for the bounded back-off
        """
        self.config = config
        self.store = store
        self.pool = pool
        self.quota = quota or QuotaTracker(store)
        self.resolver = resolver or KeyResolver(pool)
        self.adapters = adapters or {
            Provider.PRIMARY: OpenAIAdapter(
                timeout_seconds=config.timeout_seconds,
                default_cooldown_seconds=config.default_cooldown_seconds,
            ),
            Provider.SECONDARY: GeminiAdapter(
                timeout_seconds=config.timeout_seconds,
                default_cooldown_seconds=config.default_cooldown_seconds,
            ),
        }
        self._sleep = sleep

    def _load_account(self, caller_id: str) -> CallerAccount:
        account = self.store.get_account(caller_id)
        if account is None:
            raise CallerNotFoundError(caller_id)
        return account

    def _record(
        self,
        account: CallerAccount,
        provider: Provider,
        model: str,
        result: AdapterResult,
    ) -> GenerationResult:
        self.quota.increment_usage(account.id, provider, result.tokens)
        return GenerationResult(
            text=result.text,
            provider=provider,
            model=model,
            tokens=result.tokens,
        )

    async def generate(
        self,
        caller_id: str,
        prompt: str,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> GenerationResult:
        """Generate text for a caller with automatic provider selection.

        Args:
            caller_id: Caller account id
            prompt: Prompt text
            max_tokens: Completion token budget

        Returns:
            GenerationResult naming the provider and model that served it

        Raises:
            CallerNotFoundError: Unknown caller
            QuotaExceededError: Gemini monthly limit reached
            CapacityExceededError: Every usable Gemini key is rate-limited
            UpstreamError: Gemini failed with a non-rate-limit error
            ProviderConfigurationError: No Gemini credential configured
        """
        account = self._load_account(caller_id)
        account = self.quota.check_and_reset_period(account)

        result = await self._try_server_primary(account, prompt, max_tokens)
        if result is not None:
            return result

        result = await self._try_own_primary(account, prompt, max_tokens)
        if result is not None:
            return result

        secondary_quota = self.quota.status(account, Provider.SECONDARY)
        if secondary_quota.exceeded:
            logger.info(
                f"[AI] Gemini quota exhausted for user {caller_id} "
                f"({secondary_quota.used}/{secondary_quota.limit})"
            )
            raise QuotaExceededError(Provider.SECONDARY.value)

        return await self._generate_secondary(account, prompt, max_tokens)

    async def _try_server_primary(
        self, account: CallerAccount, prompt: str, max_tokens: int
    ) -> Optional[GenerationResult]:
        """Pro tier: OpenAI on the server's key with the tier's model."""
        limits = get_tier_limits(account.effective_tier())
        if not (limits.use_server_primary and self.config.has_server_primary()):
            return None

        model = limits.primary_model or self.config.default_primary_model
        outcome = await attempt(
            self.adapters[Provider.PRIMARY],
            self.config.server_primary_key,
            model,
            prompt,
            max_tokens,
        )
        if isinstance(outcome, AttemptSucceeded):
            return self._record(account, Provider.PRIMARY, model, outcome.result)

        logger.error(
            f"[AI] Server OpenAI failed for pro user {account.id}, "
            f"falling back: {outcome.error}"
        )
        return None

    async def _try_own_primary(
        self, account: CallerAccount, prompt: str, max_tokens: int
    ) -> Optional[GenerationResult]:
        """Caller's own OpenAI key, while they are within their OpenAI limit."""
        usage = account.primary
        if not usage.has_key or self.quota.status(account, Provider.PRIMARY).exceeded:
            return None

        outcome = await attempt(
            self.adapters[Provider.PRIMARY],
            usage.api_key,
            usage.model,
            prompt,
            max_tokens,
        )
        if isinstance(outcome, AttemptSucceeded):
            return self._record(account, Provider.PRIMARY, usage.model, outcome.result)

        logger.error(
            f"[AI] OpenAI generation failed for user {account.id}, "
            f"falling back to Gemini: {outcome.error}"
        )
        return None

    def _backoff_seconds(self, resolved: ResolvedKey, outcome: AttemptRateLimited) -> float:
        if resolved.pooled:
            wait = self.pool.seconds_until_available()
        else:
            wait = float(outcome.retry_after_seconds)
        return min(wait, self.config.max_backoff_seconds)

    async def _generate_secondary(
        self, account: CallerAccount, prompt: str, max_tokens: int
    ) -> GenerationResult:
        """Gemini with key rotation on 429.

        Every pool key gets at most one attempt per request. When no other key
        is free, wait (bounded) for the soonest cooldown to end and retry with
        whatever key the pool then hands out.
        """
        adapter = self.adapters[Provider.SECONDARY]
        model = account.secondary.model or self.config.default_secondary_model
        resolved = self.resolver.resolve(
            account.secondary.api_key, account.secondary_key_kind, account.id
        )
        credential = resolved.credential
        budget = max(self.pool.pool_size, 1)

        for attempt_number in range(budget):
            if not credential:
                raise ProviderConfigurationError(
                    "Gemini API key not configured. Set GEMINI_API_KEYS in .env"
                )

            outcome = await attempt(adapter, credential, model, prompt, max_tokens)

            if isinstance(outcome, AttemptSucceeded):
                if resolved.pooled:
                    self.pool.mark_success(credential)
                return self._record(account, Provider.SECONDARY, model, outcome.result)

            if isinstance(outcome, AttemptFailed):
                logger.error(
                    f"[AI] Gemini generation failed for user {account.id}: "
                    f"{type(outcome.error).__name__}: {outcome.error}"
                )
                raise UpstreamError(
                    outcome.error, provider=Provider.SECONDARY.value
                ) from outcome.error

            if resolved.pooled:
                self.pool.mark_rate_limited(credential, outcome.retry_after_seconds)
                next_key = self.pool.get_next_key(credential)
                if next_key:
                    logger.info(
                        f"[AI] Gemini 429 on {mask_key(credential)}, "
                        f"rotating to {mask_key(next_key)}"
                    )
                    credential = next_key
                    continue

            if attempt_number < budget - 1:
                wait = self._backoff_seconds(resolved, outcome)
                logger.info(f"[AI] All Gemini keys exhausted, waiting {wait:.1f}s...")
                await self._sleep(wait)
                if resolved.pooled:
                    credential = self.pool.get_key_for_caller(account.id) or credential
                continue

        logger.warning(
            f"[AI] Gemini capacity exhausted for user {account.id} after {budget} attempt(s)"
        )
        raise CapacityExceededError({"attempts": budget})

    def get_remaining_quota(self, caller_id: str) -> RemainingQuota:
        """Report per-provider usage, limits and credential availability.

        Raises:
            CallerNotFoundError: Unknown caller
        """
        account = self._load_account(caller_id)
        primary = self.quota.status(account, Provider.PRIMARY)
        secondary = self.quota.status(account, Provider.SECONDARY)
        stored_key = account.secondary.api_key
        pool_available = self.pool.pool_size > 0

        if account.secondary_key_kind is KeyKind.OWN and stored_key:
            key_type = "dedicated"
        elif stored_key or pool_available:
            key_type = "shared"
        else:
            key_type = "none"

        return RemainingQuota(
            primary=PrimaryQuota(
                used=primary.used,
                limit=primary.limit,
                has_key=account.primary.has_key,
                cost_estimate=estimate_monthly_cost(account.primary.model, primary.limit),
            ),
            secondary=SecondaryQuota(
                used=secondary.used,
                limit=secondary.limit,
                has_key=bool(stored_key) or pool_available,
                key_type=key_type,
            ),
        )

    def is_available(self, caller_id: str) -> bool:
        """Check whether any provider could currently serve this caller."""
        try:
            quota = self.get_remaining_quota(caller_id)
        except Exception as e:
            logger.warning(f"[AI] Availability check failed for user {caller_id}: {e}")
            return False

        if quota.primary.has_key and quota.primary.used < quota.primary.limit:
            return True
        if quota.secondary.has_key and quota.secondary.used < quota.secondary.limit:
            return True
        return False


def create_orchestrator_from_settings(
    store: Optional[AccountStore] = None,
) -> GenerationOrchestrator:
    """Create a GenerationOrchestrator from application settings.

    Args:
        store: Account store override; defaults to Supabase when configured,
            otherwise an empty in-memory store

    Returns:
        Configured GenerationOrchestrator instance
    """
    settings = get_settings()

    if store is None:
        if settings.has_supabase:
            store = SupabaseAccountStore(
                default_primary_model=settings.default_primary_model,
                default_secondary_model=settings.default_secondary_model,
                pooled_prefix=settings.pooled_key_prefix,
            )
        else:
            logger.warning("Supabase not configured, using in-memory account store")
            store = InMemoryAccountStore()

    config = RoutingConfig(
        server_primary_key=settings.openai_api_key,
        default_primary_model=settings.default_primary_model,
        default_secondary_model=settings.default_secondary_model,
        max_backoff_seconds=settings.pool_max_backoff_seconds,
        default_cooldown_seconds=settings.pool_default_cooldown_seconds,
        timeout_seconds=settings.llm_timeout_seconds,
    )

    return GenerationOrchestrator(
        config=config,
        store=store,
        pool=KeyPool(settings.gemini_pool_keys),
    )
