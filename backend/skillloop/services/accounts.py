"""Caller account persistence.

The AI routing layer needs little from the user store: load an account,
reset its usage period, atomically add tokens to a usage counter, and
record a provisioned Gemini key. ``SupabaseAccountStore`` backs these with
the ``users`` table and the ``increment_ai_usage`` Postgres function;
``InMemoryAccountStore`` is used for local development and tests.
"""

import copy
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol

from dateutil import parser as date_parser
from supabase import Client

from skillloop.llm.config import EntitlementTier, KeyKind, Provider
from skillloop.llm.key_resolver import DEFAULT_POOLED_PREFIX, infer_key_kind
from skillloop.llm.retry import transient_retry
from skillloop.models.account import CallerAccount, ProviderUsage
from skillloop.services.supabase import get_supabase_client, refresh_supabase_client

logger = logging.getLogger(__name__)

# Provider tier -> column prefix in the users table
COLUMN_PREFIX = {
    Provider.PRIMARY: "openai",
    Provider.SECONDARY: "gemini",
}

USER_COLUMNS = ", ".join(
    [
        "id",
        "openai_api_key",
        "openai_model",
        "openai_monthly_token_limit",
        "openai_token_usage_period",
        "openai_period_start",
        "gemini_api_key",
        "gemini_key_kind",
        "gemini_model",
        "gemini_monthly_token_limit",
        "gemini_token_usage_period",
        "gemini_period_start",
        "subscription_tier",
        "subscription_status",
        "subscription_end",
    ]
)


class AccountStore(Protocol):
    """Operations the routing layer needs from the user store."""

    def get_account(self, caller_id: str) -> Optional[CallerAccount]: ...

    def reset_usage_period(
        self, caller_id: str, now: datetime, older_than: datetime
    ) -> Optional[CallerAccount]: ...

    def increment_usage(self, caller_id: str, provider: Provider, tokens: int) -> None: ...

    def set_secondary_key(self, caller_id: str, api_key: str, kind: KeyKind) -> None: ...


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    parsed = value if isinstance(value, datetime) else date_parser.isoparse(value)
    # Columns without a time zone hold UTC
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _period_start(value: Any) -> datetime:
    # A missing period start opens a fresh period now
    return _parse_timestamp(value) or datetime.now(timezone.utc)


def account_from_row(
    row: dict,
    default_primary_model: str = "gpt-4o-mini",
    default_secondary_model: str = "gemini-2.0-flash",
    pooled_prefix: str = DEFAULT_POOLED_PREFIX,
) -> CallerAccount:
    """Build a CallerAccount from a ``users`` row."""
    gemini_key = row.get("gemini_api_key")
    key_kind = row.get("gemini_key_kind")
    if key_kind:
        kind = KeyKind(key_kind)
    else:
        # Rows written before the explicit kind column existed
        kind = infer_key_kind(gemini_key, pooled_prefix)

    tier = row.get("subscription_tier") or EntitlementTier.FREE.value
    try:
        subscription_tier = EntitlementTier(tier)
    except ValueError:
        logger.warning(f"Unknown subscription tier {tier!r} for user {row['id']}, treating as free")
        subscription_tier = EntitlementTier.FREE

    return CallerAccount(
        id=row["id"],
        primary=ProviderUsage(
            api_key=row.get("openai_api_key"),
            model=row.get("openai_model") or default_primary_model,
            monthly_token_limit=row.get("openai_monthly_token_limit") or 0,
            token_usage_period=row.get("openai_token_usage_period") or 0,
            period_start=_period_start(row.get("openai_period_start")),
        ),
        secondary=ProviderUsage(
            api_key=gemini_key,
            model=row.get("gemini_model") or default_secondary_model,
            monthly_token_limit=row.get("gemini_monthly_token_limit") or 0,
            token_usage_period=row.get("gemini_token_usage_period") or 0,
            period_start=_period_start(row.get("gemini_period_start")),
        ),
        secondary_key_kind=kind,
        subscription_tier=subscription_tier,
        subscription_status=row.get("subscription_status") or "inactive",
        subscription_end=_parse_timestamp(row.get("subscription_end")),
    )


class SupabaseAccountStore:
    """Account store backed by the Supabase ``users`` table."""

    def __init__(
        self,
        client: Optional[Client] = None,
        default_primary_model: str = "gpt-4o-mini",
        default_secondary_model: str = "gemini-2.0-flash",
        pooled_prefix: str = DEFAULT_POOLED_PREFIX,
    ):
        """Initialize the store.

        Args:
            client: Supabase client; the shared process client is used if omitted
            default_primary_model: Model for rows without an OpenAI model
            default_secondary_model: Model for rows without a Gemini model
            pooled_prefix: Prefix of legacy shared-key identifiers
        """
        self._client = client
        self.default_primary_model = default_primary_model
        self.default_secondary_model = default_secondary_model
        self.pooled_prefix = pooled_prefix

    def _execute(self, build: Callable[[Client], Any]) -> Any:
        """Execute a query, retrying transient transport failures."""
        for attempt in transient_retry():
            with attempt:
                if attempt.retry_state.attempt_number > 1 and self._client is None:
                    refresh_supabase_client()
                client = self._client or get_supabase_client()
                return build(client).execute()

    def _to_account(self, row: dict) -> CallerAccount:
        return account_from_row(
            row,
            default_primary_model=self.default_primary_model,
            default_secondary_model=self.default_secondary_model,
            pooled_prefix=self.pooled_prefix,
        )

    def get_account(self, caller_id: str) -> Optional[CallerAccount]:
        result = self._execute(
            lambda c: c.table("users").select(USER_COLUMNS).eq("id", caller_id).limit(1)
        )
        if not result.data:
            return None
        return self._to_account(result.data[0])

    def reset_usage_period(
        self, caller_id: str, now: datetime, older_than: datetime
    ) -> Optional[CallerAccount]:
        """Zero both usage counters if the period started at or before ``older_than``.

        The condition is part of the UPDATE, so concurrent resets for the same
        caller leave exactly one winner. Returns None when no row matched.
        """
        stamp = now.isoformat()
        result = self._execute(
            lambda c: c.table("users")
            .update(
                {
                    "openai_token_usage_period": 0,
                    "openai_period_start": stamp,
                    "gemini_token_usage_period": 0,
                    "gemini_period_start": stamp,
                }
            )
            .eq("id", caller_id)
            .lte("openai_period_start", older_than.isoformat())
        )
        if not result.data:
            return None
        return self._to_account(result.data[0])

    def increment_usage(self, caller_id: str, provider: Provider, tokens: int) -> None:
        """Atomically add tokens via the ``increment_ai_usage`` function."""
        self._execute(
            lambda c: c.rpc(
                "increment_ai_usage",
                {
                    "p_user_id": caller_id,
                    "p_provider": COLUMN_PREFIX[provider],
                    "p_tokens": tokens,
                },
            )
        )

    def set_secondary_key(self, caller_id: str, api_key: str, kind: KeyKind) -> None:
        """Store the caller's Gemini key together with its kind."""
        self._execute(
            lambda c: c.table("users")
            .update({"gemini_api_key": api_key, "gemini_key_kind": kind.value})
            .eq("id", caller_id)
        )


class InMemoryAccountStore:
    """Thread-safe dict-backed account store."""

    def __init__(self, accounts: Optional[list[CallerAccount]] = None):
        self._lock = threading.Lock()
        self._accounts: dict[str, CallerAccount] = {}
        for account in accounts or []:
            self.add_account(account)

    def add_account(self, account: CallerAccount) -> None:
        with self._lock:
            self._accounts[account.id] = copy.deepcopy(account)

    def get_account(self, caller_id: str) -> Optional[CallerAccount]:
        with self._lock:
            account = self._accounts.get(caller_id)
            return copy.deepcopy(account) if account else None

    def reset_usage_period(
        self, caller_id: str, now: datetime, older_than: datetime
    ) -> Optional[CallerAccount]:
        with self._lock:
            account = self._accounts.get(caller_id)
            if account is None or account.primary.period_start > older_than:
                return None
            for usage in (account.primary, account.secondary):
                usage.token_usage_period = 0
                usage.period_start = now
            return copy.deepcopy(account)

    def increment_usage(self, caller_id: str, provider: Provider, tokens: int) -> None:
        with self._lock:
            account = self._accounts.get(caller_id)
            if account is None:
                return
            account.usage_for(provider).token_usage_period += tokens

    def set_secondary_key(self, caller_id: str, api_key: str, kind: KeyKind) -> None:
        with self._lock:
            account = self._accounts.get(caller_id)
            if account is None:
                return
            account.secondary.api_key = api_key
            account.secondary_key_kind = kind
