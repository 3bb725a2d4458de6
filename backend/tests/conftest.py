"""Shared fixtures for the AI routing tests.

Provider adapters are replaced by scripted fakes and time is driven by a
manual clock, so no test calls an LLM or actually sleeps.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import pytest

from skillloop.llm.adapters import AdapterResult
from skillloop.llm.config import EntitlementTier, KeyKind, Provider, RoutingConfig
from skillloop.llm.key_pool import KeyPool
from skillloop.models.account import CallerAccount, ProviderUsage
from skillloop.services.accounts import InMemoryAccountStore
from skillloop.services.generation import GenerationOrchestrator


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class AdapterCall:
    credential: str
    model: str
    prompt: str
    max_tokens: int


class FakeAdapter:
    """Scripted provider adapter.

    ``behaviour`` is called with the credential before answering; it may
    raise to simulate an upstream failure for that credential.
    """

    def __init__(
        self,
        provider: Provider,
        behaviour: Optional[Callable[[str], None]] = None,
        text: str = "generated text",
        tokens: int = 42,
    ):
        self.provider = provider
        self.behaviour = behaviour
        self.text = text
        self.tokens = tokens
        self.calls: list[AdapterCall] = []

    async def generate(
        self, credential: str, model: str, prompt: str, max_tokens: int
    ) -> AdapterResult:
        self.calls.append(AdapterCall(credential, model, prompt, max_tokens))
        if self.behaviour is not None:
            self.behaviour(credential)
        return AdapterResult(text=self.text, tokens=self.tokens)

    @property
    def credentials(self) -> list[str]:
        return [call.credential for call in self.calls]


def make_account(
    caller_id: str = "user-1",
    *,
    primary_key: Optional[str] = None,
    primary_model: str = "gpt-4o-mini",
    primary_limit: int = 100_000,
    primary_used: int = 0,
    secondary_key: Optional[str] = None,
    secondary_kind: KeyKind = KeyKind.POOLED,
    secondary_model: str = "gemini-2.0-flash",
    secondary_limit: int = 7_000,
    secondary_used: int = 0,
    period_start: Optional[datetime] = None,
    tier: EntitlementTier = EntitlementTier.FREE,
    status: str = "inactive",
    subscription_end: Optional[datetime] = None,
) -> CallerAccount:
    """Build a caller account with sensible defaults."""
    start = period_start or datetime.now(timezone.utc) - timedelta(days=1)
    return CallerAccount(
        id=caller_id,
        primary=ProviderUsage(
            api_key=primary_key,
            model=primary_model,
            monthly_token_limit=primary_limit,
            token_usage_period=primary_used,
            period_start=start,
        ),
        secondary=ProviderUsage(
            api_key=secondary_key,
            model=secondary_model,
            monthly_token_limit=secondary_limit,
            token_usage_period=secondary_used,
            period_start=start,
        ),
        secondary_key_kind=secondary_kind,
        subscription_tier=tier,
        subscription_status=status,
        subscription_end=subscription_end,
    )


@dataclass
class Harness:
    orchestrator: GenerationOrchestrator
    store: InMemoryAccountStore
    pool: KeyPool
    clock: FakeClock
    primary: FakeAdapter
    secondary: FakeAdapter
    sleeps: list[float] = field(default_factory=list)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryAccountStore:
    return InMemoryAccountStore()


@pytest.fixture
def build_harness(store, clock):
    """Factory for an orchestrator wired to fakes."""

    def _build(
        pool_keys: tuple[str, ...] = ("pool-key-aaaaaa", "pool-key-bbbbbb"),
        server_key: Optional[str] = None,
        primary: Optional[FakeAdapter] = None,
        secondary: Optional[FakeAdapter] = None,
        max_backoff: float = 10.0,
    ) -> Harness:
        pool = KeyPool(list(pool_keys), clock=clock)
        primary = primary or FakeAdapter(Provider.PRIMARY, text="openai text", tokens=100)
        secondary = secondary or FakeAdapter(Provider.SECONDARY, text="gemini text", tokens=40)
        sleeps: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            sleeps.append(seconds)
            clock.advance(seconds)

        orchestrator = GenerationOrchestrator(
            config=RoutingConfig(
                server_primary_key=server_key,
                max_backoff_seconds=max_backoff,
            ),
            store=store,
            pool=pool,
            adapters={Provider.PRIMARY: primary, Provider.SECONDARY: secondary},
            sleep=fake_sleep,
        )
        return Harness(
            orchestrator=orchestrator,
            store=store,
            pool=pool,
            clock=clock,
            primary=primary,
            secondary=secondary,
            sleeps=sleeps,
        )

    return _build
