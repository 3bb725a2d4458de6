"""Outcome values returned by a single generation attempt.

The orchestrator branches on these instead of on exceptions, so every
fallback decision is an explicit case.
"""

from dataclasses import dataclass
from typing import Union

from skillloop.utils.errors import RateLimitedError

from .adapters import AdapterResult, ProviderAdapter


@dataclass(frozen=True)
class AttemptSucceeded:
    result: AdapterResult


@dataclass(frozen=True)
class AttemptRateLimited:
    retry_after_seconds: int
    error: RateLimitedError


@dataclass(frozen=True)
class AttemptFailed:
    error: Exception


AttemptOutcome = Union[AttemptSucceeded, AttemptRateLimited, AttemptFailed]


async def attempt(
    adapter: ProviderAdapter,
    credential: str,
    model: str,
    prompt: str,
    max_tokens: int,
) -> AttemptOutcome:
    """Run one adapter call and classify how it ended."""
    try:
        result = await adapter.generate(credential, model, prompt, max_tokens)
    except RateLimitedError as e:
        return AttemptRateLimited(retry_after_seconds=e.retry_after_seconds, error=e)
    except Exception as e:
        return AttemptFailed(error=e)
    return AttemptSucceeded(result=result)
