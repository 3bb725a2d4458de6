"""Provider adapters built on LiteLLM.

Each adapter is a thin, stateless wrapper around one upstream provider:
it takes a credential, model, prompt and token budget and returns the
completion text with a token count. Adapters never touch quota state.

Upstream errors propagate unchanged, except rate limits, which are
re-raised as ``RateLimitedError`` carrying the provider's retry hint so the
orchestrator can rotate keys.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

import litellm

from skillloop.utils.errors import RateLimitedError

from .config import Provider
from .retry import extract_retry_after, is_rate_limit_error
from .token_counter import count_tokens

logger = logging.getLogger(__name__)


@dataclass
class AdapterResult:
    """Normalized completion from a provider."""

    text: str
    tokens: int


class ProviderAdapter(Protocol):
    """Interface every provider adapter implements."""

    provider: Provider

    async def generate(
        self, credential: str, model: str, prompt: str, max_tokens: int
    ) -> AdapterResult: ...


class LiteLLMAdapter:
    """Adapter that calls one provider through ``litellm.acompletion``."""

    provider: Provider

    def __init__(
        self,
        timeout_seconds: int = 120,
        default_cooldown_seconds: int = 60,
        temperature: float = 0.7,
    ):
        self.timeout_seconds = timeout_seconds
        self.default_cooldown_seconds = default_cooldown_seconds
        self.temperature = temperature

    def _model_string(self, model: str) -> str:
        """LiteLLM model string with provider prefix (e.g. 'gemini/gemini-2.0-flash')."""
        prefix = f"{self.provider.vendor}/"
        return model if model.startswith(prefix) else f"{prefix}{model}"

    async def generate(
        self, credential: str, model: str, prompt: str, max_tokens: int
    ) -> AdapterResult:
        """Generate a completion.

        Args:
            credential: API key presented to the provider
            model: Provider model id
            prompt: User prompt
            max_tokens: Completion token budget

        Returns:
            AdapterResult with text and token count

        Raises:
            RateLimitedError: If the provider rate-limited this credential
            Exception: Any other provider error, unwrapped
        """
        try:
            response = await litellm.acompletion(
                model=self._model_string(model),
                messages=[{"role": "user", "content": prompt}],
                api_key=credential,
                max_tokens=max_tokens,
                temperature=self.temperature,
                timeout=self.timeout_seconds,
            )
        except Exception as e:
            if isinstance(e, litellm.RateLimitError) or is_rate_limit_error(e):
                raise RateLimitedError(
                    extract_retry_after(e, default=self.default_cooldown_seconds),
                    cause=e,
                ) from e
            raise

        text = response.choices[0].message.content or ""
        tokens = count_tokens(getattr(response, "usage", None), prompt, text)

        logger.info(
            f"[AI] Generated text | provider={self.provider.vendor} | "
            f"model={model} | tokens={tokens}"
        )
        return AdapterResult(text=text, tokens=tokens)


class OpenAIAdapter(LiteLLMAdapter):
    """Primary provider: OpenAI chat completions."""

    provider = Provider.PRIMARY


class GeminiAdapter(LiteLLMAdapter):
    """Secondary provider: Google Gemini (AI Studio keys)."""

    provider = Provider.SECONDARY
