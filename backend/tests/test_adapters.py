"""Tests for LiteLLM provider adapters and rate limit classification.

LiteLLM is patched out, so no request leaves the process.
"""

import json
from types import SimpleNamespace

import litellm
import pytest

from skillloop.llm.adapters import GeminiAdapter, OpenAIAdapter
from skillloop.llm.retry import extract_retry_after, is_rate_limit_error
from skillloop.llm.token_counter import count_tokens, estimate_tokens
from skillloop.utils.errors import RateLimitedError


class FakeProviderError(Exception):
    """Provider error shaped like the ones LiteLLM surfaces."""

    def __init__(self, message, status_code=None, headers=None, body=None):
        super().__init__(message)
        self.status_code = status_code
        self.response = SimpleNamespace(
            headers=headers or {},
            text=json.dumps(body) if body is not None else "",
        )


def fake_response(content="Hello there", total_tokens=None):
    usage = SimpleNamespace(total_tokens=total_tokens) if total_tokens is not None else None
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=usage,
    )


@pytest.fixture
def completion_calls(monkeypatch):
    """Patch litellm.acompletion and record its kwargs."""
    calls = []
    state = {"response": fake_response(total_tokens=17), "error": None}

    async def fake_acompletion(**kwargs):
        calls.append(kwargs)
        if state["error"] is not None:
            raise state["error"]
        return state["response"]

    monkeypatch.setattr(litellm, "acompletion", fake_acompletion)
    return SimpleNamespace(calls=calls, state=state)


class TestAdapters:
    """Adapter request shaping and response normalization."""

    @pytest.mark.asyncio
    async def test_openai_request(self, completion_calls):
        result = await OpenAIAdapter(timeout_seconds=30).generate(
            "sk-test", "gpt-4o-mini", "Write a haiku", 256
        )

        assert result.text == "Hello there"
        assert result.tokens == 17
        call = completion_calls.calls[0]
        assert call["model"] == "openai/gpt-4o-mini"
        assert call["api_key"] == "sk-test"
        assert call["max_tokens"] == 256
        assert call["timeout"] == 30
        assert call["messages"] == [{"role": "user", "content": "Write a haiku"}]

    @pytest.mark.asyncio
    async def test_gemini_model_prefix(self, completion_calls):
        adapter = GeminiAdapter()
        await adapter.generate("AIza-key", "gemini-2.0-flash", "Hi", 100)
        await adapter.generate("AIza-key", "gemini/gemini-1.5-pro", "Hi", 100)

        assert completion_calls.calls[0]["model"] == "gemini/gemini-2.0-flash"
        assert completion_calls.calls[1]["model"] == "gemini/gemini-1.5-pro"
        assert completion_calls.calls[0]["max_tokens"] == 100

    @pytest.mark.asyncio
    async def test_missing_usage_is_estimated(self, completion_calls):
        completion_calls.state["response"] = fake_response(content="x" * 40)

        result = await GeminiAdapter().generate("AIza-key", "gemini-2.0-flash", "p" * 20, 100)

        assert result.tokens == 15

    @pytest.mark.asyncio
    async def test_rate_limit_becomes_rate_limited_error(self, completion_calls):
        completion_calls.state["error"] = FakeProviderError(
            "429 Too Many Requests", status_code=429, headers={"retry-after": "12"}
        )

        with pytest.raises(RateLimitedError) as exc_info:
            await GeminiAdapter().generate("AIza-key", "gemini-2.0-flash", "Hi", 100)

        assert exc_info.value.retry_after_seconds == 12
        assert isinstance(exc_info.value.cause, FakeProviderError)

    @pytest.mark.asyncio
    async def test_rate_limit_without_hint_uses_default(self, completion_calls):
        completion_calls.state["error"] = FakeProviderError("RESOURCE_EXHAUSTED")

        with pytest.raises(RateLimitedError) as exc_info:
            await GeminiAdapter(default_cooldown_seconds=45).generate(
                "AIza-key", "gemini-2.0-flash", "Hi", 100
            )

        assert exc_info.value.retry_after_seconds == 45

    @pytest.mark.asyncio
    async def test_other_errors_propagate_unchanged(self, completion_calls):
        completion_calls.state["error"] = ValueError("invalid model")

        with pytest.raises(ValueError, match="invalid model"):
            await OpenAIAdapter().generate("sk-test", "gpt-4o-mini", "Hi", 100)

    @pytest.mark.asyncio
    async def test_bad_request_mentioning_429_is_not_rate_limited(self, completion_calls):
        completion_calls.state["error"] = FakeProviderError(
            "This model's maximum context length is 4290 tokens", status_code=400
        )

        with pytest.raises(FakeProviderError, match="4290"):
            await GeminiAdapter().generate("AIza-key", "gemini-2.0-flash", "Hi", 100)


class TestRateLimitClassification:
    def test_status_code(self):
        assert is_rate_limit_error(FakeProviderError("slow down", status_code=429))

    def test_message_indicators(self):
        assert is_rate_limit_error(Exception("Rate limit exceeded for key"))
        assert is_rate_limit_error(Exception("RESOURCE_EXHAUSTED: quota"))
        assert not is_rate_limit_error(Exception("invalid api key"))

    def test_status_code_overrides_message(self):
        assert not is_rate_limit_error(
            FakeProviderError("maximum context length is 4290 tokens", status_code=400)
        )
        assert not is_rate_limit_error(FakeProviderError("rate limit", status_code=500))

    def test_retry_after_header(self):
        error = FakeProviderError("429", headers={"Retry-After": "7"})
        assert extract_retry_after(error) == 7

    def test_retry_info_in_body(self):
        body = {
            "error": {
                "code": 429,
                "status": "RESOURCE_EXHAUSTED",
                "details": [
                    {
                        "@type": "type.googleapis.com/google.rpc.RetryInfo",
                        "retryDelay": "37s",
                    }
                ],
            }
        }
        assert extract_retry_after(FakeProviderError("429", body=body)) == 37

    def test_retry_delay_in_message(self):
        error = Exception('GeminiException - {"retryDelay": "22s"}')
        assert extract_retry_after(error) == 22

    def test_default_when_no_hint(self):
        assert extract_retry_after(Exception("429"), default=60) == 60


class TestTokenCounting:
    def test_reported_usage_preferred(self):
        assert count_tokens(SimpleNamespace(total_tokens=321), "a" * 400, "b" * 400) == 321

    def test_zero_usage_falls_back_to_estimate(self):
        assert count_tokens(SimpleNamespace(total_tokens=0), "a" * 8, "b" * 8) == 4

    def test_estimate_rounds_half_up(self):
        assert estimate_tokens("abcdef", "") == 2
        assert estimate_tokens("abcde", "") == 1
        assert estimate_tokens("", "") == 0
