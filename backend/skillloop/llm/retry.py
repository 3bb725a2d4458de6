"""Error classification and retry helpers for LLM and store calls.

Rate limits are not retried here: the orchestrator handles them by rotating
keys. This module only decides *whether* an error is a rate limit, how long
the provider asked us to back off, and provides the tenacity policy used
for transient transport failures against the account store.
"""

import asyncio
import json
import logging
import re
from typing import Any, Optional

import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

logger = logging.getLogger(__name__)


# Transport failures that are safe to retry against the account store
RETRYABLE_EXCEPTIONS = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
    httpx.TransportError,
)

RATE_LIMIT_INDICATORS = (
    "rate limit",
    "rate_limit",
    "ratelimit",
    "too many requests",
    "resource_exhausted",
    "429",
)

_RETRY_DELAY_PATTERN = re.compile(r'"?retryDelay"?\s*[:=]\s*"?(\d+(?:\.\d+)?)s?"?')


def transient_retry(max_attempts: int = 3, initial_delay: float = 0.5) -> Retrying:
    """Build the tenacity policy for transient store failures."""
    return Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential_jitter(initial=initial_delay, max=5.0),
        retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def is_rate_limit_error(exception: Exception) -> bool:
    """Check if an exception is a rate limit error.

    Args:
        exception: Exception to check

    Returns:
        True if this is a rate limit error
    """
    for attr in ("status_code", "status"):
        code = getattr(exception, attr, None)
        if isinstance(code, int):
            return code == 429

    # No HTTP status attached, fall back to the message
    error_str = str(exception).lower()
    return any(indicator in error_str for indicator in RATE_LIMIT_INDICATORS)


def _retry_after_header(exception: Exception) -> Optional[float]:
    response: Any = getattr(exception, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    value = headers.get("retry-after") or headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _retry_delay_from_details(exception: Exception) -> Optional[float]:
    # Gemini reports google.rpc.RetryInfo in the error body: "retryDelay": "37s"
    details = getattr(exception, "error_details", None) or getattr(
        exception, "errorDetails", None
    )
    if not details:
        error = parse_error_body(exception).get("error")
        details = error.get("details") if isinstance(error, dict) else None
    if details:
        for detail in details:
            if not isinstance(detail, dict):
                continue
            if "RetryInfo" in str(detail.get("@type", "")) and detail.get("retryDelay"):
                match = re.search(r"(\d+(?:\.\d+)?)", str(detail["retryDelay"]))
                if match:
                    return float(match.group(1))

    match = _RETRY_DELAY_PATTERN.search(str(exception))
    if match:
        return float(match.group(1))
    return None


def extract_retry_after(exception: Exception, default: int = 60) -> int:
    """Extract the provider's requested back-off from a rate limit error.

    Args:
        exception: Rate limit exception
        default: Seconds to use when the provider gave no hint

    Returns:
        Whole seconds to cool the credential down for
    """
    for candidate in (_retry_after_header(exception), _retry_delay_from_details(exception)):
        if candidate is not None and candidate > 0:
            return int(round(candidate))
    return default


def parse_error_body(exception: Exception) -> dict:
    """Best-effort decode of a JSON error body attached to a provider error."""
    response: Any = getattr(exception, "response", None)
    text = getattr(response, "text", None)
    if not text:
        return {}
    try:
        body = json.loads(text)
    except (TypeError, ValueError):
        return {}
    return body if isinstance(body, dict) else {}
