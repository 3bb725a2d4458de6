"""Token counting for quota accounting.

Provider-reported usage is preferred. When a provider does not report
usage, tokens are estimated at 4 characters per token for both prompt and
completion. The estimate is for quota enforcement, not billing.
"""

import math
from typing import Any

CHARS_PER_TOKEN = 4


def estimate_tokens(prompt: str, completion: str) -> int:
    """Estimate tokens for a prompt/completion pair, rounded half up."""
    raw = len(prompt) / CHARS_PER_TOKEN + len(completion) / CHARS_PER_TOKEN
    return int(math.floor(raw + 0.5))


def count_tokens(usage: Any, prompt: str, completion: str) -> int:
    """Total tokens for a response.

    Args:
        usage: The response's usage object (may be None or partial)
        prompt: Prompt text sent
        completion: Completion text received

    Returns:
        Reported total tokens, or the character-based estimate
    """
    total = getattr(usage, "total_tokens", None) if usage is not None else None
    if isinstance(total, (int, float)) and total > 0:
        return int(total)
    return estimate_tokens(prompt, completion)
