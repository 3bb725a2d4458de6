"""Custom exception classes."""

from fastapi import HTTPException, status


class SkillLoopError(Exception):
    """Base exception for SkillLoop errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class CallerNotFoundError(SkillLoopError):
    """The caller account does not exist."""

    def __init__(self, caller_id: str):
        super().__init__("User not found", {"caller_id": caller_id})
        self.caller_id = caller_id


class QuotaExceededError(SkillLoopError):
    """Monthly token ceiling reached for a provider."""

    def __init__(self, provider: str):
        super().__init__(
            "Monthly AI usage limit reached. Upgrade your plan for a higher "
            "limit, or wait for your usage to reset next month.",
            {"provider": provider},
        )
        self.provider = provider


class CapacityExceededError(SkillLoopError):
    """Every pooled key is rate-limited."""

    def __init__(self, details: dict | None = None):
        super().__init__(
            "AI service is temporarily at capacity. "
            "Please try again in a few minutes.",
            details,
        )


class UpstreamError(SkillLoopError):
    """Non-retryable failure reported by an LLM provider."""

    def __init__(self, cause: Exception, provider: str | None = None):
        super().__init__(
            "AI generation failed. Please try again.",
            {"provider": provider, "error_type": type(cause).__name__},
        )
        self.cause = cause
        self.provider = provider


class ProviderConfigurationError(SkillLoopError):
    """No credential could be resolved for a provider."""

    pass


class RateLimitedError(SkillLoopError):
    """Raised by provider adapters when the upstream answered with a 429."""

    def __init__(self, retry_after_seconds: int, cause: Exception | None = None):
        super().__init__(
            f"Rate limited, retry after {retry_after_seconds}s",
            {"retry_after_seconds": retry_after_seconds},
        )
        self.retry_after_seconds = retry_after_seconds
        self.cause = cause


def http_error(
    status_code: int,
    message: str,
    headers: dict | None = None,
) -> HTTPException:
    """Create an HTTPException with the given parameters."""
    return HTTPException(
        status_code=status_code,
        detail=message,
        headers=headers,
    )


def bad_request(message: str) -> HTTPException:
    """Create a 400 Bad Request exception."""
    return http_error(status.HTTP_400_BAD_REQUEST, message)


def status_for(error: SkillLoopError) -> int:
    """Map a domain error onto the HTTP status the API reports it with."""
    if isinstance(error, CallerNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, QuotaExceededError):
        return status.HTTP_429_TOO_MANY_REQUESTS
    if isinstance(error, CapacityExceededError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(error, UpstreamError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR
