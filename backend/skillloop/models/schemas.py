"""Pydantic schemas for request/response validation."""

from typing import Literal

from pydantic import BaseModel, Field


# ============================================
# Generation Schemas
# ============================================


class GenerateRequest(BaseModel):
    """AI generation request from an internal caller."""

    caller_id: str = Field(min_length=1)
    prompt: str = Field(min_length=1)
    max_tokens: int = Field(default=2500, ge=1, le=16384)


class GenerateResponse(BaseModel):
    """Generated text and the provider that served it."""

    text: str
    provider: Literal["primary", "secondary"]
    model: str
    tokens: int


# ============================================
# Quota Schemas
# ============================================


class PrimaryQuotaResponse(BaseModel):
    """OpenAI usage for the current period."""

    used: int
    limit: int
    has_key: bool
    cost_estimate: float


class SecondaryQuotaResponse(BaseModel):
    """Gemini usage for the current period."""

    used: int
    limit: int
    has_key: bool
    key_type: Literal["dedicated", "shared", "none"]


class QuotaResponse(BaseModel):
    """Remaining quota per provider."""

    primary: PrimaryQuotaResponse
    secondary: SecondaryQuotaResponse
    available: bool


# ============================================
# Error Schemas
# ============================================


class ErrorResponse(BaseModel):
    """Error body returned for domain failures."""

    detail: str
    error: str
    provider: str | None = None


# ============================================
# Provisioning Schemas
# ============================================


class ProvisionResponse(BaseModel):
    """Gemini access recorded for a caller. The key itself is never returned."""

    caller_id: str
    key_type: Literal["dedicated", "shared", "none"]
