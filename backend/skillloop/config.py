"""Application configuration using pydantic-settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Environment
    environment: str = "development"
    log_level: str = "INFO"

    # Supabase (optional: without it the in-memory account store is used)
    supabase_url: str | None = None
    supabase_service_key: str | None = None

    # Server-funded OpenAI key, only used for callers on the pro tier
    openai_api_key: str | None = None

    # Gemini key pool: GEMINI_API_KEYS=key1,key2 (falls back to GEMINI_API_KEY)
    gemini_api_keys: str | None = None
    gemini_api_key: str | None = None

    # Legacy shared-key identifiers
    gemini_provisioning_secret: str = "skillloop-gemini-secret"
    pooled_key_prefix: str = "gemini_user_"

    # Models
    default_primary_model: str = "gpt-4o-mini"
    default_secondary_model: str = "gemini-2.0-flash"

    # Pool rotation
    pool_default_cooldown_seconds: int = 60
    pool_max_backoff_seconds: float = 10.0

    # LLM requests
    llm_timeout_seconds: int = 120

    # HTTP
    generate_rate_limit: str = "30/minute"
    cors_origins: str = "http://localhost:3000"

    @property
    def gemini_pool_keys(self) -> list[str]:
        """Parse the Gemini pool from the comma-separated list or the single key."""
        keys: list[str] = []
        if self.gemini_api_keys:
            for key in self.gemini_api_keys.split(","):
                key = key.strip()
                if key and key not in keys:
                    keys.append(key)
        if not keys and self.gemini_api_key and self.gemini_api_key.strip():
            keys.append(self.gemini_api_key.strip())
        return keys

    @property
    def has_supabase(self) -> bool:
        """Check if the Supabase account store is configured."""
        return bool(self.supabase_url and self.supabase_service_key)

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
