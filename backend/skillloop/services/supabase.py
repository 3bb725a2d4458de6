"""Supabase client wrapper."""

import logging

from supabase import Client, create_client
from supabase.lib.client_options import SyncClientOptions

from skillloop.config import get_settings

logger = logging.getLogger(__name__)

# Store client instance for potential refresh
_supabase_client: Client | None = None


def _create_supabase_client() -> Client:
    """Create a new Supabase client with custom timeout settings."""
    settings = get_settings()
    if not settings.has_supabase:
        raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")
    options = SyncClientOptions(postgrest_client_timeout=30)
    return create_client(
        settings.supabase_url,
        settings.supabase_service_key,
        options=options,
    )


def get_supabase_client() -> Client:
    """Get Supabase client instance, creating new one if needed."""
    global _supabase_client
    if _supabase_client is None:
        _supabase_client = _create_supabase_client()
    return _supabase_client


def refresh_supabase_client() -> Client:
    """Force refresh the Supabase client connection."""
    global _supabase_client
    _supabase_client = _create_supabase_client()
    logger.info("Supabase client connection refreshed")
    return _supabase_client
