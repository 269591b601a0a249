"""Supabase client factory for the profile and session log store."""

from __future__ import annotations

from functools import lru_cache

from supabase import Client, create_client

from meeting_broker.core.config import get_settings
from meeting_broker.utils.errors import ConfigurationError


@lru_cache
def get_service_client() -> Client:
    """Get cached Supabase service client."""
    settings = get_settings()
    if not settings.supabase_url or not settings.supabase_service_role_key:
        raise ConfigurationError(
            "Supabase is not configured",
            details=["SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY"],
        )
    return create_client(settings.supabase_url, settings.supabase_service_role_key)
