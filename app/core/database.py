"""
Supabase database client
"""
from functools import lru_cache
from supabase import Client, create_client
from app.core.config import get_settings


@lru_cache()
def get_supabase_client() -> Client:
    """Get Supabase client instance (cached) - used for token verification"""
    settings = get_settings()
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_PUBLISHABLE_KEY)


@lru_cache()
def get_supabase_admin_client() -> Client:
    """
    Get Supabase admin client with secret key (cached) - bypasses RLS.

    Extraction jobs are written from background tasks that outlive the
    request, so job and recipe repositories always use this client and
    enforce ownership themselves.
    """
    settings = get_settings()
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SECRET_KEY)
