from functools import lru_cache
from supabase import create_client, Client
from .config import settings

# Clients are built on first use so the package imports without credentials

@lru_cache
def get_supabase() -> Client:
    """Public client for customer-scoped reads"""
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)

@lru_cache
def get_supabase_admin() -> Client:
    """Service client for kitchen and admin operations"""
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY)
