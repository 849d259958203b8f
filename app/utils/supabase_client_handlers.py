from supabase import acreate_client, AsyncClient
from app.configs.app_settings import settings
from typing import Optional

# logics explain:
# 1. During app startup, the lifespan block runs create_marketplace_store(), which awaits create_supabase_client() for the supabase backend
# 2. Inside create_supabase_client(), _supabase_client is initially None, so the function creates the async client and assigns it to the global _supabase_client


_supabase_client: Optional[AsyncClient] = None


async def create_supabase_client() -> AsyncClient:
    """Create async supabase client - only called once during startup"""

    global _supabase_client
    if _supabase_client is None:
        if not settings.SUPABASE_URL or not settings.SUPABASE_KEY:
            raise RuntimeError("SUPABASE_URL and SUPABASE_KEY must be set when STORAGE_BACKEND is 'supabase'")
        _supabase_client = await acreate_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)
    return _supabase_client


async def close_supabase_client():
    """Clean up supabase client during shutdown"""
    global _supabase_client
    if _supabase_client:
        # Supabase client doesn't have explicit close method, but we reset the reference
        _supabase_client = None
