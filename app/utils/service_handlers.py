from app.configs.app_settings import settings
from app.stores.base_store import MarketplaceStore
from app.stores.memory_store import MemoryMarketplaceStore
from app.stores.supabase_store import SupabaseMarketplaceStore
from app.utils.supabase_client_handlers import create_supabase_client, close_supabase_client
from app.utils.clock import Clock, SystemClock
from app.utils.project_locks import ProjectLockRegistry
from app.services.event_sink_services import EventSink, build_event_sink
from typing import Optional

# Process-wide collaborators handed to the services through FastAPI dependencies.
# The services themselves never import these; they receive them at construction,
# and tests swap them with app.dependency_overrides.

_store: Optional[MarketplaceStore] = None
_clock: Clock = SystemClock()
_project_locks = ProjectLockRegistry()
_event_sink: Optional[EventSink] = None


async def create_marketplace_store() -> MarketplaceStore:
    """Create the configured store - only called once during startup"""
    global _store
    if _store is None:
        if settings.STORAGE_BACKEND == "memory":
            _store = MemoryMarketplaceStore()
        else:
            _store = SupabaseMarketplaceStore(await create_supabase_client())
    return _store


async def get_marketplace_store() -> MarketplaceStore:
    """Dependency function to get the store"""
    if _store is None:
        raise RuntimeError("Store not initialized. Call create_marketplace_store() during startup.")
    return _store


async def close_marketplace_store():
    global _store
    if _store is not None:
        await _store.close()
        _store = None
    await close_supabase_client()


def get_clock() -> Clock:
    return _clock


def get_project_locks() -> ProjectLockRegistry:
    return _project_locks


def get_event_sink() -> EventSink:
    global _event_sink
    if _event_sink is None:
        _event_sink = build_event_sink(settings)
    return _event_sink
