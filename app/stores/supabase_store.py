from supabase import AsyncClient, PostgrestAPIError
from app.stores.base_store import MarketplaceStore, Record
from app.custom_error import DuplicateBidError
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, List, Optional

UNIQUE_VIOLATION = "23505"


def _to_json_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


def _serialize(record: Record) -> Record:
    """PostgREST only takes JSON, so timestamps/decimals/enums go over as strings"""
    return {key: _to_json_value(value) for key, value in record.items()}


class SupabaseMarketplaceStore(MarketplaceStore):
    """Store backed by the Supabase tables and SQL functions in supabase/migrations.

    Conditional updates are plain PostgREST updates filtered on ``status``: Postgres
    applies the filter and the write in one statement, so the row only changes if it
    still has the expected status. The multi-row writes go through ``rpc`` so they
    run inside one database transaction.
    """

    def __init__(self, supabase_client: AsyncClient):
        self.supabase_client = supabase_client

    # =====================================================================================================
    # PROJECTS
    # =====================================================================================================

    async def get_project(self, project_id: str) -> Optional[Record]:
        result = await self.supabase_client.table("projects").select("*").eq("id", project_id).execute()
        return result.data[0] if result.data else None

    async def list_projects(
        self,
        owner_id: Optional[str] = None,
        statuses: Optional[Iterable[str]] = None,
        category: Optional[str] = None,
        location: Optional[str] = None,
        min_budget: Optional[Decimal] = None,
        max_budget: Optional[Decimal] = None,
        search: Optional[str] = None,
        project_ids: Optional[Iterable[str]] = None,
        sort_by: str = "created_at",
        descending: bool = True,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Record]:
        query = self.supabase_client.table("projects").select("*")

        if owner_id is not None:
            query = query.eq("owner_id", owner_id)
        if statuses is not None:
            query = query.in_("status", list(statuses))
        if project_ids is not None:
            query = query.in_("id", list(project_ids))
        if category is not None:
            query = query.eq("category", category)
        if location is not None:
            query = query.ilike("location", f"%{location}%")
        if min_budget is not None:
            query = query.gte("budget_max", str(min_budget))
        if max_budget is not None:
            query = query.lte("budget_min", str(max_budget))
        if search is not None:
            # commas and parentheses are separators in a PostgREST or-filter
            term = search.translate(str.maketrans(",()", "   "))
            query = query.or_(f"title.ilike.%{term}%,description.ilike.%{term}%")

        query = query.order(sort_by, desc=descending)
        if limit is not None:
            query = query.range(offset, offset + limit - 1)

        result = await query.execute()
        return result.data or []

    async def list_projects_due_for_sweep(self, now: datetime, award_window: timedelta) -> List[Record]:
        active_result = (
            await self.supabase_client.table("projects").select("*").eq("status", "active").lte("bidding_deadline", now.isoformat()).execute()
        )
        closed_result = (
            await self.supabase_client.table("projects")
            .select("*")
            .eq("status", "bidding_closed")
            .lte("bidding_deadline", (now - award_window).isoformat())
            .execute()
        )
        return (active_result.data or []) + (closed_result.data or [])

    async def insert_project(self, record: Record) -> Record:
        result = await self.supabase_client.table("projects").insert(_serialize(record)).execute()
        return result.data[0] if result.data else None

    async def update_project(self, project_id: str, changes: Record, expected_statuses: Optional[Iterable[str]] = None) -> Optional[Record]:
        query = self.supabase_client.table("projects").update(_serialize(changes)).eq("id", project_id)
        if expected_statuses is not None:
            query = query.in_("status", list(expected_statuses))

        result = await query.execute()
        return result.data[0] if result.data else None

    async def delete_project(self, project_id: str, expected_statuses: Optional[Iterable[str]] = None) -> bool:
        query = self.supabase_client.table("projects").delete().eq("id", project_id)
        if expected_statuses is not None:
            query = query.in_("status", list(expected_statuses))

        result = await query.execute()
        return bool(result.data)

    # =====================================================================================================
    # BIDS
    # =====================================================================================================

    async def get_bid(self, bid_id: str) -> Optional[Record]:
        result = await self.supabase_client.table("bids").select("*").eq("id", bid_id).execute()
        return result.data[0] if result.data else None

    async def list_bids(
        self,
        project_id: str,
        statuses: Optional[Iterable[str]] = None,
        contractor_id: Optional[str] = None,
        sort_by: str = "created_at",
        descending: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Record]:
        query = self.supabase_client.table("bids").select("*").eq("project_id", project_id)

        if statuses is not None:
            query = query.in_("status", list(statuses))
        if contractor_id is not None:
            query = query.eq("contractor_id", contractor_id)

        query = query.order(sort_by, desc=descending)
        if limit is not None:
            query = query.range(offset, offset + limit - 1)

        result = await query.execute()
        return result.data or []

    async def list_contractor_bids(self, contractor_id: str, statuses: Optional[Iterable[str]] = None) -> List[Record]:
        query = self.supabase_client.table("bids").select("*").eq("contractor_id", contractor_id)
        if statuses is not None:
            query = query.in_("status", list(statuses))

        result = await query.execute()
        return result.data or []

    async def insert_bid(self, record: Record) -> Record:
        # the partial unique index on (project_id, contractor_id) for live bids backs up the duplicate check
        try:
            result = await self.supabase_client.table("bids").insert(_serialize(record)).execute()
        except PostgrestAPIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DuplicateBidError()
            raise
        return result.data[0] if result.data else None

    async def update_bid(self, bid_id: str, changes: Record, expected_statuses: Optional[Iterable[str]] = None) -> Optional[Record]:
        query = self.supabase_client.table("bids").update(_serialize(changes)).eq("id", bid_id)
        if expected_statuses is not None:
            query = query.in_("status", list(expected_statuses))

        result = await query.execute()
        return result.data[0] if result.data else None

    # =====================================================================================================
    # ATOMIC MULTI-ROW WRITES
    # =====================================================================================================

    async def award_bid(self, project_id: str, bid_id: str, updated_at: datetime) -> Optional[Record]:
        result = await self.supabase_client.rpc(
            "award_bid",
            {"p_project_id": project_id, "p_bid_id": bid_id, "p_updated_at": updated_at.isoformat()},
        ).execute()
        return result.data or None

    async def retire_project(
        self, project_id: str, target_status: str, reason: str, from_statuses: Iterable[str], updated_at: datetime
    ) -> Optional[Record]:
        result = await self.supabase_client.rpc(
            "retire_project",
            {
                "p_project_id": project_id,
                "p_target_status": target_status,
                "p_reason": reason,
                "p_from_statuses": list(from_statuses),
                "p_updated_at": updated_at.isoformat(),
            },
        ).execute()
        return result.data or None

    # =====================================================================================================
    # USERS
    # =====================================================================================================

    async def get_user_by_clerk_id(self, clerk_user_id: str) -> Optional[Record]:
        result = await self.supabase_client.table("users").select("*").eq("clerk_user_id", clerk_user_id).execute()
        return result.data[0] if result.data else None

    async def insert_user(self, record: Record) -> Record:
        result = await self.supabase_client.table("users").insert(_serialize(record)).execute()
        return result.data[0] if result.data else None

    async def update_user_by_clerk_id(self, clerk_user_id: str, changes: Record) -> Optional[Record]:
        result = await self.supabase_client.table("users").update(_serialize(changes)).eq("clerk_user_id", clerk_user_id).execute()
        return result.data[0] if result.data else None

    async def delete_user_by_clerk_id(self, clerk_user_id: str) -> bool:
        result = await self.supabase_client.table("users").delete().eq("clerk_user_id", clerk_user_id).execute()
        return bool(result.data)
