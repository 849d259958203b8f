from app.stores.base_store import MarketplaceStore, Record
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
import asyncio
import copy
import uuid

# status literals as stored in the rows
_PENDING = "pending"
_ACCEPTED = "accepted"
_REJECTED = "rejected"
_ACTIVE = "active"
_BIDDING_CLOSED = "bidding_closed"
_AWARDED = "awarded"


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _sorted_page(records: List[Record], sort_by: str, descending: bool, offset: int, limit: Optional[int]) -> List[Record]:
    """Order by ``sort_by`` with rows missing the field last, then slice out one page"""
    present = [record for record in records if record.get(sort_by) is not None]
    missing = [record for record in records if record.get(sort_by) is None]
    ordered = sorted(present, key=lambda record: record[sort_by], reverse=descending) + missing
    end = offset + limit if limit is not None else None
    return ordered[offset:end]


class MemoryMarketplaceStore(MarketplaceStore):
    """In-process store for local runs and tests.

    Every call yields to the event loop once before touching the tables, the way a
    network round-trip would, so concurrent callers really do interleave. Past that
    point a call runs without awaiting, which makes each one atomic.
    """

    def __init__(self, latency: float = 0):
        self._latency = latency
        self.projects: Dict[str, Record] = {}
        self.bids: Dict[str, Record] = {}
        self.users: Dict[str, Record] = {}

    async def _round_trip(self) -> None:
        await asyncio.sleep(self._latency)

    @staticmethod
    def _matches(record: Record, expected_statuses: Optional[Iterable[str]]) -> bool:
        return expected_statuses is None or record["status"] in set(expected_statuses)

    # =====================================================================================================
    # PROJECTS
    # =====================================================================================================

    async def get_project(self, project_id: str) -> Optional[Record]:
        await self._round_trip()
        project = self.projects.get(project_id)
        return copy.deepcopy(project) if project else None

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
        await self._round_trip()
        status_set = set(statuses) if statuses is not None else None
        id_set = set(project_ids) if project_ids is not None else None
        found = []
        for project in self.projects.values():
            if owner_id is not None and project["owner_id"] != owner_id:
                continue
            if status_set is not None and project["status"] not in status_set:
                continue
            if id_set is not None and project["id"] not in id_set:
                continue
            if category is not None and project.get("category") != category:
                continue
            if location is not None and location.lower() not in (project.get("location") or "").lower():
                continue
            if min_budget is not None and (project.get("budget_max") is None or project["budget_max"] < min_budget):
                continue
            if max_budget is not None and (project.get("budget_min") is None or project["budget_min"] > max_budget):
                continue
            if search is not None:
                text = f"{project.get('title') or ''} {project.get('description') or ''}".lower()
                if search.lower() not in text:
                    continue
            found.append(copy.deepcopy(project))
        return _sorted_page(found, sort_by, descending, offset, limit)

    async def list_projects_due_for_sweep(self, now: datetime, award_window: timedelta) -> List[Record]:
        await self._round_trip()
        due = []
        for project in self.projects.values():
            deadline = _utc(project.get("bidding_deadline"))
            if deadline is None:
                continue
            if project["status"] == _ACTIVE and deadline <= now:
                due.append(copy.deepcopy(project))
            elif project["status"] == _BIDDING_CLOSED and deadline + award_window <= now:
                due.append(copy.deepcopy(project))
        return due

    async def insert_project(self, record: Record) -> Record:
        await self._round_trip()
        project = copy.deepcopy(record)
        project.setdefault("id", str(uuid.uuid4()))
        self.projects[project["id"]] = project
        return copy.deepcopy(project)

    async def update_project(self, project_id: str, changes: Record, expected_statuses: Optional[Iterable[str]] = None) -> Optional[Record]:
        await self._round_trip()
        project = self.projects.get(project_id)
        if project is None or not self._matches(project, expected_statuses):
            return None
        project.update(copy.deepcopy(changes))
        return copy.deepcopy(project)

    async def delete_project(self, project_id: str, expected_statuses: Optional[Iterable[str]] = None) -> bool:
        await self._round_trip()
        project = self.projects.get(project_id)
        if project is None or not self._matches(project, expected_statuses):
            return False
        del self.projects[project_id]
        return True

    # =====================================================================================================
    # BIDS
    # =====================================================================================================

    async def get_bid(self, bid_id: str) -> Optional[Record]:
        await self._round_trip()
        bid = self.bids.get(bid_id)
        return copy.deepcopy(bid) if bid else None

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
        await self._round_trip()
        status_set = set(statuses) if statuses is not None else None
        found = [
            copy.deepcopy(bid)
            for bid in self.bids.values()
            if bid["project_id"] == project_id
            and (status_set is None or bid["status"] in status_set)
            and (contractor_id is None or bid["contractor_id"] == contractor_id)
        ]
        return _sorted_page(found, sort_by, descending, offset, limit)

    async def list_contractor_bids(self, contractor_id: str, statuses: Optional[Iterable[str]] = None) -> List[Record]:
        await self._round_trip()
        status_set = set(statuses) if statuses is not None else None
        return [
            copy.deepcopy(bid)
            for bid in self.bids.values()
            if bid["contractor_id"] == contractor_id and (status_set is None or bid["status"] in status_set)
        ]

    async def insert_bid(self, record: Record) -> Record:
        await self._round_trip()
        bid = copy.deepcopy(record)
        bid.setdefault("id", str(uuid.uuid4()))
        self.bids[bid["id"]] = bid
        return copy.deepcopy(bid)

    async def update_bid(self, bid_id: str, changes: Record, expected_statuses: Optional[Iterable[str]] = None) -> Optional[Record]:
        await self._round_trip()
        bid = self.bids.get(bid_id)
        if bid is None or not self._matches(bid, expected_statuses):
            return None
        bid.update(copy.deepcopy(changes))
        return copy.deepcopy(bid)

    # =====================================================================================================
    # ATOMIC MULTI-ROW WRITES
    # =====================================================================================================

    async def award_bid(self, project_id: str, bid_id: str, updated_at: datetime) -> Optional[Record]:
        await self._round_trip()
        project = self.projects.get(project_id)
        target = self.bids.get(bid_id)
        if project is None or target is None or project["status"] != _BIDDING_CLOSED:
            return None
        if target["project_id"] != project_id or target["status"] != _PENDING:
            return None

        project_bids = [bid for bid in self.bids.values() if bid["project_id"] == project_id]
        if any(bid["status"] == _ACCEPTED for bid in project_bids):
            return None

        rejected = []
        for bid in project_bids:
            if bid["id"] == bid_id:
                bid.update({"status": _ACCEPTED, "updated_at": updated_at})
            elif bid["status"] == _PENDING:
                bid.update({"status": _REJECTED, "rejection_reason": "Another bid was accepted", "updated_at": updated_at})
                rejected.append(copy.deepcopy(bid))
        project.update({"status": _AWARDED, "awarded_bid_id": bid_id, "updated_at": updated_at})

        return {"project": copy.deepcopy(project), "bid": copy.deepcopy(target), "rejected_bids": rejected}

    async def retire_project(
        self, project_id: str, target_status: str, reason: str, from_statuses: Iterable[str], updated_at: datetime
    ) -> Optional[Record]:
        await self._round_trip()
        project = self.projects.get(project_id)
        if project is None or not self._matches(project, from_statuses):
            return None

        rejected = []
        for bid in self.bids.values():
            if bid["project_id"] == project_id and bid["status"] in (_PENDING, _ACCEPTED):
                bid.update({"status": _REJECTED, "rejection_reason": reason, "updated_at": updated_at})
                rejected.append(copy.deepcopy(bid))
        project.update({"status": target_status, "cancellation_reason": reason, "awarded_bid_id": None, "updated_at": updated_at})

        return {"project": copy.deepcopy(project), "rejected_bids": rejected}

    # =====================================================================================================
    # USERS
    # =====================================================================================================

    async def get_user_by_clerk_id(self, clerk_user_id: str) -> Optional[Record]:
        await self._round_trip()
        for user in self.users.values():
            if user["clerk_user_id"] == clerk_user_id:
                return copy.deepcopy(user)
        return None

    async def insert_user(self, record: Record) -> Record:
        await self._round_trip()
        user = copy.deepcopy(record)
        user.setdefault("id", str(uuid.uuid4()))
        now = datetime.now(timezone.utc)
        user.setdefault("created_at", now)
        user.setdefault("updated_at", now)
        self.users[user["id"]] = user
        return copy.deepcopy(user)

    async def update_user_by_clerk_id(self, clerk_user_id: str, changes: Record) -> Optional[Record]:
        await self._round_trip()
        for user in self.users.values():
            if user["clerk_user_id"] == clerk_user_id:
                user.update(copy.deepcopy(changes))
                return copy.deepcopy(user)
        return None

    async def delete_user_by_clerk_id(self, clerk_user_id: str) -> bool:
        await self._round_trip()
        for user_id, user in list(self.users.items()):
            if user["clerk_user_id"] == clerk_user_id:
                del self.users[user_id]
                return True
        return False
