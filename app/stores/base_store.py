from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

Record = Dict[str, Any]


class MarketplaceStore(ABC):
    """Persistence port for projects, bids and the users they reference.

    Conditional updates take ``expected_statuses`` and return ``None`` when the row's
    current status is not one of them (compare-and-swap); the caller decides what
    a lost race means. ``award_bid`` and ``retire_project`` are the only multi-row
    writes and each one is applied as a single transaction.
    """

    # =====================================================================================================
    # PROJECTS
    # =====================================================================================================

    @abstractmethod
    async def get_project(self, project_id: str) -> Optional[Record]: ...

    @abstractmethod
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
        """Filtered, sorted page of projects.

        The budget filters match projects whose range overlaps the requested one, ``search``
        is a case-insensitive substring of title or description.
        """
        ...

    @abstractmethod
    async def list_projects_due_for_sweep(self, now: datetime, award_window: timedelta) -> List[Record]:
        """Active projects past their deadline, and closed ones past deadline + award window"""
        ...

    @abstractmethod
    async def insert_project(self, record: Record) -> Record: ...

    @abstractmethod
    async def update_project(self, project_id: str, changes: Record, expected_statuses: Optional[Iterable[str]] = None) -> Optional[Record]: ...

    @abstractmethod
    async def delete_project(self, project_id: str, expected_statuses: Optional[Iterable[str]] = None) -> bool:
        """Delete the row if its status is still one of ``expected_statuses``; False otherwise"""
        ...

    # =====================================================================================================
    # BIDS
    # =====================================================================================================

    @abstractmethod
    async def get_bid(self, bid_id: str) -> Optional[Record]: ...

    @abstractmethod
    async def list_bids(
        self,
        project_id: str,
        statuses: Optional[Iterable[str]] = None,
        contractor_id: Optional[str] = None,
        sort_by: str = "created_at",
        descending: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Record]: ...

    @abstractmethod
    async def list_contractor_bids(self, contractor_id: str, statuses: Optional[Iterable[str]] = None) -> List[Record]:
        """Bids of one contractor across all projects"""
        ...

    @abstractmethod
    async def insert_bid(self, record: Record) -> Record: ...

    @abstractmethod
    async def update_bid(self, bid_id: str, changes: Record, expected_statuses: Optional[Iterable[str]] = None) -> Optional[Record]: ...

    # =====================================================================================================
    # ATOMIC MULTI-ROW WRITES
    # =====================================================================================================

    @abstractmethod
    async def award_bid(self, project_id: str, bid_id: str, updated_at: datetime) -> Optional[Record]:
        """Accept one bid, reject the other pending ones and mark the project awarded, all or nothing.

        Preconditions checked inside the transaction: project is bidding_closed, the target bid
        belongs to it and is pending, and no bid of the project is accepted yet. Returns
        ``{"project": ..., "bid": ..., "rejected_bids": [...]}`` or ``None`` if a precondition failed.
        """
        ...

    @abstractmethod
    async def retire_project(
        self, project_id: str, target_status: str, reason: str, from_statuses: Iterable[str], updated_at: datetime
    ) -> Optional[Record]:
        """Move a project to cancelled/expired and reject its pending and accepted bids in one transaction.

        Returns ``{"project": ..., "rejected_bids": [...]}`` or ``None`` if the project left ``from_statuses``.
        """
        ...

    # =====================================================================================================
    # USERS
    # =====================================================================================================

    @abstractmethod
    async def get_user_by_clerk_id(self, clerk_user_id: str) -> Optional[Record]: ...

    @abstractmethod
    async def insert_user(self, record: Record) -> Record: ...

    @abstractmethod
    async def update_user_by_clerk_id(self, clerk_user_id: str, changes: Record) -> Optional[Record]: ...

    @abstractmethod
    async def delete_user_by_clerk_id(self, clerk_user_id: str) -> bool: ...

    async def close(self) -> None:
        """Release connections (no-op by default)"""
        return None
