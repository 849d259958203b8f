from fastapi import APIRouter, Depends, Query
from app.models.project_models import (
    CancellationRequest,
    DeadlineExtensionRequest,
    ProjectCardResponse,
    ProjectCategory,
    ProjectDraftCreate,
    ProjectResponse,
    ProjectSortField,
    ProjectStatus,
    ProjectUpdate,
    SortOrder,
    StatusUpdateRequest,
)
from app.models.bid_models import BidCreate, BidResponse, BidSortField, BidStatus, BiddingStatsResponse
from app.models.user_models import Actor, UserRole
from app.services.project_services import ProjectService
from app.services.project_lifecycle_services import ProjectLifecycle
from app.services.bid_ledger_services import BidLedger
from app.services.event_sink_services import EventSink
from app.services.marketplace_base_services import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from app.stores.base_store import MarketplaceStore
from app.utils.clock import Clock
from app.utils.project_locks import ProjectLockRegistry
from app.utils.service_handlers import get_clock, get_event_sink, get_marketplace_store, get_project_locks
from app.utils.user_auth import get_current_actor, get_optional_actor, require_roles
from decimal import Decimal
from typing import List, Optional

project_router = APIRouter(prefix="/projects", tags=["Projects"])

owner_guard = require_roles(UserRole.HOMEOWNER, UserRole.ADMIN)
contractor_guard = require_roles(UserRole.CONTRACTOR)


async def get_project_service(
    store: MarketplaceStore = Depends(get_marketplace_store),
    clock: Clock = Depends(get_clock),
    event_sink: EventSink = Depends(get_event_sink),
    project_locks: ProjectLockRegistry = Depends(get_project_locks),
) -> ProjectService:
    """Dependency to get ProjectService instance"""
    return ProjectService(store, clock, event_sink, project_locks)


async def get_project_lifecycle(
    store: MarketplaceStore = Depends(get_marketplace_store),
    clock: Clock = Depends(get_clock),
    event_sink: EventSink = Depends(get_event_sink),
    project_locks: ProjectLockRegistry = Depends(get_project_locks),
) -> ProjectLifecycle:
    """Dependency to get ProjectLifecycle instance"""
    return ProjectLifecycle(store, clock, event_sink, project_locks)


async def get_bid_ledger(
    store: MarketplaceStore = Depends(get_marketplace_store),
    clock: Clock = Depends(get_clock),
    event_sink: EventSink = Depends(get_event_sink),
    project_locks: ProjectLockRegistry = Depends(get_project_locks),
) -> BidLedger:
    """Dependency to get BidLedger instance"""
    return BidLedger(store, clock, event_sink, project_locks)


########################################################################################################################
# project CRUD


@project_router.post("", response_model=ProjectResponse, status_code=201)
async def create_project(
    draft_data: ProjectDraftCreate,
    actor: Actor = Depends(owner_guard),
    project_service: ProjectService = Depends(get_project_service),
):
    """Create a project as draft"""
    return await project_service.create_project(actor, draft_data)


# ------------------------------------------------------------------------------------------------------------------------


@project_router.get("", response_model=List[ProjectCardResponse])
async def list_projects(
    status: Optional[ProjectStatus] = Query(None, description="Filter by status (defaults to active)"),
    category: Optional[ProjectCategory] = Query(None),
    location: Optional[str] = Query(None, min_length=1, max_length=100),
    min_budget: Optional[Decimal] = Query(None, ge=0),
    max_budget: Optional[Decimal] = Query(None, ge=0),
    search: Optional[str] = Query(None, min_length=1, max_length=100, description="Matches title or description"),
    sort_by: ProjectSortField = Query(ProjectSortField.CREATED_AT),
    sort_order: SortOrder = Query(SortOrder.DESC),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    project_service: ProjectService = Depends(get_project_service),
):
    """Browse projects, open for bids by default"""
    return await project_service.list_projects(status, category, location, min_budget, max_budget, search, sort_by, sort_order, page, limit)


# registered before /{project_id} so "me" is not taken for an id
@project_router.get("/me", response_model=List[ProjectResponse])
async def list_my_projects(
    status: Optional[ProjectStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    actor: Actor = Depends(owner_guard),
    project_service: ProjectService = Depends(get_project_service),
):
    """Projects owned by the current user, drafts included"""
    return await project_service.list_owner_projects(actor, status, page, limit)


@project_router.get("/me/assigned-projects", response_model=List[ProjectResponse])
async def list_assigned_projects(
    status: Optional[ProjectStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    actor: Actor = Depends(contractor_guard),
    project_service: ProjectService = Depends(get_project_service),
):
    """Projects awarded to the current contractor"""
    return await project_service.list_assigned_projects(actor, status, page, limit)


@project_router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: str,
    actor: Optional[Actor] = Depends(get_optional_actor),
    project_service: ProjectService = Depends(get_project_service),
):
    """Public for published projects; drafts only for their owner or an admin"""
    return await project_service.get_project(project_id, actor)


# ------------------------------------------------------------------------------------------------------------------------


@project_router.put("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: str,
    project_data: ProjectUpdate,
    actor: Actor = Depends(owner_guard),
    project_service: ProjectService = Depends(get_project_service),
):
    """Edit a draft project"""
    return await project_service.update_project(actor, project_id, project_data)


@project_router.delete("/{project_id}", response_model=bool)
async def delete_project(
    project_id: str,
    actor: Actor = Depends(owner_guard),
    project_service: ProjectService = Depends(get_project_service),
):
    """Delete a draft that has no bids"""
    return await project_service.delete_project(actor, project_id)


########################################################################################################################
# lifecycle


@project_router.post("/{project_id}/activate", response_model=ProjectResponse)
async def activate_project(
    project_id: str,
    actor: Actor = Depends(owner_guard),
    lifecycle: ProjectLifecycle = Depends(get_project_lifecycle),
):
    """Open a draft for bidding"""
    return await lifecycle.activate(project_id, actor)


@project_router.patch("/{project_id}/extend-deadline", response_model=ProjectResponse)
async def extend_deadline(
    project_id: str,
    extension: DeadlineExtensionRequest,
    actor: Actor = Depends(owner_guard),
    lifecycle: ProjectLifecycle = Depends(get_project_lifecycle),
):
    return await lifecycle.extend_deadline(project_id, extension.new_deadline, actor)


@project_router.patch("/{project_id}/cancel", response_model=ProjectResponse)
async def cancel_project(
    project_id: str,
    cancellation: CancellationRequest,
    actor: Actor = Depends(owner_guard),
    lifecycle: ProjectLifecycle = Depends(get_project_lifecycle),
):
    """Cancel the project and reject its live bids"""
    return await lifecycle.cancel(project_id, cancellation.reason, actor)


@project_router.patch("/{project_id}/status", response_model=ProjectResponse)
async def update_project_status(
    project_id: str,
    status_update: StatusUpdateRequest,
    actor: Actor = Depends(owner_guard),
    lifecycle: ProjectLifecycle = Depends(get_project_lifecycle),
):
    return await lifecycle.update_status(project_id, status_update.status, status_update.reason, actor)


@project_router.post("/{project_id}/close", response_model=ProjectResponse)
async def close_bidding(
    project_id: str,
    actor: Actor = Depends(owner_guard),
    lifecycle: ProjectLifecycle = Depends(get_project_lifecycle),
):
    """Stop taking bids before the deadline"""
    return await lifecycle.close(project_id, actor)


@project_router.post("/{project_id}/complete", response_model=ProjectResponse)
async def complete_project(
    project_id: str,
    actor: Actor = Depends(owner_guard),
    lifecycle: ProjectLifecycle = Depends(get_project_lifecycle),
):
    return await lifecycle.complete(project_id, actor)


########################################################################################################################
# bids on a project


@project_router.post("/{project_id}/bids", response_model=BidResponse, status_code=201)
async def submit_bid(
    project_id: str,
    bid_data: BidCreate,
    actor: Actor = Depends(contractor_guard),
    bid_ledger: BidLedger = Depends(get_bid_ledger),
):
    return await bid_ledger.submit(project_id, bid_data, actor)


@project_router.get("/{project_id}/bids", response_model=List[BidResponse])
async def list_project_bids(
    project_id: str,
    status: Optional[BidStatus] = Query(None),
    sort_by: BidSortField = Query(BidSortField.CREATED_AT),
    sort_order: SortOrder = Query(SortOrder.ASC),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    actor: Actor = Depends(get_current_actor),
    bid_ledger: BidLedger = Depends(get_bid_ledger),
):
    """All bids for the owner; a contractor only sees their own"""
    return await bid_ledger.list_project_bids(project_id, actor, status, sort_by, sort_order, page, limit)


@project_router.get("/{project_id}/bidding-stats", response_model=BiddingStatsResponse)
async def get_bidding_stats(
    project_id: str,
    actor: Actor = Depends(get_current_actor),
    bid_ledger: BidLedger = Depends(get_bid_ledger),
):
    return await bid_ledger.get_bidding_stats(project_id)
