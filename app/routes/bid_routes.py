from fastapi import APIRouter, Depends
from app.models.bid_models import BidAcceptanceResponse, BidRejectionRequest, BidResponse
from app.models.user_models import Actor, UserRole
from app.routes.project_routes import get_bid_ledger
from app.services.bid_ledger_services import BidLedger
from app.utils.user_auth import get_current_actor, require_roles
from typing import Optional

bid_router = APIRouter(prefix="/bids", tags=["Bids"])


########################################################################################################################


@bid_router.get("/{bid_id}", response_model=BidResponse)
async def get_bid(
    bid_id: str,
    actor: Actor = Depends(get_current_actor),
    bid_ledger: BidLedger = Depends(get_bid_ledger),
):
    """Bid detail for its contractor or the project owner"""
    return await bid_ledger.get_bid(bid_id, actor)


# ------------------------------------------------------------------------------------------------------------------------


@bid_router.post("/{bid_id}/accept", response_model=BidAcceptanceResponse)
async def accept_bid(
    bid_id: str,
    actor: Actor = Depends(require_roles(UserRole.HOMEOWNER, UserRole.ADMIN)),
    bid_ledger: BidLedger = Depends(get_bid_ledger),
):
    """Accept a bid and award its project; the other pending bids are rejected"""
    return await bid_ledger.accept_by_bid_id(bid_id, actor)


# ------------------------------------------------------------------------------------------------------------------------


@bid_router.post("/{bid_id}/reject", response_model=BidResponse)
async def reject_bid(
    bid_id: str,
    rejection: Optional[BidRejectionRequest] = None,
    actor: Actor = Depends(require_roles(UserRole.HOMEOWNER, UserRole.ADMIN)),
    bid_ledger: BidLedger = Depends(get_bid_ledger),
):
    return await bid_ledger.reject(bid_id, rejection.reason if rejection else None, actor)


# ------------------------------------------------------------------------------------------------------------------------


@bid_router.delete("/{bid_id}", response_model=BidResponse)
async def withdraw_bid(
    bid_id: str,
    actor: Actor = Depends(require_roles(UserRole.CONTRACTOR)),
    bid_ledger: BidLedger = Depends(get_bid_ledger),
):
    """Withdraw a pending bid (kept on record as withdrawn)"""
    return await bid_ledger.withdraw(bid_id, actor)
