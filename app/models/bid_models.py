from pydantic import BaseModel
from app.models.project_models import ProjectResponse, UtcDatetime
from typing import List, Optional
from decimal import Decimal
from enum import Enum


class BidStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


# a contractor may hold at most one of these per project
LIVE_BID_STATUSES = frozenset({BidStatus.PENDING, BidStatus.ACCEPTED})


class BidSortField(str, Enum):
    AMOUNT = "amount"
    TIMELINE = "timeline"
    CREATED_AT = "created_at"

    @property
    def column(self) -> str:
        return "timeline_days" if self is BidSortField.TIMELINE else self.value


class BidCreate(BaseModel):
    amount: Decimal
    timeline_days: int
    proposal: Optional[str] = None


class BidRejectionRequest(BaseModel):
    reason: Optional[str] = None


class BidResponse(BaseModel):
    id: str
    project_id: str
    contractor_id: str
    amount: Decimal
    timeline_days: int
    proposal: Optional[str] = None
    status: BidStatus
    rejection_reason: Optional[str] = None
    created_at: UtcDatetime
    updated_at: UtcDatetime


# ------------------------------------------------------
# owner side


class BidAcceptanceResponse(BaseModel):
    """Result of awarding a project: the accepted bid and the project it closed"""

    project: ProjectResponse
    bid: BidResponse
    rejected_bid_ids: list[str] = []


class BiddingStatsResponse(BaseModel):
    project_id: str
    live_bid_count: int
    total_bid_count: int
    lowest_amount: Optional[Decimal] = None
    highest_amount: Optional[Decimal] = None
    average_amount: Optional[Decimal] = None
