from pydantic import AfterValidator, BaseModel
from typing import Annotated, Optional, List
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum


class ProjectCategory(str, Enum):
    RESIDENTIAL = "residential"
    COMMERCIAL = "commercial"
    RENOVATION = "renovation"
    MAINTENANCE = "maintenance"
    OTHER = "other"


class ProjectStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    BIDDING_CLOSED = "bidding_closed"
    AWARDED = "awarded"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


TERMINAL_PROJECT_STATUSES = frozenset({ProjectStatus.COMPLETED, ProjectStatus.CANCELLED, ProjectStatus.EXPIRED})


class ProjectSortField(str, Enum):
    CREATED_AT = "created_at"
    BIDDING_DEADLINE = "bidding_deadline"
    BUDGET_MIN = "budget_min"
    BUDGET_MAX = "budget_max"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC so deadline comparisons never mix naive and aware values"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


# -------------------------------------------------------------------------------------------
# request models


class ProjectDraftCreate(BaseModel):
    """Everything optional: a draft only has to be complete when it is activated"""

    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[ProjectCategory] = None
    location: Optional[str] = None
    budget_min: Optional[Decimal] = None
    budget_max: Optional[Decimal] = None
    bidding_deadline: Optional[UtcDatetime] = None
    requirements: Optional[List[str]] = None


class ProjectUpdate(ProjectDraftCreate):
    pass


class DeadlineExtensionRequest(BaseModel):
    new_deadline: UtcDatetime


class CancellationRequest(BaseModel):
    reason: str


class StatusUpdateRequest(BaseModel):
    status: ProjectStatus
    reason: Optional[str] = None


# -------------------------------------------------------------------------------------------
# response models


class ProjectResponse(BaseModel):
    id: str
    owner_id: str
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[ProjectCategory] = None
    location: Optional[str] = None
    budget_min: Optional[Decimal] = None
    budget_max: Optional[Decimal] = None
    bidding_deadline: Optional[UtcDatetime] = None
    requirements: Optional[List[str]] = None
    status: ProjectStatus
    cancellation_reason: Optional[str] = None
    awarded_bid_id: Optional[str] = None
    created_at: UtcDatetime
    updated_at: UtcDatetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PROJECT_STATUSES


class ProjectCardResponse(BaseModel):
    id: str
    title: Optional[str] = None
    category: Optional[ProjectCategory] = None
    location: Optional[str] = None
    budget_min: Optional[Decimal] = None
    budget_max: Optional[Decimal] = None
    bidding_deadline: Optional[UtcDatetime] = None
    status: ProjectStatus
    created_at: UtcDatetime
