from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime
from enum import Enum


class DomainEventType(str, Enum):
    PROJECT_ACTIVATED = "project.activated"
    PROJECT_DEADLINE_EXTENDED = "project.deadline_extended"
    PROJECT_BIDDING_CLOSED = "project.bidding_closed"
    PROJECT_AWARDED = "project.awarded"
    PROJECT_COMPLETED = "project.completed"
    PROJECT_CANCELLED = "project.cancelled"
    PROJECT_EXPIRED = "project.expired"
    BID_SUBMITTED = "bid.submitted"
    BID_WITHDRAWN = "bid.withdrawn"
    BID_REJECTED = "bid.rejected"
    BID_ACCEPTED = "bid.accepted"


class DomainEvent(BaseModel):
    type: DomainEventType
    project_id: str
    bid_id: Optional[str] = None
    actor_id: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime
