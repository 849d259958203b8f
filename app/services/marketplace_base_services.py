from app.stores.base_store import MarketplaceStore
from app.models.project_models import ProjectResponse
from app.models.bid_models import BidResponse
from app.models.event_models import DomainEvent, DomainEventType
from app.models.user_models import Actor
from app.custom_error import NotFoundError, PermissionDeniedError, ValidationError
from app.utils.clock import Clock
from app.utils.project_locks import ProjectLockRegistry
from app.services.event_sink_services import EventSink
from typing import Optional, Tuple
import logging

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 50


def page_window(page: int, limit: int) -> Tuple[int, int]:
    """1-based page number and page size -> (offset, limit) for the store"""
    if page < 1:
        raise ValidationError("Page must be at least 1")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"Limit must be between 1 and {MAX_PAGE_SIZE}")
    return (page - 1) * limit, limit


class MarketplaceService:
    """Collaborators and lookups shared by the project and bid services"""

    def __init__(self, store: MarketplaceStore, clock: Clock, event_sink: EventSink, project_locks: ProjectLockRegistry):
        self.store = store
        self.clock = clock
        self.event_sink = event_sink
        self.project_locks = project_locks

    async def load_project(self, project_id: str) -> ProjectResponse:
        record = await self.store.get_project(project_id)
        if not record:
            raise NotFoundError("Project", project_id)
        return ProjectResponse(**record)

    async def load_bid(self, bid_id: str) -> BidResponse:
        record = await self.store.get_bid(bid_id)
        if not record:
            raise NotFoundError("Bid", bid_id)
        return BidResponse(**record)

    def ensure_owner_or_admin(self, project: ProjectResponse, actor: Actor) -> None:
        if actor.is_admin or project.owner_id == actor.id:
            return
        raise PermissionDeniedError("Only the project owner or an admin can do this")

    async def emit(
        self, event_type: DomainEventType, project_id: str, actor: Optional[Actor] = None, bid_id: Optional[str] = None, **payload
    ) -> None:
        """Publish after the write committed; a failing sink never undoes the transition"""
        event = DomainEvent(
            type=event_type,
            project_id=project_id,
            bid_id=bid_id,
            actor_id=actor.id if actor else None,
            payload=payload,
            occurred_at=self.clock.now(),
        )
        try:
            await self.event_sink.publish(event)
        except Exception as e:
            logger.error(f"❌ Failed to publish {event_type.value} for project {project_id}: {str(e)}")
