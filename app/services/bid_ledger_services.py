from app.models.bid_models import (
    LIVE_BID_STATUSES,
    BidAcceptanceResponse,
    BidCreate,
    BidResponse,
    BidSortField,
    BidStatus,
    BiddingStatsResponse,
)
from app.models.project_models import ProjectResponse, ProjectStatus, SortOrder
from app.models.event_models import DomainEventType
from app.models.user_models import Actor, UserRole
from app.custom_error import (
    DOMAIN_ERRORS,
    ConflictError,
    DatabaseError,
    DuplicateBidError,
    InvalidStateTransition,
    InvariantViolationError,
    NotFoundError,
    PermissionDeniedError,
    ServerError,
    ValidationError,
)
from app.services.marketplace_base_services import DEFAULT_PAGE_SIZE, MarketplaceService, page_window
from app.services.project_lifecycle_services import ensure_accepting_bids, ensure_project_transition
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)

_LIVE_STATUS_VALUES = [status.value for status in LIVE_BID_STATUSES]


class BidLedger(MarketplaceService):
    """Bid state transitions for one project at a time.

    Writes that depend on the project's bid set (submit, accept, reject, withdraw) run
    inside the project lock, and accept goes through the store's transactional
    ``award_bid`` so at most one bid per project is ever accepted.
    """

    # =====================================================================================================
    # VALIDATION HELPERS
    # =====================================================================================================

    def _validate_bid_data(self, bid_data: BidCreate) -> None:
        if bid_data.amount is None or bid_data.amount <= 0:
            raise ValidationError("Bid amount must be greater than zero")
        if bid_data.timeline_days is None or bid_data.timeline_days <= 0:
            raise ValidationError("Timeline must be at least one day")

    # --------------------------------------------------------------------------------------------------------------------------------------------

    async def _validate_no_live_bid(self, project_id: str, contractor_id: str) -> None:
        """One live bid per contractor per project: withdraw first to bid again"""
        existing = await self.store.list_bids(project_id, statuses=_LIVE_STATUS_VALUES, contractor_id=contractor_id)
        if existing:
            raise DuplicateBidError()

    # --------------------------------------------------------------------------------------------------------------------------------------------

    def _verify_award(self, project: ProjectResponse, bid: BidResponse, bid_id: str) -> None:
        """The store must hand back all three mutations; anything less is reported, never returned"""
        if project.status != ProjectStatus.AWARDED or bid.id != bid_id or bid.status != BidStatus.ACCEPTED or project.awarded_bid_id != bid_id:
            logger.critical(
                f"🚨 Partial award for project {project.id}: project={project.status.value} awarded_bid={project.awarded_bid_id} "
                f"bid={bid.id}:{bid.status.value}"
            )
            raise InvariantViolationError(f"Award of bid {bid_id} on project {project.id} was only partially applied")

    # =====================================================================================================
    # CONTRACTOR OPERATIONS
    # =====================================================================================================

    async def submit(self, project_id: str, bid_data: BidCreate, actor: Actor) -> BidResponse:
        """Place a bid on an active project before its deadline"""
        try:
            self._validate_bid_data(bid_data)

            async with self.project_locks.hold(project_id):
                project = await self.load_project(project_id)
                now = self.clock.now()
                ensure_accepting_bids(project, now)

                if project.owner_id == actor.id:
                    raise ValidationError("Cannot bid on your own project")

                await self._validate_no_live_bid(project_id, actor.id)

                bid_record = bid_data.model_dump()
                bid_record.update(
                    {
                        "project_id": project_id,
                        "contractor_id": actor.id,
                        "status": BidStatus.PENDING.value,
                        "created_at": now,
                        "updated_at": now,
                    }
                )

                result = await self.store.insert_bid(bid_record)
                if not result:
                    raise DatabaseError("Failed to create your bid")
                bid = BidResponse(**result)

            await self.emit(DomainEventType.BID_SUBMITTED, project_id, actor, bid_id=bid.id, amount=str(bid.amount), timeline_days=bid.timeline_days)
            logger.info(f"✅ Bid submitted: {bid.id} on project {project_id}")
            return bid

        except Exception as e:
            logger.error(f"Error submitting bid - {str(e)}")
            if isinstance(e, DOMAIN_ERRORS):
                raise e
            raise ServerError("Failed to submit your bid")

    # --------------------------------------------------------------------------------------------------------------------------------------------

    async def withdraw(self, bid_id: str, actor: Actor) -> BidResponse:
        """Contractor pulls a pending bid; the record stays for the audit trail"""
        try:
            bid = await self.load_bid(bid_id)
            if bid.contractor_id != actor.id:
                raise PermissionDeniedError("Only the contractor who placed the bid can withdraw it")

            async with self.project_locks.hold(bid.project_id):
                bid = await self.load_bid(bid_id)
                if bid.status != BidStatus.PENDING:
                    raise InvalidStateTransition("bid", bid.status.value, "withdraw")

                updated = await self.store.update_bid(
                    bid_id, {"status": BidStatus.WITHDRAWN.value, "updated_at": self.clock.now()}, expected_statuses=[BidStatus.PENDING.value]
                )
                if not updated:
                    current = await self.load_bid(bid_id)
                    raise InvalidStateTransition("bid", current.status.value, "withdraw")
                withdrawn = BidResponse(**updated)

            await self.emit(DomainEventType.BID_WITHDRAWN, withdrawn.project_id, actor, bid_id=bid_id)
            logger.info(f"✅ Bid withdrawn: {bid_id}")
            return withdrawn

        except Exception as e:
            logger.error(f"Error withdrawing bid - {str(e)}")
            if isinstance(e, DOMAIN_ERRORS):
                raise e
            raise ServerError("Failed to withdraw your bid")

    # =====================================================================================================
    # OWNER OPERATIONS
    # =====================================================================================================

    async def accept(self, project_id: str, bid_id: str, actor: Actor) -> BidAcceptanceResponse:
        """Award the project to one bid; every other pending bid is rejected in the same write.

        An active project is closed for bidding first, under the same lock, so an owner can
        accept a bid without a separate close call.
        """
        try:
            async with self.project_locks.hold(project_id):
                project = await self.load_project(project_id)
                self.ensure_owner_or_admin(project, actor)

                if project.status == ProjectStatus.AWARDED:
                    raise ConflictError(f"Project {project_id} has already been awarded")
                if project.status == ProjectStatus.ACTIVE:
                    ensure_project_transition(project.status, ProjectStatus.BIDDING_CLOSED, "award")
                else:
                    ensure_project_transition(project.status, ProjectStatus.AWARDED, "award")

                bid = await self.load_bid(bid_id)
                if bid.project_id != project_id:
                    raise NotFoundError("Bid", bid_id)

                already_accepted = await self.store.list_bids(project_id, statuses=[BidStatus.ACCEPTED.value])
                if already_accepted:
                    raise ConflictError(f"Project {project_id} already has an accepted bid")

                if bid.status != BidStatus.PENDING:
                    raise InvalidStateTransition("bid", bid.status.value, "accept")

                closed_here = False
                if project.status == ProjectStatus.ACTIVE:
                    closed = await self.store.update_project(
                        project_id,
                        {"status": ProjectStatus.BIDDING_CLOSED.value, "updated_at": self.clock.now()},
                        expected_statuses=[ProjectStatus.ACTIVE.value],
                    )
                    if not closed:
                        raise ConflictError(f"Project {project_id} changed while accepting bid {bid_id}; refetch and retry")
                    closed_here = True

                result = await self.store.award_bid(project_id, bid_id, self.clock.now())
                if not result:
                    raise ConflictError(f"Project {project_id} changed while accepting bid {bid_id}; refetch and retry")

                awarded_project = ProjectResponse(**result["project"])
                accepted_bid = BidResponse(**result["bid"])
                self._verify_award(awarded_project, accepted_bid, bid_id)
                rejected_bid_ids = [rejected["id"] for rejected in result.get("rejected_bids") or []]

            if closed_here:
                await self.emit(DomainEventType.PROJECT_BIDDING_CLOSED, project_id, actor, trigger="award")
            await self.emit(DomainEventType.BID_ACCEPTED, project_id, actor, bid_id=bid_id, amount=str(accepted_bid.amount))
            await self.emit(
                DomainEventType.PROJECT_AWARDED,
                project_id,
                actor,
                bid_id=bid_id,
                contractor_id=accepted_bid.contractor_id,
                rejected_bid_ids=rejected_bid_ids,
            )
            logger.info(f"✅ Bid {bid_id} accepted, project {project_id} awarded ({len(rejected_bid_ids)} bids rejected)")
            return BidAcceptanceResponse(project=awarded_project, bid=accepted_bid, rejected_bid_ids=rejected_bid_ids)

        except Exception as e:
            logger.error(f"Error accepting bid - {str(e)}")
            if isinstance(e, DOMAIN_ERRORS):
                raise e
            raise ServerError("Failed to accept bid")

    # --------------------------------------------------------------------------------------------------------------------------------------------

    async def accept_by_bid_id(self, bid_id: str, actor: Actor) -> BidAcceptanceResponse:
        bid = await self.load_bid(bid_id)
        return await self.accept(bid.project_id, bid_id, actor)

    # --------------------------------------------------------------------------------------------------------------------------------------------

    async def reject(self, bid_id: str, reason: Optional[str], actor: Actor) -> BidResponse:
        """Decline a pending bid; rejecting an already rejected bid returns it unchanged"""
        try:
            bid = await self.load_bid(bid_id)

            async with self.project_locks.hold(bid.project_id):
                project = await self.load_project(bid.project_id)
                self.ensure_owner_or_admin(project, actor)

                bid = await self.load_bid(bid_id)
                if bid.status == BidStatus.REJECTED:
                    return bid
                if bid.status != BidStatus.PENDING:
                    raise InvalidStateTransition("bid", bid.status.value, "reject")

                changes = {"status": BidStatus.REJECTED.value, "rejection_reason": reason, "updated_at": self.clock.now()}
                updated = await self.store.update_bid(bid_id, changes, expected_statuses=[BidStatus.PENDING.value])
                if not updated:
                    current = await self.load_bid(bid_id)
                    if current.status == BidStatus.REJECTED:
                        return current
                    raise InvalidStateTransition("bid", current.status.value, "reject")
                rejected = BidResponse(**updated)

            await self.emit(DomainEventType.BID_REJECTED, rejected.project_id, actor, bid_id=bid_id, reason=reason)
            logger.info(f"✅ Bid rejected: {bid_id}")
            return rejected

        except Exception as e:
            logger.error(f"Error rejecting bid - {str(e)}")
            if isinstance(e, DOMAIN_ERRORS):
                raise e
            raise ServerError("Failed to reject bid")

    # =====================================================================================================
    # BID READING OPERATIONS
    # =====================================================================================================

    async def get_bid(self, bid_id: str, actor: Actor) -> BidResponse:
        try:
            bid = await self.load_bid(bid_id)
            if bid.contractor_id != actor.id:
                project = await self.load_project(bid.project_id)
                self.ensure_owner_or_admin(project, actor)
            return bid

        except Exception as e:
            logger.error(f"Error getting bid - {str(e)}")
            if isinstance(e, DOMAIN_ERRORS):
                raise e
            raise ServerError("Failed to fetch bid")

    # --------------------------------------------------------------------------------------------------------------------------------------------

    async def list_project_bids(
        self,
        project_id: str,
        actor: Actor,
        status: Optional[BidStatus] = None,
        sort_by: BidSortField = BidSortField.CREATED_AT,
        sort_order: SortOrder = SortOrder.ASC,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> List[BidResponse]:
        """Owners and admins see every bid; a contractor sees only their own"""
        try:
            offset, limit = page_window(page, limit)
            project = await self.load_project(project_id)
            statuses = [status.value] if status else None
            ordering = dict(sort_by=sort_by.column, descending=sort_order == SortOrder.DESC, offset=offset, limit=limit)

            if actor.role == UserRole.CONTRACTOR and project.owner_id != actor.id:
                records = await self.store.list_bids(project_id, statuses=statuses, contractor_id=actor.id, **ordering)
            else:
                self.ensure_owner_or_admin(project, actor)
                records = await self.store.list_bids(project_id, statuses=statuses, **ordering)

            bids = [BidResponse(**record) for record in records]
            logger.info(f"✅ Retrieved {len(bids)} bids for project {project_id}")
            return bids

        except Exception as e:
            logger.error(f"Error listing project bids - {str(e)}")
            if isinstance(e, DOMAIN_ERRORS):
                raise e
            raise ServerError("Failed to fetch bids")

    # --------------------------------------------------------------------------------------------------------------------------------------------

    async def get_bidding_stats(self, project_id: str) -> BiddingStatsResponse:
        try:
            await self.load_project(project_id)
            bids = [BidResponse(**record) for record in await self.store.list_bids(project_id)]
            live_amounts = [bid.amount for bid in bids if bid.status in LIVE_BID_STATUSES]

            stats = BiddingStatsResponse(project_id=project_id, live_bid_count=len(live_amounts), total_bid_count=len(bids))
            if live_amounts:
                stats.lowest_amount = min(live_amounts)
                stats.highest_amount = max(live_amounts)
                stats.average_amount = (sum(live_amounts, Decimal(0)) / len(live_amounts)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
            return stats

        except Exception as e:
            logger.error(f"Error computing bidding stats - {str(e)}")
            if isinstance(e, DOMAIN_ERRORS):
                raise e
            raise ServerError("Failed to fetch bidding stats")
