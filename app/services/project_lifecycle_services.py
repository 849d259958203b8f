from app.models.project_models import ProjectResponse, ProjectStatus
from app.models.bid_models import BidStatus
from app.models.event_models import DomainEventType
from app.models.user_models import Actor
from app.custom_error import (
    DOMAIN_ERRORS,
    ConflictError,
    InvalidStateTransition,
    PermissionDeniedError,
    ServerError,
    ValidationError,
)
from app.services.marketplace_base_services import MarketplaceService
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, List, Optional, Tuple
import logging

logger = logging.getLogger(__name__)


# every edge of the project state machine; anything not listed is refused
ALLOWED_TRANSITIONS: Dict[ProjectStatus, FrozenSet[ProjectStatus]] = {
    ProjectStatus.DRAFT: frozenset({ProjectStatus.ACTIVE, ProjectStatus.CANCELLED}),
    ProjectStatus.ACTIVE: frozenset({ProjectStatus.BIDDING_CLOSED, ProjectStatus.CANCELLED, ProjectStatus.EXPIRED}),
    ProjectStatus.BIDDING_CLOSED: frozenset({ProjectStatus.AWARDED, ProjectStatus.CANCELLED, ProjectStatus.EXPIRED}),
    ProjectStatus.AWARDED: frozenset({ProjectStatus.COMPLETED, ProjectStatus.CANCELLED}),
    ProjectStatus.COMPLETED: frozenset(),
    ProjectStatus.CANCELLED: frozenset(),
    ProjectStatus.EXPIRED: frozenset(),
}

REQUIRED_FOR_ACTIVATION = ("title", "description", "category", "location", "bidding_deadline")

EXPIRY_REASON = "Bidding deadline passed without an award"


def ensure_project_transition(current: ProjectStatus, target: ProjectStatus, attempted: str) -> None:
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStateTransition("project", current.value, attempted)


def ensure_accepting_bids(project: ProjectResponse, now: datetime) -> None:
    """Bids are taken only while the project is active and strictly before its deadline"""
    if project.status != ProjectStatus.ACTIVE:
        raise InvalidStateTransition("project", project.status.value, "submit a bid on")
    if project.bidding_deadline is None or now >= project.bidding_deadline:
        raise InvalidStateTransition("project", "bidding_deadline_passed", "submit a bid on")


def validate_budget_and_deadline(budget_min, budget_max, bidding_deadline: Optional[datetime], now: datetime) -> None:
    if budget_min is not None and budget_min < 0:
        raise ValidationError("Minimum budget must be positive")
    if budget_max is not None and budget_max < 0:
        raise ValidationError("Maximum budget must be positive")
    if budget_min is not None and budget_max is not None and budget_min > budget_max:
        raise ValidationError("Minimum budget cannot be greater than maximum budget")
    if bidding_deadline is not None and bidding_deadline <= now:
        raise ValidationError("Bidding deadline must be in the future")


class ProjectLifecycle(MarketplaceService):
    """Owns the project status state machine.

    Every transition runs inside the project's lock and writes with a conditional
    update on the status it read, so a concurrent writer in another process makes
    the write fail with ConflictError instead of being overwritten.
    """

    # =====================================================================================================
    # INTERNAL TRANSITIONS (caller holds the project lock)
    # =====================================================================================================

    async def _transition_locked(self, project: ProjectResponse, target: ProjectStatus, attempted: str, changes: Optional[dict] = None) -> ProjectResponse:
        ensure_project_transition(project.status, target, attempted)

        update = {"status": target.value, "updated_at": self.clock.now()}
        update.update(changes or {})

        updated = await self.store.update_project(project.id, update, expected_statuses=[project.status.value])
        if not updated:
            raise ConflictError(f"Project {project.id} changed while trying to {attempted} it; refetch and retry")
        return ProjectResponse(**updated)

    async def _retire_locked(self, project: ProjectResponse, target: ProjectStatus, reason: str, attempted: str) -> Tuple[ProjectResponse, List[str]]:
        """Cancel or expire, rejecting every pending/accepted bid in the same transaction"""
        ensure_project_transition(project.status, target, attempted)

        result = await self.store.retire_project(
            project.id, target.value, reason, from_statuses=[project.status.value], updated_at=self.clock.now()
        )
        if not result:
            raise ConflictError(f"Project {project.id} changed while trying to {attempted} it; refetch and retry")

        retired = ProjectResponse(**result["project"])
        if retired.status != target:
            raise ServerError(f"Project {project.id} reported status '{retired.status.value}' after {attempted}")
        return retired, [bid["id"] for bid in result.get("rejected_bids") or []]

    def _validate_ready_for_bidding(self, project: ProjectResponse) -> None:
        missing = [field for field in REQUIRED_FOR_ACTIVATION if getattr(project, field) in (None, "")]
        if missing:
            raise ValidationError(f"Project is missing required fields: {', '.join(missing)}")

        validate_budget_and_deadline(project.budget_min, project.budget_max, project.bidding_deadline, self.clock.now())

    # =====================================================================================================
    # OWNER OPERATIONS
    # =====================================================================================================

    async def activate(self, project_id: str, actor: Actor) -> ProjectResponse:
        """Open a draft for bidding"""
        try:
            async with self.project_locks.hold(project_id):
                project = await self.load_project(project_id)
                self.ensure_owner_or_admin(project, actor)
                ensure_project_transition(project.status, ProjectStatus.ACTIVE, "activate")
                self._validate_ready_for_bidding(project)

                activated = await self._transition_locked(project, ProjectStatus.ACTIVE, "activate")

            await self.emit(DomainEventType.PROJECT_ACTIVATED, project_id, actor, bidding_deadline=activated.bidding_deadline.isoformat())
            logger.info(f"✅ Project activated: {project_id}")
            return activated

        except Exception as e:
            logger.error(f"Error activating project - {str(e)}")
            if isinstance(e, DOMAIN_ERRORS):
                raise e
            raise ServerError("Failed to activate project")

    # --------------------------------------------------------------------------------------------------------------------------------------------

    async def extend_deadline(self, project_id: str, new_deadline: datetime, actor: Actor) -> ProjectResponse:
        try:
            async with self.project_locks.hold(project_id):
                project = await self.load_project(project_id)
                self.ensure_owner_or_admin(project, actor)

                if project.status != ProjectStatus.ACTIVE:
                    raise InvalidStateTransition("project", project.status.value, "extend the deadline of")
                if new_deadline <= self.clock.now():
                    raise ValidationError("New deadline must be in the future")
                if project.bidding_deadline is not None and new_deadline <= project.bidding_deadline:
                    raise ValidationError("New deadline must be later than the current deadline")

                updated = await self.store.update_project(
                    project_id, {"bidding_deadline": new_deadline, "updated_at": self.clock.now()}, expected_statuses=[ProjectStatus.ACTIVE.value]
                )
                if not updated:
                    raise ConflictError(f"Project {project_id} left bidding while extending its deadline; refetch and retry")
                extended = ProjectResponse(**updated)

            await self.emit(
                DomainEventType.PROJECT_DEADLINE_EXTENDED,
                project_id,
                actor,
                previous_deadline=project.bidding_deadline.isoformat() if project.bidding_deadline else None,
                new_deadline=new_deadline.isoformat(),
            )
            logger.info(f"✅ Deadline extended for project {project_id} to {new_deadline.isoformat()}")
            return extended

        except Exception as e:
            logger.error(f"Error extending project deadline - {str(e)}")
            if isinstance(e, DOMAIN_ERRORS):
                raise e
            raise ServerError("Failed to extend project deadline")

    # --------------------------------------------------------------------------------------------------------------------------------------------

    async def close(self, project_id: str, actor: Actor) -> ProjectResponse:
        """Stop taking bids early; closing an already closed project returns it unchanged"""
        try:
            async with self.project_locks.hold(project_id):
                project = await self.load_project(project_id)
                self.ensure_owner_or_admin(project, actor)

                if project.status == ProjectStatus.BIDDING_CLOSED:
                    return project

                closed = await self._transition_locked(project, ProjectStatus.BIDDING_CLOSED, "close bidding on")

            await self.emit(DomainEventType.PROJECT_BIDDING_CLOSED, project_id, actor, trigger="owner")
            logger.info(f"✅ Bidding closed for project {project_id}")
            return closed

        except Exception as e:
            logger.error(f"Error closing project - {str(e)}")
            if isinstance(e, DOMAIN_ERRORS):
                raise e
            raise ServerError("Failed to close project")

    # --------------------------------------------------------------------------------------------------------------------------------------------

    async def cancel(self, project_id: str, reason: str, actor: Actor) -> ProjectResponse:
        """Cancel from any non-terminal state; live bids are rejected with the cancellation reason"""
        try:
            if not reason or not reason.strip():
                raise ValidationError("Cancellation reason is required")

            async with self.project_locks.hold(project_id):
                project = await self.load_project(project_id)
                self.ensure_owner_or_admin(project, actor)
                cancelled, rejected_bid_ids = await self._retire_locked(project, ProjectStatus.CANCELLED, reason.strip(), "cancel")

            await self.emit(
                DomainEventType.PROJECT_CANCELLED,
                project_id,
                actor,
                reason=reason.strip(),
                previous_status=project.status.value,
                rejected_bid_ids=rejected_bid_ids,
            )
            logger.info(f"✅ Project cancelled: {project_id} ({len(rejected_bid_ids)} bids rejected)")
            return cancelled

        except Exception as e:
            logger.error(f"Error cancelling project - {str(e)}")
            if isinstance(e, DOMAIN_ERRORS):
                raise e
            raise ServerError("Failed to cancel project")

    # --------------------------------------------------------------------------------------------------------------------------------------------

    async def award(self, project_id: str, bid_id: str, actor: Actor) -> ProjectResponse:
        """Award the project by accepting one of its bids"""
        # bid_ledger_services imports this module
        from app.services.bid_ledger_services import BidLedger

        ledger = BidLedger(self.store, self.clock, self.event_sink, self.project_locks)
        acceptance = await ledger.accept(project_id, bid_id, actor)
        return acceptance.project

    # --------------------------------------------------------------------------------------------------------------------------------------------

    async def complete(self, project_id: str, actor: Actor) -> ProjectResponse:
        """Owner confirms the awarded work was delivered"""
        try:
            async with self.project_locks.hold(project_id):
                project = await self.load_project(project_id)
                self.ensure_owner_or_admin(project, actor)
                completed = await self._transition_locked(project, ProjectStatus.COMPLETED, "complete")

            await self.emit(DomainEventType.PROJECT_COMPLETED, project_id, actor, awarded_bid_id=completed.awarded_bid_id)
            logger.info(f"✅ Project completed: {project_id}")
            return completed

        except Exception as e:
            logger.error(f"Error completing project - {str(e)}")
            if isinstance(e, DOMAIN_ERRORS):
                raise e
            raise ServerError("Failed to complete project")

    # --------------------------------------------------------------------------------------------------------------------------------------------

    async def expire(self, project_id: str, actor: Optional[Actor] = None, reason: str = EXPIRY_REASON) -> ProjectResponse:
        """Retire an unawarded project; actor is None when the deadline sweep calls"""
        try:
            async with self.project_locks.hold(project_id):
                project = await self.load_project(project_id)
                if actor is not None and not actor.is_admin:
                    raise PermissionDeniedError("Only admins can expire a project")
                expired, rejected_bid_ids = await self._expire_locked(project, reason)

            await self.emit(DomainEventType.PROJECT_EXPIRED, project_id, actor, reason=reason, rejected_bid_ids=rejected_bid_ids)
            logger.info(f"✅ Project expired: {project_id}")
            return expired

        except Exception as e:
            logger.error(f"Error expiring project - {str(e)}")
            if isinstance(e, DOMAIN_ERRORS):
                raise e
            raise ServerError("Failed to expire project")

    async def _expire_locked(self, project: ProjectResponse, reason: str) -> Tuple[ProjectResponse, List[str]]:
        accepted = await self.store.list_bids(project.id, statuses=[BidStatus.ACCEPTED.value])
        if accepted:
            raise InvalidStateTransition("project", project.status.value, "expire a project with an accepted bid on")
        return await self._retire_locked(project, ProjectStatus.EXPIRED, reason, "expire")

    # --------------------------------------------------------------------------------------------------------------------------------------------

    async def update_status(self, project_id: str, status: ProjectStatus, reason: Optional[str], actor: Actor) -> ProjectResponse:
        """Route a generic status change to the operation that owns that edge"""
        if status == ProjectStatus.ACTIVE:
            return await self.activate(project_id, actor)
        if status == ProjectStatus.BIDDING_CLOSED:
            return await self.close(project_id, actor)
        if status == ProjectStatus.CANCELLED:
            return await self.cancel(project_id, reason or "", actor)
        if status == ProjectStatus.COMPLETED:
            return await self.complete(project_id, actor)
        if status == ProjectStatus.EXPIRED:
            return await self.expire(project_id, actor, reason or EXPIRY_REASON)
        if status == ProjectStatus.AWARDED:
            raise ValidationError("A project is awarded by accepting one of its bids")

        project = await self.load_project(project_id)
        raise InvalidStateTransition("project", project.status.value, f"move to '{status.value}'")

    # =====================================================================================================
    # DEADLINE SWEEP
    # =====================================================================================================

    async def apply_deadline(self, project_id: str, award_window: timedelta) -> Optional[ProjectResponse]:
        """Time-driven transition for one project, re-checked under its lock.

        Past the deadline an active project closes if it has pending bids (the owner can still
        award) and expires otherwise; a closed project expires once the award window is over.
        Returns None when nothing was due, so re-running is a no-op.
        """
        async with self.project_locks.hold(project_id):
            project = await self.load_project(project_id)
            now = self.clock.now()

            if project.bidding_deadline is None:
                return None

            if project.status == ProjectStatus.ACTIVE and project.bidding_deadline <= now:
                pending = await self.store.list_bids(project_id, statuses=[BidStatus.PENDING.value])
                if pending:
                    closed = await self._transition_locked(project, ProjectStatus.BIDDING_CLOSED, "close bidding on")
                    event_type, payload, result = DomainEventType.PROJECT_BIDDING_CLOSED, {"trigger": "deadline", "pending_bids": len(pending)}, closed
                else:
                    expired, rejected_bid_ids = await self._expire_locked(project, EXPIRY_REASON)
                    event_type, payload, result = DomainEventType.PROJECT_EXPIRED, {"reason": EXPIRY_REASON, "rejected_bid_ids": rejected_bid_ids}, expired

            elif project.status == ProjectStatus.BIDDING_CLOSED and project.bidding_deadline + award_window <= now:
                expired, rejected_bid_ids = await self._expire_locked(project, EXPIRY_REASON)
                event_type, payload, result = DomainEventType.PROJECT_EXPIRED, {"reason": EXPIRY_REASON, "rejected_bid_ids": rejected_bid_ids}, expired

            else:
                return None

        await self.emit(event_type, project_id, **payload)
        logger.info(f"✅ Deadline sweep moved project {project_id} to {result.status.value}")
        return result
