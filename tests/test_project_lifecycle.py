"""
Project lifecycle tests.

Covers the status state machine: activation guards, deadline extension,
early close, cancellation with bid compensation, completion and the
generic status dispatcher.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from app.custom_error import (
    ConflictError,
    InvalidStateTransition,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from app.models.bid_models import BidStatus
from app.models.event_models import DomainEventType
from app.models.project_models import ProjectStatus
from app.services.project_lifecycle_services import ALLOWED_TRANSITIONS


class TestTransitionTable:
    def test_terminal_states_have_no_outgoing_edges(self):
        for status in (ProjectStatus.COMPLETED, ProjectStatus.CANCELLED, ProjectStatus.EXPIRED):
            assert ALLOWED_TRANSITIONS[status] == frozenset()

    def test_every_status_is_in_the_table(self):
        assert set(ALLOWED_TRANSITIONS) == set(ProjectStatus)

    def test_awarded_only_reachable_from_bidding_closed(self):
        sources = [status for status, targets in ALLOWED_TRANSITIONS.items() if ProjectStatus.AWARDED in targets]
        assert sources == [ProjectStatus.BIDDING_CLOSED]


class TestActivate:
    async def test_draft_becomes_active(self, make_draft, lifecycle, owner, event_sink):
        draft = await make_draft()
        assert draft.status == ProjectStatus.DRAFT

        project = await lifecycle.activate(draft.id, owner)

        assert project.status == ProjectStatus.ACTIVE
        assert event_sink.types() == [DomainEventType.PROJECT_ACTIVATED]

    async def test_activate_twice_is_invalid_transition(self, make_active, lifecycle, owner):
        project = await make_active()

        with pytest.raises(InvalidStateTransition) as exc_info:
            await lifecycle.activate(project.id, owner)

        assert exc_info.value.current_state == "active"
        assert exc_info.value.status_code == 409

    async def test_deadline_must_be_strictly_in_future(self, make_draft, lifecycle, owner, clock):
        draft = await make_draft()
        clock.set(draft.bidding_deadline)

        with pytest.raises(ValidationError):
            await lifecycle.activate(draft.id, owner)

    async def test_missing_required_fields(self, make_draft, lifecycle, owner):
        draft = await make_draft(location=None, bidding_deadline=None)

        with pytest.raises(ValidationError) as exc_info:
            await lifecycle.activate(draft.id, owner)

        assert "location" in exc_info.value.detail
        assert "bidding_deadline" in exc_info.value.detail

    async def test_only_owner_or_admin(self, make_draft, lifecycle, other_owner, admin):
        draft = await make_draft()

        with pytest.raises(PermissionDeniedError):
            await lifecycle.activate(draft.id, other_owner)

        project = await lifecycle.activate(draft.id, admin)
        assert project.status == ProjectStatus.ACTIVE

    async def test_unknown_project(self, lifecycle, owner):
        with pytest.raises(NotFoundError):
            await lifecycle.activate("missing", owner)


class TestExtendDeadline:
    async def test_extends_active_project(self, make_active, lifecycle, owner, event_sink):
        project = await make_active()
        new_deadline = project.bidding_deadline + timedelta(days=3)

        extended = await lifecycle.extend_deadline(project.id, new_deadline, owner)

        assert extended.bidding_deadline == new_deadline
        assert event_sink.types()[-1] == DomainEventType.PROJECT_DEADLINE_EXTENDED

    async def test_rejects_deadline_not_after_current(self, make_active, lifecycle, owner):
        project = await make_active()

        with pytest.raises(ValidationError):
            await lifecycle.extend_deadline(project.id, project.bidding_deadline, owner)
        with pytest.raises(ValidationError):
            await lifecycle.extend_deadline(project.id, project.bidding_deadline - timedelta(hours=1), owner)

    async def test_rejects_deadline_not_after_now(self, make_active, lifecycle, owner, clock):
        project = await make_active()
        # past the old deadline, so "later than current" alone would accept it
        clock.set(project.bidding_deadline + timedelta(days=2))

        with pytest.raises(ValidationError):
            await lifecycle.extend_deadline(project.id, project.bidding_deadline + timedelta(days=1), owner)
        with pytest.raises(ValidationError):
            await lifecycle.extend_deadline(project.id, clock.now(), owner)

    async def test_only_while_active(self, make_draft, lifecycle, owner, clock):
        draft = await make_draft()

        with pytest.raises(InvalidStateTransition):
            await lifecycle.extend_deadline(draft.id, clock.now() + timedelta(days=30), owner)


class TestClose:
    async def test_close_with_zero_bids(self, make_active, lifecycle, owner):
        project = await make_active()

        closed = await lifecycle.close(project.id, owner)

        assert closed.status == ProjectStatus.BIDDING_CLOSED

    async def test_close_is_idempotent(self, make_active, lifecycle, owner, event_sink):
        project = await make_active()
        first = await lifecycle.close(project.id, owner)

        second = await lifecycle.close(project.id, owner)

        assert second == first
        assert event_sink.types().count(DomainEventType.PROJECT_BIDDING_CLOSED) == 1

    async def test_close_draft_is_invalid(self, make_draft, lifecycle, owner):
        draft = await make_draft()

        with pytest.raises(InvalidStateTransition):
            await lifecycle.close(draft.id, owner)


class TestCancel:
    async def test_reason_required(self, make_active, lifecycle, owner):
        project = await make_active()

        with pytest.raises(ValidationError):
            await lifecycle.cancel(project.id, "   ", owner)

        assert (await lifecycle.load_project(project.id)).status == ProjectStatus.ACTIVE

    async def test_cancel_draft(self, make_draft, lifecycle, owner):
        draft = await make_draft()

        cancelled = await lifecycle.cancel(draft.id, "Changed plans", owner)

        assert cancelled.status == ProjectStatus.CANCELLED
        assert cancelled.cancellation_reason == "Changed plans"

    async def test_cancel_active_rejects_pending_bids(self, make_active, place_bids, lifecycle, ledger, owner, store):
        project = await make_active()
        await place_bids(project.id, [100, 90, 95])

        cancelled = await lifecycle.cancel(project.id, "Budget cut", owner)

        assert cancelled.status == ProjectStatus.CANCELLED
        bids = await store.list_bids(project.id)
        assert len(bids) == 3
        assert all(bid["status"] == BidStatus.REJECTED.value for bid in bids)
        assert all(bid["rejection_reason"] == "Budget cut" for bid in bids)

    async def test_cancel_bidding_closed(self, make_active, place_bids, lifecycle, owner, store):
        project = await make_active()
        await place_bids(project.id, [100, 90])
        await lifecycle.close(project.id, owner)

        await lifecycle.cancel(project.id, "Site unavailable", owner)

        statuses = {bid["status"] for bid in await store.list_bids(project.id)}
        assert statuses == {BidStatus.REJECTED.value}

    async def test_cancel_awarded_reverts_accepted_bid(self, make_active, place_bids, lifecycle, ledger, owner, store, event_sink):
        project = await make_active()
        bids = await place_bids(project.id, [100, 90])
        await lifecycle.close(project.id, owner)
        await ledger.accept(project.id, bids[1].id, owner)

        cancelled = await lifecycle.cancel(project.id, "Contractor unavailable", owner)

        assert cancelled.status == ProjectStatus.CANCELLED
        assert cancelled.awarded_bid_id is None
        reverted = await ledger.load_bid(bids[1].id)
        assert reverted.status == BidStatus.REJECTED
        assert reverted.rejection_reason == "Contractor unavailable"
        assert not await store.list_bids(project.id, statuses=[BidStatus.PENDING.value, BidStatus.ACCEPTED.value])
        cancel_event = event_sink.events[-1]
        assert cancel_event.type == DomainEventType.PROJECT_CANCELLED
        assert cancel_event.payload["rejected_bid_ids"] == [bids[1].id]

    async def test_cancel_terminal_is_invalid(self, make_draft, lifecycle, owner):
        draft = await make_draft()
        await lifecycle.cancel(draft.id, "Changed plans", owner)

        with pytest.raises(InvalidStateTransition) as exc_info:
            await lifecycle.cancel(draft.id, "Again", owner)

        assert exc_info.value.current_state == "cancelled"

    async def test_admin_can_cancel(self, make_active, lifecycle, admin):
        project = await make_active()

        cancelled = await lifecycle.cancel(project.id, "Policy violation", admin)

        assert cancelled.status == ProjectStatus.CANCELLED


class TestAwardAndComplete:
    async def test_award_delegates_to_accept(self, make_active, place_bids, lifecycle, owner):
        project = await make_active()
        bids = await place_bids(project.id, [100, 90])
        await lifecycle.close(project.id, owner)

        awarded = await lifecycle.award(project.id, bids[1].id, owner)

        assert awarded.status == ProjectStatus.AWARDED
        assert awarded.awarded_bid_id == bids[1].id

    async def test_award_from_active_closes_bidding_first(self, make_active, place_bids, lifecycle, owner, event_sink):
        project = await make_active()
        bids = await place_bids(project.id, [100])

        awarded = await lifecycle.award(project.id, bids[0].id, owner)

        assert awarded.status == ProjectStatus.AWARDED
        assert event_sink.types()[-3:] == [
            DomainEventType.PROJECT_BIDDING_CLOSED,
            DomainEventType.BID_ACCEPTED,
            DomainEventType.PROJECT_AWARDED,
        ]

    async def test_award_refused_from_draft(self, make_draft, lifecycle, owner):
        draft = await make_draft()

        with pytest.raises(InvalidStateTransition):
            await lifecycle.award(draft.id, "missing-bid", owner)

    async def test_complete_awarded_project(self, make_active, place_bids, lifecycle, owner):
        project = await make_active()
        bids = await place_bids(project.id, [100])
        await lifecycle.close(project.id, owner)
        await lifecycle.award(project.id, bids[0].id, owner)

        completed = await lifecycle.complete(project.id, owner)

        assert completed.status == ProjectStatus.COMPLETED
        assert completed.is_terminal

    async def test_complete_requires_award(self, make_active, lifecycle, owner):
        project = await make_active()

        with pytest.raises(InvalidStateTransition):
            await lifecycle.complete(project.id, owner)


class TestExpire:
    async def test_admin_expires_active_project(self, make_active, place_bids, lifecycle, admin, store):
        project = await make_active()
        await place_bids(project.id, [100])

        expired = await lifecycle.expire(project.id, admin)

        assert expired.status == ProjectStatus.EXPIRED
        assert {bid["status"] for bid in await store.list_bids(project.id)} == {BidStatus.REJECTED.value}

    async def test_owner_cannot_expire(self, make_active, lifecycle, owner):
        project = await make_active()

        with pytest.raises(PermissionDeniedError):
            await lifecycle.expire(project.id, owner)


class TestUpdateStatus:
    async def test_dispatches_to_close(self, make_active, lifecycle, owner):
        project = await make_active()

        updated = await lifecycle.update_status(project.id, ProjectStatus.BIDDING_CLOSED, None, owner)

        assert updated.status == ProjectStatus.BIDDING_CLOSED

    async def test_cancel_through_dispatcher_needs_reason(self, make_active, lifecycle, owner):
        project = await make_active()

        with pytest.raises(ValidationError):
            await lifecycle.update_status(project.id, ProjectStatus.CANCELLED, None, owner)

    async def test_awarded_is_refused(self, make_active, lifecycle, owner):
        project = await make_active()

        with pytest.raises(ValidationError):
            await lifecycle.update_status(project.id, ProjectStatus.AWARDED, None, owner)

    async def test_back_to_draft_is_invalid(self, make_active, lifecycle, owner):
        project = await make_active()

        with pytest.raises(InvalidStateTransition):
            await lifecycle.update_status(project.id, ProjectStatus.DRAFT, None, owner)


class TestConditionalWrites:
    async def test_lost_status_race_raises_conflict(self, make_active, lifecycle, owner, store):
        project = await make_active()
        stale = await lifecycle.load_project(project.id)
        # another worker closes the project between our read and our write
        await store.update_project(project.id, {"status": ProjectStatus.BIDDING_CLOSED.value})

        with pytest.raises(ConflictError):
            await lifecycle._transition_locked(stale, ProjectStatus.CANCELLED, "cancel")

        assert (await lifecycle.load_project(project.id)).status == ProjectStatus.BIDDING_CLOSED

    async def test_budget_order_enforced_on_create(self, make_draft):
        with pytest.raises(ValidationError):
            await make_draft(budget_min=Decimal("10"), budget_max=Decimal("5"))
