import os

# settings are read when app.configs.app_settings is first imported
os.environ.setdefault("CLERK_JWKS_URL", "https://clerk.example.test/.well-known/jwks.json")
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["DEADLINE_SWEEP_ENABLED"] = "false"
os.environ.pop("RESEND_API_KEY", None)

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List

import pytest

from app.models.bid_models import BidCreate
from app.models.event_models import DomainEvent, DomainEventType
from app.models.project_models import ProjectCategory, ProjectDraftCreate
from app.models.user_models import Actor, UserRole
from app.services.bid_ledger_services import BidLedger
from app.services.event_sink_services import EventSink
from app.services.project_lifecycle_services import ProjectLifecycle
from app.services.project_services import ProjectService
from app.stores.memory_store import MemoryMarketplaceStore
from app.utils.clock import FixedClock
from app.utils.project_locks import ProjectLockRegistry

START = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class RecordingEventSink(EventSink):
    """Keeps every published event so tests can assert on what was emitted"""

    def __init__(self):
        self.events: List[DomainEvent] = []

    async def publish(self, event: DomainEvent) -> None:
        self.events.append(event)

    def types(self) -> List[DomainEventType]:
        return [event.type for event in self.events]


@pytest.fixture
def store():
    return MemoryMarketplaceStore()


@pytest.fixture
def clock():
    return FixedClock(START)


@pytest.fixture
def event_sink():
    return RecordingEventSink()


@pytest.fixture
def make_recording_sink():
    return RecordingEventSink


@pytest.fixture
def project_locks():
    return ProjectLockRegistry()


@pytest.fixture
def project_service(store, clock, event_sink, project_locks):
    return ProjectService(store, clock, event_sink, project_locks)


@pytest.fixture
def lifecycle(store, clock, event_sink, project_locks):
    return ProjectLifecycle(store, clock, event_sink, project_locks)


@pytest.fixture
def ledger(store, clock, event_sink, project_locks):
    return BidLedger(store, clock, event_sink, project_locks)


@pytest.fixture
def owner():
    return Actor(id="owner-1", role=UserRole.HOMEOWNER)


@pytest.fixture
def other_owner():
    return Actor(id="owner-2", role=UserRole.HOMEOWNER)


@pytest.fixture
def admin():
    return Actor(id="admin-1", role=UserRole.ADMIN)


@pytest.fixture
def contractors():
    return [Actor(id=f"contractor-{i}", role=UserRole.CONTRACTOR) for i in range(1, 9)]


@pytest.fixture
def contractor(contractors):
    return contractors[0]


def complete_draft(clock, **overrides) -> ProjectDraftCreate:
    fields = dict(
        title="Kitchen renovation",
        description="Replace cabinets and countertops",
        category=ProjectCategory.RENOVATION,
        location="Dubai Marina",
        budget_min=Decimal("5000"),
        budget_max=Decimal("12000"),
        bidding_deadline=clock.now() + timedelta(days=7),
        requirements=["Licensed", "Insured"],
    )
    fields.update(overrides)
    return ProjectDraftCreate(**fields)


@pytest.fixture
def make_draft(project_service, clock, owner):
    async def _make_draft(**overrides):
        return await project_service.create_project(owner, complete_draft(clock, **overrides))

    return _make_draft


@pytest.fixture
def make_active(make_draft, lifecycle, owner):
    async def _make_active(**overrides):
        draft = await make_draft(**overrides)
        return await lifecycle.activate(draft.id, owner)

    return _make_active


@pytest.fixture
def place_bids(ledger, contractors):
    """Submit one bid per amount, each from a different contractor"""

    async def _place_bids(project_id, amounts):
        bids = []
        for contractor, amount in zip(contractors, amounts):
            bid = await ledger.submit(project_id, BidCreate(amount=Decimal(str(amount)), timeline_days=30), contractor)
            bids.append(bid)
        return bids

    return _place_bids
