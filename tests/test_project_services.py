from datetime import timedelta
from decimal import Decimal

import pytest

from app.custom_error import InvalidStateTransition, NotFoundError, PermissionDeniedError, ValidationError
from app.models.project_models import ProjectCategory, ProjectSortField, ProjectStatus, ProjectUpdate, SortOrder


class TestProjectService:
    async def test_update_draft(self, make_draft, project_service, owner):
        draft = await make_draft()

        updated = await project_service.update_project(owner, draft.id, ProjectUpdate(title="Bigger kitchen", budget_max=Decimal("15000")))

        assert updated.title == "Bigger kitchen"
        assert updated.budget_max == Decimal("15000")
        assert updated.description == draft.description

    async def test_update_cannot_invert_budget(self, make_draft, project_service, owner):
        draft = await make_draft()

        with pytest.raises(ValidationError):
            await project_service.update_project(owner, draft.id, ProjectUpdate(budget_max=Decimal("100")))

    async def test_update_past_deadline(self, make_draft, project_service, owner, clock):
        draft = await make_draft()

        with pytest.raises(ValidationError):
            await project_service.update_project(owner, draft.id, ProjectUpdate(bidding_deadline=clock.now() - timedelta(days=1)))

    async def test_update_by_stranger(self, make_draft, project_service, other_owner):
        draft = await make_draft()

        with pytest.raises(PermissionDeniedError):
            await project_service.update_project(other_owner, draft.id, ProjectUpdate(title="Mine now"))

    async def test_update_active_refused(self, make_active, project_service, owner):
        project = await make_active()

        with pytest.raises(InvalidStateTransition):
            await project_service.update_project(owner, project.id, ProjectUpdate(title="Too late"))

    async def test_create_with_past_deadline(self, make_draft, clock):
        with pytest.raises(ValidationError):
            await make_draft(bidding_deadline=clock.now())

    async def test_list_defaults_to_active(self, make_draft, make_active, project_service):
        await make_draft(title="Still a draft")
        active = await make_active(title="Open for bids")

        cards = await project_service.list_projects()

        assert [card.id for card in cards] == [active.id]

    async def test_list_never_shows_drafts(self, make_draft, project_service):
        await make_draft()

        assert await project_service.list_projects(ProjectStatus.DRAFT) == []

    async def test_list_filters(self, make_active, project_service):
        await make_active(category=ProjectCategory.COMMERCIAL, location="Business Bay")
        marina = await make_active(category=ProjectCategory.RENOVATION, location="Dubai Marina")

        by_category = await project_service.list_projects(category=ProjectCategory.RENOVATION)
        by_location = await project_service.list_projects(location="marina")

        assert [card.id for card in by_category] == [marina.id]
        assert [card.id for card in by_location] == [marina.id]

    async def test_owner_projects(self, make_draft, make_active, project_service, owner, other_owner):
        await make_draft()
        await make_active()

        assert len(await project_service.list_owner_projects(owner)) == 2
        assert len(await project_service.list_owner_projects(owner, ProjectStatus.ACTIVE)) == 1
        assert await project_service.list_owner_projects(other_owner) == []

    async def test_get_missing(self, project_service):
        with pytest.raises(NotFoundError):
            await project_service.get_project("missing")

    async def test_draft_visible_to_owner_and_admin_only(self, make_draft, project_service, owner, other_owner, admin, contractor):
        draft = await make_draft()

        assert (await project_service.get_project(draft.id, owner)).id == draft.id
        assert (await project_service.get_project(draft.id, admin)).id == draft.id
        for viewer in (None, other_owner, contractor):
            with pytest.raises(NotFoundError):
                await project_service.get_project(draft.id, viewer)

    async def test_active_visible_to_anyone(self, make_active, project_service, contractor):
        project = await make_active()

        assert (await project_service.get_project(project.id)).id == project.id
        assert (await project_service.get_project(project.id, contractor)).id == project.id


class TestProjectBrowsing:
    async def test_budget_filters_match_overlapping_ranges(self, make_active, project_service):
        small = await make_active(title="Fence repair", budget_min=Decimal("5000"), budget_max=Decimal("12000"))
        large = await make_active(title="Villa extension", budget_min=Decimal("20000"), budget_max=Decimal("45000"))

        above = await project_service.list_projects(min_budget=Decimal("15000"))
        below = await project_service.list_projects(max_budget=Decimal("10000"))
        between = await project_service.list_projects(min_budget=Decimal("10000"), max_budget=Decimal("25000"))

        assert [card.id for card in above] == [large.id]
        assert [card.id for card in below] == [small.id]
        assert sorted(card.id for card in between) == sorted([small.id, large.id])

    async def test_inverted_budget_filter(self, project_service):
        with pytest.raises(ValidationError):
            await project_service.list_projects(min_budget=Decimal("500"), max_budget=Decimal("100"))

    async def test_search_title_and_description(self, make_active, project_service):
        roof = await make_active(title="Roof repair", description="Replace broken tiles")
        leak = await make_active(title="Bathroom", description="Leak under the ROOF terrace")
        await make_active(title="Kitchen", description="New cabinets")

        found = await project_service.list_projects(search="roof")

        assert sorted(card.id for card in found) == sorted([roof.id, leak.id])

    async def test_sort_by_budget(self, make_active, project_service):
        cheap = await make_active(budget_min=Decimal("1000"), budget_max=Decimal("2000"))
        pricey = await make_active(budget_min=Decimal("9000"), budget_max=Decimal("12000"))

        ascending = await project_service.list_projects(sort_by=ProjectSortField.BUDGET_MIN, sort_order=SortOrder.ASC)
        descending = await project_service.list_projects(sort_by=ProjectSortField.BUDGET_MIN, sort_order=SortOrder.DESC)

        assert [card.id for card in ascending] == [cheap.id, pricey.id]
        assert [card.id for card in descending] == [pricey.id, cheap.id]

    async def test_newest_first_in_pages(self, make_active, project_service, clock):
        created = []
        for title in ("First", "Second", "Third"):
            created.append(await make_active(title=title))
            clock.advance(minutes=5)

        first_page = await project_service.list_projects(limit=2)
        second_page = await project_service.list_projects(page=2, limit=2)

        assert [card.title for card in first_page] == ["Third", "Second"]
        assert [card.title for card in second_page] == ["First"]

    async def test_owner_projects_paged(self, make_draft, project_service, owner):
        for _ in range(3):
            await make_draft()

        assert len(await project_service.list_owner_projects(owner, page=1, limit=2)) == 2
        assert len(await project_service.list_owner_projects(owner, page=2, limit=2)) == 1


class TestAssignedProjects:
    async def test_only_projects_with_accepted_bid(self, make_active, place_bids, ledger, project_service, owner, contractors):
        awarded = await make_active(title="Awarded job")
        still_open = await make_active(title="Open job")
        awarded_bids = await place_bids(awarded.id, [100, 90])
        await place_bids(still_open.id, [80])
        await ledger.accept(awarded.id, awarded_bids[0].id, owner)

        mine = await project_service.list_assigned_projects(contractors[0])
        losers = await project_service.list_assigned_projects(contractors[1])

        assert [project.id for project in mine] == [awarded.id]
        assert mine[0].status == ProjectStatus.AWARDED
        assert losers == []

    async def test_cancelled_award_drops_out(self, make_active, place_bids, ledger, lifecycle, project_service, owner, contractor):
        project = await make_active()
        bids = await place_bids(project.id, [100])
        await ledger.accept(project.id, bids[0].id, owner)

        await lifecycle.cancel(project.id, "Owner moved abroad", owner)

        assert await project_service.list_assigned_projects(contractor) == []


class TestDeleteProject:
    async def test_delete_draft(self, make_draft, project_service, owner, store):
        draft = await make_draft()

        assert await project_service.delete_project(owner, draft.id) is True
        assert draft.id not in store.projects

    async def test_admin_can_delete(self, make_draft, project_service, admin, store):
        draft = await make_draft()

        await project_service.delete_project(admin, draft.id)

        assert draft.id not in store.projects

    async def test_stranger_cannot_delete(self, make_draft, project_service, other_owner, store):
        draft = await make_draft()

        with pytest.raises(PermissionDeniedError):
            await project_service.delete_project(other_owner, draft.id)
        assert draft.id in store.projects

    async def test_published_project_is_not_deleted(self, make_active, project_service, owner, store):
        project = await make_active()

        with pytest.raises(InvalidStateTransition):
            await project_service.delete_project(owner, project.id)
        assert project.id in store.projects

    async def test_delete_missing(self, project_service, owner):
        with pytest.raises(NotFoundError):
            await project_service.delete_project(owner, "missing")
