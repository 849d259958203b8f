from app.models.project_models import (
    ProjectCardResponse,
    ProjectCategory,
    ProjectDraftCreate,
    ProjectResponse,
    ProjectSortField,
    ProjectStatus,
    ProjectUpdate,
    SortOrder,
)
from app.models.bid_models import BidStatus
from app.models.user_models import Actor
from app.custom_error import DOMAIN_ERRORS, ConflictError, DatabaseError, InvalidStateTransition, NotFoundError, ServerError, ValidationError
from app.services.marketplace_base_services import DEFAULT_PAGE_SIZE, MarketplaceService, page_window
from app.services.project_lifecycle_services import validate_budget_and_deadline
from decimal import Decimal
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)


class ProjectService(MarketplaceService):
    # =====================================================================================================
    # CORE PROJECT CRUD OPERATIONS
    # =====================================================================================================

    async def create_project(self, actor: Actor, draft_data: ProjectDraftCreate) -> ProjectResponse:
        """Create a project in draft; it takes bids only after activation"""
        try:
            now = self.clock.now()
            validate_budget_and_deadline(draft_data.budget_min, draft_data.budget_max, draft_data.bidding_deadline, now)

            # Prepare project record
            project_record = draft_data.model_dump()
            project_record["owner_id"] = actor.id
            project_record["status"] = ProjectStatus.DRAFT.value
            project_record["created_at"] = now
            project_record["updated_at"] = now

            result = await self.store.insert_project(project_record)
            if not result:
                raise DatabaseError("Failed to create your project")

            project = ProjectResponse(**result)

            logger.info(f"✅ Project draft created: {project.id}")
            return project

        except Exception as e:
            logger.error(f"Error creating project - {str(e)}")
            if isinstance(e, DOMAIN_ERRORS):
                raise e
            raise ServerError("Failed to create your project")

    # --------------------------------------------------------------------------------------------------------------------------------------------

    async def update_project(self, actor: Actor, project_id: str, project_data: ProjectUpdate) -> ProjectResponse:
        """Edit a draft; once active only the deadline moves, through an extension"""
        try:
            async with self.project_locks.hold(project_id):
                project = await self.load_project(project_id)
                self.ensure_owner_or_admin(project, actor)

                if project.status != ProjectStatus.DRAFT:
                    raise InvalidStateTransition("project", project.status.value, "edit")

                updates = project_data.model_dump(exclude_none=True)
                merged = project.model_copy(update=updates)
                validate_budget_and_deadline(merged.budget_min, merged.budget_max, updates.get("bidding_deadline"), self.clock.now())

                updates["updated_at"] = self.clock.now()
                result = await self.store.update_project(project_id, updates, expected_statuses=[ProjectStatus.DRAFT.value])
                if not result:
                    raise ConflictError(f"Project {project_id} left draft while being edited; refetch and retry")

                updated_project = ProjectResponse(**result)

            logger.info(f"✅ Project updated: {project_id}")
            return updated_project

        except Exception as e:
            logger.error(f"Error updating project - {str(e)}")
            if isinstance(e, DOMAIN_ERRORS):
                raise e
            raise ServerError("Failed to update your project")

    # --------------------------------------------------------------------------------------------------------------------------------------------

    async def delete_project(self, actor: Actor, project_id: str) -> bool:
        """Delete a draft that never took bids; anything past draft is cancelled instead"""
        try:
            async with self.project_locks.hold(project_id):
                project = await self.load_project(project_id)
                self.ensure_owner_or_admin(project, actor)

                if project.status != ProjectStatus.DRAFT:
                    raise InvalidStateTransition("project", project.status.value, "delete")
                if await self.store.list_bids(project_id, limit=1):
                    raise ConflictError(f"Project {project_id} has bids and cannot be deleted")

                deleted = await self.store.delete_project(project_id, expected_statuses=[ProjectStatus.DRAFT.value])
                if not deleted:
                    raise ConflictError(f"Project {project_id} left draft while being deleted; refetch and retry")

            logger.info(f"✅ Project deleted: {project_id}")
            return True

        except Exception as e:
            logger.error(f"Error deleting project - {str(e)}")
            if isinstance(e, DOMAIN_ERRORS):
                raise e
            raise ServerError("Failed to delete your project")

    # =====================================================================================================
    # PROJECT READING OPERATIONS
    # =====================================================================================================

    async def get_project(self, project_id: str, actor: Optional[Actor] = None) -> ProjectResponse:
        """Anyone can read a published project; a draft is visible to its owner and admins only"""
        try:
            project = await self.load_project(project_id)
            if project.status == ProjectStatus.DRAFT:
                if actor is None or not (actor.is_admin or actor.id == project.owner_id):
                    raise NotFoundError("Project", project_id)
            return project

        except Exception as e:
            logger.error(f"Error fetching project - {str(e)}")
            if isinstance(e, DOMAIN_ERRORS):
                raise e
            raise ServerError("Failed to fetch project")

    # --------------------------------------------------------------------------------------------------------------------------------------------

    async def list_projects(
        self,
        status: Optional[ProjectStatus] = None,
        category: Optional[ProjectCategory] = None,
        location: Optional[str] = None,
        min_budget: Optional[Decimal] = None,
        max_budget: Optional[Decimal] = None,
        search: Optional[str] = None,
        sort_by: ProjectSortField = ProjectSortField.CREATED_AT,
        sort_order: SortOrder = SortOrder.DESC,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> List[ProjectCardResponse]:
        """Public browse; drafts are never listed and the default is projects open for bids"""
        try:
            if min_budget is not None and max_budget is not None and min_budget > max_budget:
                raise ValidationError("Minimum budget cannot exceed maximum budget")
            offset, limit = page_window(page, limit)

            if status == ProjectStatus.DRAFT:
                return []
            statuses = [(status or ProjectStatus.ACTIVE).value]

            records = await self.store.list_projects(
                statuses=statuses,
                category=category.value if category else None,
                location=location,
                min_budget=min_budget,
                max_budget=max_budget,
                search=search,
                sort_by=sort_by.value,
                descending=sort_order == SortOrder.DESC,
                offset=offset,
                limit=limit,
            )
            cards = [ProjectCardResponse(**record) for record in records]

            logger.info(f"✅ Retrieved {len(cards)} project cards")
            return cards

        except Exception as e:
            logger.error(f"Error listing projects - {str(e)}")
            if isinstance(e, DOMAIN_ERRORS):
                raise e
            raise ServerError("Failed to fetch projects")

    # --------------------------------------------------------------------------------------------------------------------------------------------

    async def list_owner_projects(
        self, actor: Actor, status: Optional[ProjectStatus] = None, page: int = 1, limit: int = DEFAULT_PAGE_SIZE
    ) -> List[ProjectResponse]:
        try:
            offset, limit = page_window(page, limit)
            statuses = [status.value] if status else None
            records = await self.store.list_projects(owner_id=actor.id, statuses=statuses, offset=offset, limit=limit)
            projects = [ProjectResponse(**record) for record in records]

            logger.info(f"✅ Retrieved {len(projects)} projects for owner {actor.id}")
            return projects

        except Exception as e:
            logger.error(f"Error listing owner projects - {str(e)}")
            if isinstance(e, DOMAIN_ERRORS):
                raise e
            raise ServerError("Failed to fetch your projects")

    # --------------------------------------------------------------------------------------------------------------------------------------------

    async def list_assigned_projects(
        self, actor: Actor, status: Optional[ProjectStatus] = None, page: int = 1, limit: int = DEFAULT_PAGE_SIZE
    ) -> List[ProjectResponse]:
        """Projects awarded to the contractor, i.e. the ones holding their accepted bid"""
        try:
            offset, limit = page_window(page, limit)
            accepted = await self.store.list_contractor_bids(actor.id, statuses=[BidStatus.ACCEPTED.value])
            project_ids = sorted({bid["project_id"] for bid in accepted})
            if not project_ids:
                return []

            statuses = [status.value] if status else None
            records = await self.store.list_projects(project_ids=project_ids, statuses=statuses, offset=offset, limit=limit)
            projects = [ProjectResponse(**record) for record in records]

            logger.info(f"✅ Retrieved {len(projects)} assigned projects for contractor {actor.id}")
            return projects

        except Exception as e:
            logger.error(f"Error listing assigned projects - {str(e)}")
            if isinstance(e, DOMAIN_ERRORS):
                raise e
            raise ServerError("Failed to fetch your assigned projects")
