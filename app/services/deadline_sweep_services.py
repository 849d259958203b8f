from pydantic import BaseModel, Field
from app.models.project_models import ProjectStatus
from app.services.project_lifecycle_services import ProjectLifecycle
from datetime import timedelta
from typing import List
import asyncio
import logging

logger = logging.getLogger(__name__)


class SweepReport(BaseModel):
    closed: List[str] = Field(default_factory=list)
    expired: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)

    @property
    def touched(self) -> int:
        return len(self.closed) + len(self.expired)


class DeadlineSweeper:
    """Periodic task applying the time-driven transitions (close at deadline, expire unawarded)"""

    def __init__(self, lifecycle: ProjectLifecycle, interval_seconds: int, award_window_days: int):
        self.lifecycle = lifecycle
        self.interval_seconds = interval_seconds
        self.award_window = timedelta(days=award_window_days)

    async def sweep_once(self) -> SweepReport:
        report = SweepReport()
        now = self.lifecycle.clock.now()
        candidates = await self.lifecycle.store.list_projects_due_for_sweep(now, self.award_window)

        for candidate in candidates:
            project_id = candidate["id"]
            try:
                # status is re-read under the project lock, so a project awarded meanwhile is left alone
                result = await self.lifecycle.apply_deadline(project_id, self.award_window)
            except Exception as e:
                logger.error(f"Error sweeping project {project_id}: {str(e)}")
                report.failed.append(project_id)
                continue

            if result is None:
                continue
            if result.status == ProjectStatus.BIDDING_CLOSED:
                report.closed.append(project_id)
            elif result.status == ProjectStatus.EXPIRED:
                report.expired.append(project_id)

        if report.touched or report.failed:
            logger.info(f"✅ Deadline sweep: {len(report.closed)} closed, {len(report.expired)} expired, {len(report.failed)} failed")
        return report

    async def run_forever(self) -> None:
        while True:
            try:
                await self.sweep_once()
            except Exception as e:
                logger.error(f"Error in deadline sweep: {str(e)}")
            await asyncio.sleep(self.interval_seconds)
