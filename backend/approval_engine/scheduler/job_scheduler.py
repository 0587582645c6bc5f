"""Job Scheduler - Periodic batch grouping, retention and notification delivery

Jobs:
- Batch grouping sweep over every organization with pending inspections
- Retention sweep clearing batch tags of long-finalized inspections
- Delivery of pending outbox notifications

Each job method can also be awaited directly for manual runs and tests.
"""
from typing import List, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ..config.settings import settings
from ..domain.models import GroupingSweepResult
from ..repositories.inspection_repo import InspectionRepository
from ..services.batch_service import BatchService
from ..services.notification_service import NotificationService
from ..utils.logger import get_logger, set_correlation_id
from ..utils.idgen import generate_correlation_id
from ..utils.time import utc_now

logger = get_logger(__name__)


class JobScheduler:
    """
    Scheduler for the approval engine's background sweeps

    Every sweep is safe to run concurrently with request handling and with
    another server's scheduler: all writes are conditional updates.
    """

    def __init__(self):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.inspection_repo = InspectionRepository()
        self.notification_service = NotificationService()
        self.batch_service = BatchService(notification_service=self.notification_service)
        self._is_running = False

    def start(self) -> None:
        """Start the scheduler"""
        if self._is_running:
            logger.warning("Scheduler already running")
            return

        self.scheduler = AsyncIOScheduler(timezone="UTC")

        self.scheduler.add_job(
            self.run_grouping_sweep,
            trigger=CronTrigger.from_crontab(settings.batch_grouping_cron, timezone="UTC"),
            id="batch_grouping_sweep",
            name="Group pending routine inspections into batches",
            replace_existing=True
        )

        self.scheduler.add_job(
            self.run_retention_sweep,
            trigger=CronTrigger.from_crontab(settings.retention_sweep_cron, timezone="UTC"),
            id="batch_retention_sweep",
            name="Clear expired batch tags",
            replace_existing=True
        )

        self.scheduler.add_job(
            self.dispatch_notifications,
            trigger=IntervalTrigger(seconds=settings.notification_dispatch_interval_seconds),
            id="dispatch_notifications",
            name="Deliver pending notifications",
            replace_existing=True
        )

        self.scheduler.start()
        self._is_running = True
        logger.info(
            "Scheduler started",
            extra={"job": "scheduler"}
        )

    def stop(self) -> None:
        """Stop the scheduler"""
        if self.scheduler:
            self.scheduler.shutdown()
            self._is_running = False
            logger.info("Scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running"""
        return self._is_running

    async def run_grouping_sweep(self) -> List[GroupingSweepResult]:
        """
        Run the batch grouping sweep for every organization with pending work

        A failing organization is logged and skipped; the others still run.
        """
        set_correlation_id(generate_correlation_id())
        start_time = utc_now()
        results: List[GroupingSweepResult] = []

        try:
            organization_ids = self.inspection_repo.list_organizations_with_pending()
        except Exception as e:
            logger.error(f"Could not list organizations for grouping: {e}", extra={"job": "batch_grouping_sweep"})
            return results

        for organization_id in organization_ids:
            try:
                results.append(self.batch_service.run_batch_grouping_sweep(organization_id))
            except Exception as e:
                logger.error(
                    f"Batch grouping failed for organization: {e}",
                    extra={"organization_id": organization_id, "job": "batch_grouping_sweep"}
                )

        elapsed_ms = (utc_now() - start_time).total_seconds() * 1000
        logger.info(
            f"Batch grouping sweep finished: {sum(r.batches_formed for r in results)} batches, "
            f"{sum(r.inspections_grouped for r in results)} inspections in {elapsed_ms:.0f}ms",
            extra={"job": "batch_grouping_sweep"}
        )
        return results

    async def run_retention_sweep(self) -> int:
        """Clear batch tags older than the configured retention"""
        set_correlation_id(generate_correlation_id())
        try:
            return self.batch_service.run_retention_sweep()
        except Exception as e:
            logger.error(f"Retention sweep failed: {e}", extra={"job": "batch_retention_sweep"})
            return 0

    async def dispatch_notifications(self) -> int:
        """Deliver pending notifications; returns the number sent"""
        set_correlation_id(generate_correlation_id())
        try:
            summary = await self.notification_service.dispatch_pending(limit=50)
            return summary["sent"]
        except Exception as e:
            logger.error(f"Notification dispatch failed: {e}", extra={"job": "dispatch_notifications"})
            return 0


# Global scheduler instance
_scheduler: Optional[JobScheduler] = None


def get_scheduler() -> JobScheduler:
    """Get or create scheduler instance"""
    global _scheduler
    if _scheduler is None:
        _scheduler = JobScheduler()
    return _scheduler


def start_scheduler() -> None:
    """Start the global scheduler"""
    scheduler = get_scheduler()
    scheduler.start()


def stop_scheduler() -> None:
    """Stop the global scheduler"""
    global _scheduler
    if _scheduler:
        _scheduler.stop()
        _scheduler = None
