"""Background scheduler for periodic position reconciliation."""
from __future__ import annotations

import logging
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from yieldway.config import settings
from yieldway.execution.reconciler import PositionReconciler

logger = logging.getLogger(__name__)


class ReconciliationScheduler:
    def __init__(
        self,
        reconciler_factory: Callable[[], PositionReconciler],
        interval_minutes: Optional[int] = None,
    ) -> None:
        self.scheduler = AsyncIOScheduler()
        self.reconciler_factory = reconciler_factory
        self.interval_minutes = interval_minutes or settings.reconcile_interval_minutes
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        logger.info("Starting reconciliation scheduler (every %s min)...", self.interval_minutes)
        self.scheduler.add_job(
            self._reconcile_all,
            IntervalTrigger(minutes=self.interval_minutes),
            id="reconcile_positions",
            name="Position Reconciliation",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        self._running = True
        logger.info("Scheduler started")

    async def stop(self) -> None:
        if not self._running:
            return
        logger.info("Stopping scheduler...")
        self.scheduler.shutdown(wait=False)
        self._running = False

    async def _reconcile_all(self) -> dict:
        logger.debug("Running reconciliation sweep...")
        try:
            reconciler = self.reconciler_factory()
            summary = await reconciler.reconcile_all()
        except Exception as exc:
            logger.exception("Reconciliation sweep failed: %s", exc)
            return {"status": "error", "error": str(exc)}
        logger.info(
            "Reconciliation sweep: %d users, %d created, %d updated, %d failed",
            summary["users"],
            summary["created"],
            summary["updated"],
            summary["failed"],
        )
        return summary


_scheduler: Optional[ReconciliationScheduler] = None


def get_reconciliation_scheduler() -> ReconciliationScheduler:
    global _scheduler
    if _scheduler is None:
        from yieldway.services.dependencies import get_reconciler

        _scheduler = ReconciliationScheduler(get_reconciler)
    return _scheduler
