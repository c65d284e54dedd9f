"""
Maintenance Scheduler — periodic pruning on an independent timer.

Jobs:
1. Prune admission state (expired counters, blocks, suspicion histories)
2. Expire Verification Records and empty pre-screen attempt ledgers

Each job takes the component's own locks; pruning never mutates a window
that a live check is holding.
"""

from typing import Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from verigate.admission.limiter import AdmissionLimiter
from verigate.validation.engine import CrossSourceValidator

logger = structlog.get_logger(__name__)

PRUNE_INTERVAL_SECONDS: int = 300


class MaintenanceScheduler:
    """Background pruning for the admission limiter and the validator."""

    def __init__(
        self,
        limiter: AdmissionLimiter,
        validator: Optional[CrossSourceValidator] = None,
        interval_seconds: int = PRUNE_INTERVAL_SECONDS,
    ):
        self.limiter = limiter
        self.validator = validator
        self.interval_seconds = interval_seconds
        self.scheduler = AsyncIOScheduler()

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self):
        """Register and start all maintenance jobs."""
        self.scheduler.add_job(
            self.prune_admission,
            IntervalTrigger(seconds=self.interval_seconds),
            id="prune_admission",
            max_instances=1,
            replace_existing=True,
        )
        if self.validator is not None:
            self.scheduler.add_job(
                self.expire_verifications,
                IntervalTrigger(seconds=self.interval_seconds),
                id="expire_verifications",
                max_instances=1,
                replace_existing=True,
            )
        self.scheduler.start()
        logger.info("maintenance_scheduler_started", interval_seconds=self.interval_seconds)

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("maintenance_scheduler_stopped")

    async def prune_admission(self) -> None:
        try:
            report = self.limiter.prune()
        except Exception as e:
            logger.error("admission_prune_failed", error=str(e))
            return
        logger.info(
            "admission_prune_completed",
            counters_removed=report.counters_removed,
            blocks_removed=report.blocks_removed,
            histories_removed=report.histories_removed,
        )

    async def expire_verifications(self) -> None:
        try:
            expired = self.validator.cleanup_expired()
        except Exception as e:
            logger.error("verification_expiry_failed", error=str(e))
            return
        logger.info("verification_expiry_completed", expired=expired)

    async def run_once(self) -> None:
        """Run every job immediately, outside the timer."""
        await self.prune_admission()
        if self.validator is not None:
            await self.expire_verifications()
