# background/mlm_scheduler.py
"""
MLM Scheduler - time-based ledger operations.
Uses APScheduler for task scheduling.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from config import Config
from core.db import get_db_session_ctx
from mlm_system.services.binary_matching_service import BinaryMatchingService
from mlm_system.services.booster_service import BoosterService

logger = logging.getLogger(__name__)


class MLMScheduler:
    """
    Background scheduler for ledger batch jobs.

    Jobs:
    - binary_matching: daily at BINARY_MATCHING_HOUR:00 UTC
    - booster_expiry: daily at 00:05 UTC
    """

    def __init__(self):
        self.isRunning = False

        # Create APScheduler instance
        self.scheduler = AsyncIOScheduler(
            timezone='UTC',
            job_defaults={
                'coalesce': True,  # Combine missed runs into one
                'max_instances': 1,  # Only one instance of each job at a time
                'misfire_grace_time': 300  # 5 minutes grace period
            }
        )

        # Statistics
        self.stats = {
            "tasksExecuted": 0,
            "errors": 0,
            "lastError": None,
            "startedAt": None,
            "lastExecutedAt": None,
            "lastBinaryRun": None,
            "lastExpiredBoosters": 0
        }

        self._jobs = {
            "binary_matching": self.runBinaryMatching,
            "booster_expiry": self.runBoosterExpiry,
        }

    def registerJobs(self):
        """Add cron jobs to the scheduler (idempotent)."""
        matching_hour = int(Config.get(Config.BINARY_MATCHING_HOUR, 0))

        # ═══════════════════════════════════════════════════════════════
        # JOB 1: Binary matching (daily)
        # ═══════════════════════════════════════════════════════════════
        self.scheduler.add_job(
            func=self._safe_binary_matching_wrapper,
            trigger=CronTrigger(hour=matching_hour, minute=0),
            id='binary_matching',
            name=f'Binary Matching ({matching_hour:02d}:00 UTC)',
            replace_existing=True
        )
        logger.info(f"✓ Job registered: Binary Matching ({matching_hour:02d}:00 UTC)")

        # ═══════════════════════════════════════════════════════════════
        # JOB 2: Booster expiry (daily at 00:05 UTC)
        # ═══════════════════════════════════════════════════════════════
        self.scheduler.add_job(
            func=self._safe_booster_expiry_wrapper,
            trigger=CronTrigger(hour=0, minute=5),
            id='booster_expiry',
            name='Booster Expiry (00:05 UTC)',
            replace_existing=True
        )
        logger.info("✓ Job registered: Booster Expiry (00:05 UTC)")

    async def start(self):
        """Start scheduler with all jobs."""
        if self.isRunning:
            logger.warning("MLM Scheduler already running")
            return

        logger.info("=" * 60)
        logger.info("Starting MLM Scheduler with APScheduler")
        logger.info("=" * 60)

        self.isRunning = True
        self.stats["startedAt"] = datetime.now(timezone.utc)

        self.registerJobs()
        self.scheduler.start()

        logger.info(f"✅ MLM Scheduler started, active jobs: {len(self.scheduler.get_jobs())}")

    async def stop(self):
        """Stop scheduler gracefully."""
        if not self.isRunning:
            return

        logger.info("Stopping MLM Scheduler...")
        self.isRunning = False

        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)

        logger.info("✓ MLM Scheduler stopped")

    async def runNow(self, jobName: str) -> Any:
        """
        Run a job immediately, outside its schedule.

        Raises:
            KeyError: Unknown job name
        """
        if jobName not in self._jobs:
            raise KeyError(f"Unknown job: {jobName}")

        logger.info(f"Manual run of job {jobName}")
        return await self._jobs[jobName]()

    # ═══════════════════════════════════════════════════════════════════
    # SAFE WRAPPERS (error handling for APScheduler jobs)
    # ═══════════════════════════════════════════════════════════════════

    async def _safe_binary_matching_wrapper(self):
        """Safe wrapper for binary matching."""
        try:
            await self.runBinaryMatching()
        except Exception as e:
            logger.error(f"Error in binary matching job: {e}", exc_info=True)
            self.stats["errors"] += 1
            self.stats["lastError"] = str(e)

    async def _safe_booster_expiry_wrapper(self):
        """Safe wrapper for booster expiry."""
        try:
            await self.runBoosterExpiry()
        except Exception as e:
            logger.error(f"Error in booster expiry job: {e}", exc_info=True)
            self.stats["errors"] += 1
            self.stats["lastError"] = str(e)

    # ═══════════════════════════════════════════════════════════════════
    # JOBS
    # ═══════════════════════════════════════════════════════════════════

    async def runBinaryMatching(self) -> Dict[str, Any]:
        """Run one binary matching pass over all users."""
        with get_db_session_ctx() as session:
            result = await BinaryMatchingService(session).runBinaryMatchingForAll()

        self._markExecuted()
        self.stats["lastBinaryRun"] = result
        logger.info(
            f"Binary matching job: {result['matched']}/{result['processed']} matched, "
            f"payout ${result['total_payout']}"
        )
        return result

    async def runBoosterExpiry(self) -> int:
        """Expire boosters whose window has closed."""
        with get_db_session_ctx() as session:
            expired = await BoosterService(session).expireBoostersDaily()

        self._markExecuted()
        self.stats["lastExpiredBoosters"] = expired
        logger.info(f"Booster expiry job: {expired} expired")
        return expired

    def _markExecuted(self):
        self.stats["tasksExecuted"] += 1
        self.stats["lastExecutedAt"] = datetime.now(timezone.utc)
