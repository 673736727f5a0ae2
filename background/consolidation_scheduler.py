# background/consolidation_scheduler.py
"""
Consolidation Scheduler - time-based network maintenance.
Uses APScheduler for task scheduling.
"""
import logging
from datetime import datetime, timezone
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from config import Config
from mlm_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


class ConsolidationScheduler:
    """
    Background scheduler for a NetworkManager.

    Jobs:
    - Reward credit consolidation: monthly, CONSOLIDATION_CRON_DAY at 00:00 UTC
    - Pending write flush: every FLUSH_INTERVAL_SECONDS
    """

    def __init__(self, network):
        """
        Initialize scheduler.

        Args:
            network: Started NetworkManager
        """
        self.network = network
        self.isRunning = False

        self.scheduler = BackgroundScheduler(
            timezone='UTC',
            job_defaults={
                'coalesce': True,  # Combine missed runs into one
                'max_instances': 1,  # Only one instance of each job at a time
                'misfire_grace_time': 300  # 5 minutes grace period
            }
        )

        # Statistics
        self.stats = {
            "consolidations": 0,
            "flushedWrites": 0,
            "errors": 0,
            "lastError": None,
            "startedAt": None,
            "lastConsolidatedAt": None
        }

    def start(self):
        """Start scheduler with all jobs."""
        if self.isRunning:
            logger.warning("Consolidation Scheduler already running")
            return

        logger.info("=" * 60)
        logger.info("Starting Consolidation Scheduler with APScheduler")
        logger.info("=" * 60)

        self.isRunning = True
        self.stats["startedAt"] = datetime.now(timezone.utc)

        day = Config.get(Config.CONSOLIDATION_CRON_DAY, 1)
        interval = Config.get(Config.FLUSH_INTERVAL_SECONDS, 60)

        # ═══════════════════════════════════════════════════════════════
        # JOB 1: Monthly reward credit consolidation
        # ═══════════════════════════════════════════════════════════════
        self.scheduler.add_job(
            func=self._safe_consolidation_wrapper,
            trigger=CronTrigger(day=day, hour=0, minute=0),
            id='credit_consolidation',
            name='Reward Credit Consolidation',
            replace_existing=True
        )
        logger.info(f"✓ Job registered: Credit Consolidation (day {day}, 00:00 UTC)")

        # ═══════════════════════════════════════════════════════════════
        # JOB 2: Flush writes left pending by storage failures
        # ═══════════════════════════════════════════════════════════════
        self.scheduler.add_job(
            func=self._safe_flush_wrapper,
            trigger=IntervalTrigger(seconds=interval),
            id='pending_flush',
            name='Pending Write Flush',
            replace_existing=True
        )
        logger.info(f"✓ Job registered: Pending Flush (every {interval} seconds)")

        self.scheduler.start()

        logger.info("=" * 60)
        logger.info("✅ Consolidation Scheduler started successfully")
        logger.info(f"Active jobs: {len(self.scheduler.get_jobs())}")
        logger.info("=" * 60)

    def stop(self):
        """Stop scheduler gracefully."""
        if not self.isRunning:
            return

        logger.info("Stopping Consolidation Scheduler...")
        self.isRunning = False

        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)

        logger.info("✓ Consolidation Scheduler stopped")

    # ═══════════════════════════════════════════════════════════════════
    # SAFE WRAPPERS (error handling for APScheduler jobs)
    # ═══════════════════════════════════════════════════════════════════

    def _safe_consolidation_wrapper(self):
        """Safe wrapper for credit consolidation."""
        try:
            self.runConsolidation()
        except Exception as e:
            logger.error(f"Error in credit consolidation job: {e}", exc_info=True)
            self.stats["errors"] += 1
            self.stats["lastError"] = str(e)

    def _safe_flush_wrapper(self):
        """Safe wrapper for pending flush."""
        try:
            self.flushPending()
        except Exception as e:
            logger.error(f"Error in pending flush job: {e}", exc_info=True)
            self.stats["errors"] += 1
            self.stats["lastError"] = str(e)

    # ═══════════════════════════════════════════════════════════════════
    # JOBS
    # ═══════════════════════════════════════════════════════════════════

    def runConsolidation(self) -> dict:
        """Allocate reward credits for every node."""
        logger.info(f"Executing credit consolidation for {timeMachine.currentMonth}")

        summary = self.network.credits.allocateAll()

        self.stats["consolidations"] += 1
        self.stats["lastConsolidatedAt"] = datetime.now(timezone.utc)
        return summary

    def flushPending(self) -> int:
        """Retry writes that failed earlier."""
        if not self.network.store.hasPending:
            return 0

        flushed = self.network.store.flushPending(self.network.registry)
        self.stats["flushedWrites"] += flushed
        return flushed
