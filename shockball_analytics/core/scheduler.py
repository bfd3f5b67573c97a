"""
Automated sync scheduler for the Shockball analytics service.

Jobs:
- Match sync every SYNC_INTERVAL_MINUTES (default 15)
- Full rescan daily at FULL_RESCAN_HOUR UTC: ignores conditional tokens and
  backfills completed tracked-team matches still missing replay data

Scheduler: APScheduler (lightweight, FastAPI-compatible)
"""
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from shockball_analytics.core import metrics
from shockball_analytics.core.config import settings
from shockball_analytics.core.database import SessionLocal
from shockball_analytics.core.logging import get_logger
from shockball_analytics.services.sync.orchestrator import SyncOrchestrator

logger = get_logger(__name__)


async def run_sync_job(full_rescan: bool = False) -> None:
    """One scheduled sync run with its own session and HTTP client."""
    db = SessionLocal()
    orchestrator = SyncOrchestrator(db)
    try:
        result = await orchestrator.sync_matches(full_rescan=full_rescan)
        logger.info(
            f"Match sync job: {result['upcoming_count']} upcoming, {result['recent_count']} recent, "
            f"{result['replays_queued']} replays, {result['error_count']} errors"
        )
    except Exception as e:
        logger.error(f"Match sync job failed: {e}", exc_info=True)
    finally:
        await orchestrator.close()
        db.close()


class AutomationScheduler:
    """
    Main scheduler for the periodic sync jobs.

    Both jobs share ``max_instances=1`` and ``coalesce=True`` so a slow run
    is never overlapped by the next tick of the same job.
    """

    def __init__(self):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.running = False

    async def start(self):
        """Start the scheduler."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        logger.info("Starting sync scheduler...")

        self.scheduler = AsyncIOScheduler(
            timezone="UTC",
            job_defaults={
                "coalesce": True,  # Combine missed runs into one
                "max_instances": 1,
                "misfire_grace_time": 300,
            },
        )

        self._schedule_match_sync()
        self._schedule_full_rescan()

        self.scheduler.start()
        self.running = True
        metrics.update_scheduler_metrics()

        logger.info("Scheduler started with %d jobs", len(self.scheduler.get_jobs()))
        self._log_scheduled_jobs()

    async def stop(self):
        """Stop the scheduler."""
        if not self.running:
            return

        logger.info("Stopping scheduler...")
        self.scheduler.shutdown(wait=True)
        self.running = False
        logger.info("Scheduler stopped")

    def _schedule_match_sync(self):
        """
        Schedule: Poll upcoming/recent listings and backfill replays.

        Frequency: Every SYNC_INTERVAL_MINUTES
        Cost: unchanged listings come back as free 304s
        """
        if self.scheduler is None:
            return

        self.scheduler.add_job(
            run_sync_job,
            trigger=IntervalTrigger(minutes=settings.SYNC_INTERVAL_MINUTES),
            id="match_sync",
            name="Sync Shockball Matches",
        )
        logger.info(f"Scheduled: Match sync (every {settings.SYNC_INTERVAL_MINUTES} minutes)")

    def _schedule_full_rescan(self):
        """
        Schedule: Full rescan.

        Frequency: Daily at FULL_RESCAN_HOUR:00 UTC
        Purpose: Catch tracked-team matches whose replay fetch failed while
        the recent listing kept answering 304
        """
        if self.scheduler is None:
            return

        self.scheduler.add_job(
            run_sync_job,
            trigger=CronTrigger(hour=settings.FULL_RESCAN_HOUR, minute=0, timezone="UTC"),
            kwargs={"full_rescan": True},
            id="full_rescan",
            name="Full Shockball Rescan",
            misfire_grace_time=3600,
        )
        logger.info(f"Scheduled: Full rescan (daily at {settings.FULL_RESCAN_HOUR:02d}:00 UTC)")

    def _log_scheduled_jobs(self):
        """Log all scheduled jobs for visibility."""
        for job in self.scheduler.get_jobs():
            next_run = job.next_run_time
            next_run_str = next_run.strftime("%Y-%m-%d %H:%M UTC") if next_run else "Pending"
            logger.info(f"  {job.name} ({job.id}) next run: {next_run_str}")


# Global scheduler instance
_scheduler: Optional[AutomationScheduler] = None


async def start_scheduler():
    """Start the global scheduler."""
    global _scheduler
    if _scheduler is None:
        _scheduler = AutomationScheduler()
        await _scheduler.start()
    return _scheduler


async def stop_scheduler():
    """Stop the global scheduler."""
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None
    metrics.update_scheduler_metrics()


def get_scheduler() -> Optional[AutomationScheduler]:
    """Get the global scheduler instance."""
    return _scheduler
