#!/usr/bin/env python3
"""
Background runner for the Shockball sync scheduler.

Runs the APScheduler jobs as a standalone service, separate from the API
process (set SCHEDULER_ENABLED=false on the API when using this).

Usage:
    python run_scheduler.py               # Run in foreground
    python run_scheduler.py --list-jobs   # Show jobs and next run times
    python run_scheduler.py --trigger match_sync
"""
import argparse
import asyncio
import signal
import sys

from shockball_analytics.core.config import settings
from shockball_analytics.core.logging import configure_logging, get_logger
from shockball_analytics.core.scheduler import AutomationScheduler

logger = get_logger(__name__)


class SchedulerRunner:
    """Runner for the sync scheduler."""

    def __init__(self):
        self.scheduler: AutomationScheduler = None
        self.shutdown = False

    async def start(self):
        """Start the scheduler and run until shutdown."""
        logger.info("Starting scheduler runner...")

        self.scheduler = AutomationScheduler()
        await self.scheduler.start()

        logger.info("Scheduler is now running. Press Ctrl+C to stop")

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._set_shutdown)

        while not self.shutdown:
            await asyncio.sleep(1)

        await self.scheduler.stop()
        logger.info("Scheduler runner stopped")

    def _set_shutdown(self):
        logger.info("Shutdown signal received")
        self.shutdown = True


async def run_list_jobs() -> bool:
    """Start the scheduler briefly to print its jobs."""
    scheduler = AutomationScheduler()
    await scheduler.start()
    try:
        for job in scheduler.scheduler.get_jobs():
            next_run = job.next_run_time
            next_run_str = next_run.strftime("%Y-%m-%d %H:%M UTC") if next_run else "Pending"
            print(f"{job.id:<14} {job.name:<28} next run: {next_run_str}")
    finally:
        await scheduler.stop()
    return True


async def run_trigger_job(job_id: str) -> bool:
    """Run one job immediately, outside its schedule."""
    scheduler = AutomationScheduler()
    await scheduler.start()
    try:
        job = scheduler.scheduler.get_job(job_id)
        if job is None:
            print(f"Job '{job_id}' not found")
            return False

        print(f"Triggering job: {job.name}")
        await job.func(*job.args, **job.kwargs)
        print(f"Job '{job_id}' finished")
        return True
    finally:
        await scheduler.stop()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Run the Shockball sync scheduler")
    parser.add_argument(
        "--list-jobs",
        action="store_true",
        help="List scheduled jobs and exit",
    )
    parser.add_argument(
        "--trigger",
        type=str,
        metavar="JOB_ID",
        help="Run a job immediately (match_sync or full_rescan)",
    )
    args = parser.parse_args()

    configure_logging(level=settings.LOG_LEVEL, json_output=settings.LOG_JSON)

    if args.list_jobs:
        asyncio.run(run_list_jobs())
        return 0

    if args.trigger:
        return 0 if asyncio.run(run_trigger_job(args.trigger)) else 1

    runner = SchedulerRunner()
    try:
        asyncio.run(runner.start())
    except KeyboardInterrupt:
        logger.info("Received interrupt, shutting down...")
    except Exception as e:
        logger.error(f"Scheduler error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
