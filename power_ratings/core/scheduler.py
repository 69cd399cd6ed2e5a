"""
Automated task scheduler for the power ratings service.

This module provides scheduled background jobs for:
- The daily ratings sync for the current season

Scheduler: APScheduler (lightweight, FastAPI-compatible)
"""
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from power_ratings.core.config import settings
from power_ratings.core.database import SessionLocal
from power_ratings.core.logging import get_logger
from power_ratings.services.ratings.closing_lines import ClosingLineCache
from power_ratings.services.ratings.exceptions import RunInProgressError
from power_ratings.services.ratings.orchestrator import RatingsSyncOrchestrator

logger = get_logger(__name__)


class AutomationScheduler:
    """
    Main scheduler for automated background tasks.

    All scheduled jobs should be defined here with clear
    schedules and error handling.

    Args:
        cache: ClosingLineCache shared with the API's runs
    """

    def __init__(self, cache: Optional[ClosingLineCache] = None):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.running = False
        self.cache = cache if cache is not None else ClosingLineCache()

    async def start(self):
        """Start the scheduler."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        logger.info("Starting automation scheduler...")

        self.scheduler = AsyncIOScheduler(
            timezone=settings.SCHEDULER_TIMEZONE,
            job_defaults={
                'coalesce': True,  # Combine missed runs into one
                'max_instances': 1,
                'misfire_grace_time': 300
            }
        )

        self._schedule_daily_sync()

        self.scheduler.start()
        self.running = True

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

    def _schedule_daily_sync(self):
        """
        Schedule: Sync completed games into the ratings.

        Frequency: Daily at DAILY_SYNC_HOUR (default 6AM CT)
        Purpose: Apply yesterday's closing lines before the day's slate
        """
        if self.scheduler is None:
            return

        @self.scheduler.scheduled_job(
            trigger=CronTrigger(
                hour=settings.DAILY_SYNC_HOUR,
                minute=0,
                timezone=settings.SCHEDULER_TIMEZONE
            ),
            id='ratings_daily_sync',
            name='Daily Ratings Sync',
            misfire_grace_time=3600
        )
        async def daily_ratings_sync():
            await run_daily_sync(self.cache)

        logger.info(
            f"Scheduled: Ratings sync (daily {settings.DAILY_SYNC_HOUR}:00 "
            f"{settings.SCHEDULER_TIMEZONE})"
        )

    def _log_scheduled_jobs(self):
        """Log all scheduled jobs for visibility."""
        for job in self.scheduler.get_jobs():
            next_run = job.next_run_time
            next_run_str = next_run.strftime('%Y-%m-%d %I:%M %p %Z') if next_run else 'Pending'
            logger.info(f"  • {job.name} (id={job.id}, next run: {next_run_str})")


async def run_daily_sync(cache: Optional[ClosingLineCache] = None, season: Optional[int] = None) -> Optional[dict]:
    """
    Run one scheduled sync for the current season.

    Errors are logged and not raised.
    """
    season = season or settings.CURRENT_SEASON
    db = SessionLocal()
    orchestrator = RatingsSyncOrchestrator(db, cache=cache)
    try:
        result = await orchestrator.sync(season)
        if result['success']:
            logger.info(
                f"Daily ratings sync: {result['games_processed']}/{result['games_considered']} "
                f"games processed ({result['duration_ms']}ms)"
            )
        else:
            logger.error(f"Daily ratings sync failed: {result.get('error')}")
        return result
    except RunInProgressError as e:
        logger.warning(f"Daily ratings sync skipped: {e}")
    except Exception as e:
        logger.error(f"Daily ratings sync failed: {e}", exc_info=True)
    finally:
        await orchestrator.cleanup()
        db.close()
    return None


# Global scheduler instance
_scheduler: Optional[AutomationScheduler] = None


async def start_scheduler(cache: Optional[ClosingLineCache] = None):
    """Start the global scheduler."""
    global _scheduler
    if _scheduler is None:
        _scheduler = AutomationScheduler(cache)
        await _scheduler.start()
    return _scheduler


async def stop_scheduler():
    """Stop the global scheduler."""
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None


def get_scheduler() -> Optional[AutomationScheduler]:
    """Get the global scheduler instance."""
    return _scheduler
