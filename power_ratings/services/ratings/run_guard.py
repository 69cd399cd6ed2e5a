"""Single-flight guard for ratings runs.

Sync, recalculation, override repair and seeding all rewrite ratings for a
season, so at most one of them may run per season at a time. The guard
combines an in-process asyncio.Lock per season with a check for another
'running' sync_runs row (which covers other worker processes). A second run
fails fast with RunInProgressError instead of queueing.
"""
import asyncio
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, Optional

from sqlalchemy.orm import Session

from power_ratings.core import metrics
from power_ratings.core.config import settings
from power_ratings.core.logging import get_logger, get_correlation_id, set_correlation_id, clear_correlation_id
from power_ratings.models import SyncRun
from power_ratings.repositories.ratings import SyncRunRepository
from power_ratings.services.ratings.exceptions import RunInProgressError

logger = get_logger(__name__)


class RunGuard:
    """Per-season run serialization plus sync_runs bookkeeping."""

    def __init__(self, stale_after_minutes: Optional[int] = None):
        self.stale_after_minutes = (
            settings.RUN_STALE_MINUTES if stale_after_minutes is None else stale_after_minutes
        )
        self._locks: Dict[int, asyncio.Lock] = {}

    def is_running(self, season: int) -> bool:
        lock = self._locks.get(season)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, db: Session, season: int, kind: str) -> AsyncIterator[SyncRun]:
        """
        Hold the season for the duration of a run.

        Yields the run's SyncRun row; the caller fills in its counts. On exit
        the row is marked 'success' (or 'failed' if the body raised) and
        committed.

        Raises:
            RunInProgressError: Another run holds the season
        """
        lock = self._locks.setdefault(season, asyncio.Lock())
        if lock.locked():
            raise RunInProgressError(season, kind)
        await lock.acquire()

        token = None
        try:
            runs = SyncRunRepository(db)
            active = runs.find_active(season, self.stale_after_minutes)
            if active is not None:
                raise RunInProgressError(season, active.kind)

            run = runs.start(season, kind)
            db.commit()
            run_id = run.id

            if not get_correlation_id():
                token = set_correlation_id(run_id)

            started = time.perf_counter()
            logger.info(f"Started {kind} run {run_id} for season {season}")
            try:
                yield run
            except Exception as e:
                db.rollback()
                duration_ms = int((time.perf_counter() - started) * 1000)
                failed = db.get(SyncRun, run_id)
                if failed is not None:
                    failed.status = 'failed'
                    failed.error_message = str(e)
                    failed.completed_at = datetime.utcnow()
                    failed.duration_ms = duration_ms
                    db.commit()
                metrics.record_run(kind, 'failed', duration_ms)
                logger.error(f"{kind} run {run_id} failed after {duration_ms}ms: {e}")
                raise

            duration_ms = int((time.perf_counter() - started) * 1000)
            # The body may have already marked the run failed without raising
            if run.status == 'running':
                run.status = 'success'
            run.completed_at = datetime.utcnow()
            run.duration_ms = duration_ms
            db.commit()
            metrics.record_run(kind, run.status, duration_ms)
            logger.info(f"{kind} run {run_id} finished ({run.status}) in {duration_ms}ms")
        finally:
            if token is not None:
                clear_correlation_id(token)
            lock.release()


run_guard = RunGuard()


def get_run_guard() -> RunGuard:
    """Dependency returning the process-wide run guard."""
    return run_guard
