"""
Repositories for run bookkeeping and excluded games.
"""
import uuid
from datetime import date, datetime, timedelta
from typing import List, Optional, Set

from power_ratings.models import SyncRun, ExcludedGame
from power_ratings.repositories.base import BaseRepository


class SyncRunRepository(BaseRepository[SyncRun]):
    """Repository for sync / recalculate / repair / seed runs."""

    def __init__(self, db):
        super().__init__(SyncRun, db)

    def start(self, season: int, kind: str) -> SyncRun:
        """Create a 'running' row for a new run."""
        return self.create(
            id=str(uuid.uuid4()),
            season=season,
            kind=kind,
            status='running',
            started_at=datetime.utcnow(),
        )

    def find_active(self, season: int, stale_after_minutes: int) -> Optional[SyncRun]:
        """
        A 'running' run for the season started within the staleness window.

        Runs that crashed without finishing stay 'running' forever; the
        window keeps them from blocking the season indefinitely.
        """
        cutoff = datetime.utcnow() - timedelta(minutes=stale_after_minutes)
        return self.db.query(SyncRun).filter(
            SyncRun.season == season,
            SyncRun.status == 'running',
            SyncRun.started_at >= cutoff
        ).order_by(SyncRun.started_at.desc()).first()

    def latest(self, season: int, kind: Optional[str] = None) -> Optional[SyncRun]:
        query = self.db.query(SyncRun).filter(SyncRun.season == season)
        if kind:
            query = query.filter(SyncRun.kind == kind)
        return query.order_by(SyncRun.started_at.desc()).first()


class ExcludedGameRepository(BaseRepository[ExcludedGame]):
    """Repository for games removed from the sync candidate set."""

    def __init__(self, db):
        super().__init__(ExcludedGame, db)

    def find_by_game_id(self, game_id: str) -> Optional[ExcludedGame]:
        return self.where_first(ExcludedGame.game_id == game_id)

    def excluded_ids(self) -> Set[str]:
        return {game_id for (game_id,) in self.db.query(ExcludedGame.game_id).all()}

    def find_all_ordered(self) -> List[ExcludedGame]:
        return self.db.query(ExcludedGame).order_by(
            ExcludedGame.game_date.desc(), ExcludedGame.game_id
        ).all()

    def add(
        self,
        game_id: str,
        game_date: Optional[date] = None,
        schedule_home: Optional[str] = None,
        schedule_away: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ExcludedGame:
        """Exclude a game; re-adding an excluded game updates its details."""
        excluded = self.find_by_game_id(game_id)
        if excluded is None:
            excluded = ExcludedGame(game_id=game_id, created_at=datetime.utcnow())
            self.db.add(excluded)
        excluded.game_date = game_date
        excluded.schedule_home = schedule_home
        excluded.schedule_away = schedule_away
        excluded.notes = notes
        self.db.flush()
        return excluded

    def remove(self, game_id: str) -> bool:
        excluded = self.find_by_game_id(game_id)
        if excluded is None:
            return False
        self.db.delete(excluded)
        self.db.flush()
        return True
