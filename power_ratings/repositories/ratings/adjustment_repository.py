"""
Repository for game adjustments.

The set of processed game ids is re-derived from this table at the start of
every sync, which is what makes an interrupted run safe to resume.
"""
from datetime import date
from typing import List, Optional, Set

from power_ratings.models import GameAdjustment
from power_ratings.repositories.base import BaseRepository


class GameAdjustmentRepository(BaseRepository[GameAdjustment]):
    """Repository for per-game rating adjustments."""

    def __init__(self, db):
        super().__init__(GameAdjustment, db)

    def find_by_game_id(self, game_id: str) -> Optional[GameAdjustment]:
        return self.where_first(GameAdjustment.game_id == game_id)

    def exists_for_game(self, game_id: str) -> bool:
        return self.exists_where(GameAdjustment.game_id == game_id)

    def processed_game_ids(self, season: int) -> Set[str]:
        """Game ids that already have an adjustment in the season."""
        rows = self.db.query(GameAdjustment.game_id).filter(
            GameAdjustment.season == season
        ).all()
        return {game_id for (game_id,) in rows}

    def find_history(self, season: int) -> List[GameAdjustment]:
        """All adjustments for a season in replay order (game date, then game id)."""
        return self.db.query(GameAdjustment).filter(
            GameAdjustment.season == season
        ).order_by(GameAdjustment.game_date, GameAdjustment.game_id).all()

    def latest_game_date(self, season: int) -> Optional[date]:
        latest = self.db.query(GameAdjustment.game_date).filter(
            GameAdjustment.season == season
        ).order_by(GameAdjustment.game_date.desc()).first()
        return latest[0] if latest else None

    def delete_season(self, season: int) -> int:
        count = self.db.query(GameAdjustment).filter(
            GameAdjustment.season == season
        ).delete(synchronize_session='fetch')
        self.db.flush()
        return count
