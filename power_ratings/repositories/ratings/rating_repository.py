"""
Repositories for team ratings and the ratings config singleton.

Usage:
    repo = TeamRatingRepository(db)
    duke = repo.find_by_team(2026, "Duke")
    table = repo.find_by_season(2026)  # rating descending
"""
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import desc

from power_ratings.models import TeamRating, RatingsConfig
from power_ratings.repositories.base import BaseRepository

CONFIG_ID = 1


class TeamRatingRepository(BaseRepository[TeamRating]):
    """Repository for per-season team ratings."""

    def __init__(self, db):
        super().__init__(TeamRating, db)

    def find_by_team(self, season: int, team_name: str) -> Optional[TeamRating]:
        """Find a team's rating row by exact canonical name."""
        return self.where_first(
            TeamRating.season == season,
            TeamRating.team_name == team_name
        )

    def find_by_season(self, season: int) -> List[TeamRating]:
        """All ratings for a season, highest rating first (ties by name)."""
        return self.db.query(TeamRating).filter(
            TeamRating.season == season
        ).order_by(desc(TeamRating.rating), TeamRating.team_name).all()

    def team_names(self, season: int) -> List[str]:
        """Canonical keys for a season."""
        rows = self.db.query(TeamRating.team_name).filter(
            TeamRating.season == season
        ).all()
        return [name for (name,) in rows]

    def by_name(self, season: int) -> Dict[str, TeamRating]:
        """Ratings for a season keyed by canonical name."""
        return {r.team_name: r for r in self.find_by_season(season)}

    def has_season(self, season: int) -> bool:
        return self.exists_where(TeamRating.season == season)

    def reset_season(self, season: int) -> int:
        """
        Reset every rating in the season to its preseason baseline.

        Returns:
            Number of rows reset
        """
        now = datetime.utcnow()
        rows = self.db.query(TeamRating).filter(TeamRating.season == season).all()
        for row in rows:
            row.rating = row.initial_rating
            row.games_processed = 0
            row.updated_at = now
        self.db.flush()
        return len(rows)

    def delete_season(self, season: int) -> int:
        count = self.db.query(TeamRating).filter(
            TeamRating.season == season
        ).delete(synchronize_session='fetch')
        self.db.flush()
        return count


class RatingsConfigRepository(BaseRepository[RatingsConfig]):
    """Repository for the engine configuration singleton."""

    def __init__(self, db):
        super().__init__(RatingsConfig, db)

    def get(self) -> Optional[RatingsConfig]:
        return self.find_by_id(CONFIG_ID)

    def get_or_create(self, hca: float, closing_source: str, season: int) -> RatingsConfig:
        """
        Return the singleton, creating it with the given defaults if missing.

        Args:
            hca: Home-court advantage to use when creating
            closing_source: Closing source to use when creating
            season: Season to use when creating

        Returns:
            The config row
        """
        config = self.get()
        if config is None:
            config = self.create(
                id=CONFIG_ID,
                hca=hca,
                closing_source=closing_source,
                season=season,
                updated_at=datetime.utcnow()
            )
        return config
