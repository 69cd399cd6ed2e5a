"""Applies one game's closing line to the rating store."""
from datetime import date, datetime
from typing import Dict, Optional

from sqlalchemy.orm import Session

from power_ratings.core.logging import get_logger
from power_ratings.models import GameAdjustment
from power_ratings.repositories.ratings import GameAdjustmentRepository, TeamRatingRepository
from power_ratings.services.ratings.engine import compute_adjustment, project_spread
from power_ratings.services.ratings.exceptions import GameAlreadyProcessedError, TeamRatingNotFoundError
from power_ratings.services.ratings.types import ClosingSource

logger = get_logger(__name__)


class GameProcessor:
    """
    Computes and persists the rating adjustment for a completed game.

    The processor flushes but never commits; the caller decides the
    transaction boundary (one game during sync and override repair).
    """

    def __init__(self, db: Session):
        self.db = db
        self.ratings = TeamRatingRepository(db)
        self.adjustments = GameAdjustmentRepository(db)

    def process(
        self,
        season: int,
        game_id: str,
        game_date: date,
        home_team: str,
        away_team: str,
        closing_spread: float,
        closing_source: ClosingSource,
        hca: float,
        is_neutral_site: bool = False,
    ) -> GameAdjustment:
        """
        Adjust both teams' ratings for one game.

        Args:
            season: Season of the game
            game_id: Schedule-feed game id (idempotency key)
            game_date: Date the game was played
            home_team: Canonical home team name
            away_team: Canonical away team name
            closing_spread: Closing spread, home perspective
            closing_source: Source the spread came from
            hca: Home-court advantage in points
            is_neutral_site: If True, no HCA is applied

        Returns:
            The new GameAdjustment row

        Raises:
            GameAlreadyProcessedError: An adjustment already exists for game_id
            TeamRatingNotFoundError: Either team has no rating in the season
        """
        if self.adjustments.exists_for_game(game_id):
            raise GameAlreadyProcessedError(game_id)

        home = self.ratings.find_by_team(season, home_team)
        if home is None:
            raise TeamRatingNotFoundError(home_team, season)
        away = self.ratings.find_by_team(season, away_team)
        if away is None:
            raise TeamRatingNotFoundError(away_team, season)

        result = compute_adjustment(
            home_rating=home.rating,
            away_rating=away.rating,
            closing_spread=closing_spread,
            hca=hca,
            is_neutral_site=is_neutral_site,
        )

        now = datetime.utcnow()
        home.rating = result.home_rating_after
        home.games_processed = (home.games_processed or 0) + 1
        home.updated_at = now
        away.rating = result.away_rating_after
        away.games_processed = (away.games_processed or 0) + 1
        away.updated_at = now

        adjustment = self.adjustments.create(
            game_id=game_id,
            season=season,
            game_date=game_date,
            home_team=home.team_name,
            away_team=away.team_name,
            is_neutral_site=is_neutral_site,
            projected_spread=result.projected_spread,
            closing_spread=closing_spread,
            closing_source=ClosingSource(closing_source).value,
            difference=result.difference,
            adjustment=result.adjustment,
            home_rating_before=result.home_rating_before,
            home_rating_after=result.home_rating_after,
            away_rating_before=result.away_rating_before,
            away_rating_after=result.away_rating_after,
            processed_at=now,
        )

        logger.debug(
            f"Processed {game_id}: {away.team_name} @ {home.team_name} "
            f"projected {result.projected_spread:+.2f}, closing {closing_spread:+.1f}, "
            f"adjustment {result.adjustment:+.2f}"
        )
        return adjustment

    def get_projection(
        self,
        season: int,
        home_team: str,
        away_team: str,
        hca: float,
        is_neutral_site: bool = False
    ) -> Optional[Dict]:
        """
        Projected spread for a hypothetical matchup of two canonical teams.

        Returns:
            Dict with both ratings and the projected spread, or None if
            either team has no rating
        """
        home = self.ratings.find_by_team(season, home_team)
        away = self.ratings.find_by_team(season, away_team)
        if home is None or away is None:
            return None

        return {
            'home_team': home.team_name,
            'away_team': away.team_name,
            'home_rating': home.rating,
            'away_rating': away.rating,
            'hca': hca,
            'is_neutral_site': is_neutral_site,
            'projected_spread': project_spread(home.rating, away.rating, hca, is_neutral_site),
        }
