"""Read-side views of the ratings store: snapshots, status, logs, projections."""
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from power_ratings.core.config import settings
from power_ratings.core.logging import get_logger
from power_ratings.models import GameAdjustment, MatchingLog, SyncRun, TeamRating
from power_ratings.repositories.ratings import (
    GameAdjustmentRepository,
    MatchingLogRepository,
    RatingsConfigRepository,
    SyncRunRepository,
    TeamOverrideRepository,
    TeamRatingRepository,
)
from power_ratings.services.ratings.engine import round2
from power_ratings.services.ratings.exceptions import SeasonNotInitializedError, TeamRatingNotFoundError
from power_ratings.services.ratings.game_processor import GameProcessor
from power_ratings.services.ratings.name_resolver import OverrideIndex, TeamNameResolver, get_resolver
from power_ratings.services.ratings.run_guard import RunGuard, run_guard
from power_ratings.services.ratings.types import RunKind

logger = get_logger(__name__)


# =============================================================================
# SERIALIZERS
# =============================================================================

def serialize_rating(rating: TeamRating, rank: Optional[int] = None) -> Dict:
    return {
        'rank': rank,
        'team_name': rating.team_name,
        'conference': rating.conference,
        'rating': rating.rating,
        'initial_rating': rating.initial_rating,
        'change': float(round2(rating.rating) - round2(rating.initial_rating)),
        'games_processed': rating.games_processed,
        'updated_at': rating.updated_at.isoformat() if rating.updated_at else None,
    }


def serialize_adjustment(adjustment: GameAdjustment) -> Dict:
    return {
        'game_id': adjustment.game_id,
        'game_date': adjustment.game_date.isoformat() if adjustment.game_date else None,
        'home_team': adjustment.home_team,
        'away_team': adjustment.away_team,
        'is_neutral_site': adjustment.is_neutral_site,
        'projected_spread': adjustment.projected_spread,
        'closing_spread': adjustment.closing_spread,
        'closing_source': adjustment.closing_source,
        'difference': adjustment.difference,
        'adjustment': adjustment.adjustment,
        'home_rating_before': adjustment.home_rating_before,
        'home_rating_after': adjustment.home_rating_after,
        'away_rating_before': adjustment.away_rating_before,
        'away_rating_after': adjustment.away_rating_after,
    }


def serialize_matching_log(log: MatchingLog) -> Dict:
    return {
        'id': log.id,
        'game_id': log.game_id,
        'season': log.season,
        'game_date': log.game_date.isoformat() if log.game_date else None,
        'schedule_home': log.schedule_home,
        'schedule_away': log.schedule_away,
        'matched_home': log.matched_home,
        'matched_away': log.matched_away,
        'home_found': log.home_found,
        'away_found': log.away_found,
        'status': log.status,
        'skip_reason': log.skip_reason,
        'closing_spread': log.closing_spread,
        'sync_run_id': log.sync_run_id,
        'updated_at': log.updated_at.isoformat() if log.updated_at else None,
    }


def serialize_run(run: Optional[SyncRun]) -> Optional[Dict]:
    if run is None:
        return None
    return {
        'id': run.id,
        'kind': run.kind,
        'status': run.status,
        'started_at': run.started_at.isoformat() if run.started_at else None,
        'completed_at': run.completed_at.isoformat() if run.completed_at else None,
        'games_considered': run.games_considered,
        'games_processed': run.games_processed,
        'games_skipped': run.games_skipped,
        'duration_ms': run.duration_ms,
        'error_message': run.error_message,
    }


def current_config_values(db: Session, season: Optional[int] = None) -> Dict:
    """Persisted engine config, falling back to settings when never written."""
    config = RatingsConfigRepository(db).get()
    if config is None:
        return {
            'hca': settings.DEFAULT_HCA,
            'closing_source': settings.DEFAULT_CLOSING_SOURCE,
            'season': season or settings.CURRENT_SEASON,
            'last_processed_date': None,
        }
    return {
        'hca': config.hca,
        'closing_source': config.closing_source,
        'season': config.season,
        'last_processed_date': config.last_processed_date,
    }


def build_snapshot(db: Session, season: int) -> Dict:
    """
    Ratings snapshot for a season.

    Ratings are ordered by rating descending, adjustments by game date
    ascending. as_of_date is the date of the latest processed game.
    """
    ratings = TeamRatingRepository(db).find_by_season(season)
    adjustments_repo = GameAdjustmentRepository(db)
    history = adjustments_repo.find_history(season)
    config = current_config_values(db, season)
    as_of = adjustments_repo.latest_game_date(season)

    return {
        'as_of_date': as_of.isoformat() if as_of else None,
        'season': season,
        'hca': config['hca'],
        'closing_source': config['closing_source'],
        'games_processed': len(history),
        'ratings': [serialize_rating(r, rank=i) for i, r in enumerate(ratings, start=1)],
        'adjustments': [serialize_adjustment(a) for a in history],
    }


class RatingsQueryService:
    """
    Operator-facing reads over a season.

    Args:
        db: SQLAlchemy session
        resolver: TeamNameResolver (defaults to the configured one)
        secondary_adapter: Object with async fetch_team_names(season)
        guard: RunGuard consulted for in-progress runs
    """

    def __init__(
        self,
        db: Session,
        resolver: Optional[TeamNameResolver] = None,
        secondary_adapter=None,
        guard: Optional[RunGuard] = None,
    ):
        self.db = db
        self.resolver = resolver or get_resolver()
        self.guard = guard or run_guard
        self.ratings = TeamRatingRepository(db)
        self.logs = MatchingLogRepository(db)
        self.runs = SyncRunRepository(db)
        self.overrides = TeamOverrideRepository(db)
        self._secondary_adapter = secondary_adapter
        self._owns_secondary_adapter = False

    @property
    def secondary_adapter(self):
        """Lazy load the Barttorvik adapter."""
        if self._secondary_adapter is None:
            from power_ratings.services.ratings.adapters import BarttorvikAdapter
            self._secondary_adapter = BarttorvikAdapter()
            self._owns_secondary_adapter = True
        return self._secondary_adapter

    async def cleanup(self):
        """Close the Barttorvik adapter if this service created it."""
        if self._owns_secondary_adapter:
            await self._secondary_adapter.close()
            self._owns_secondary_adapter = False

    def snapshot(self, season: int) -> Dict:
        return build_snapshot(self.db, season)

    def matching_logs(
        self,
        season: int,
        status: Optional[str] = None,
        failed_only: bool = True,
        limit: int = 200,
        with_suggestions: bool = True,
    ) -> List[Dict]:
        """
        Matching logs for a season, newest first.

        Unresolved sides carry up to three fuzzy suggestions to help an
        operator write the override.
        """
        rows = self.logs.find_by_season(season, status=status, failed_only=failed_only, limit=limit)
        index = self.resolver.build_ratings_index(self.ratings.team_names(season)) if with_suggestions else None

        result = []
        for row in rows:
            entry = serialize_matching_log(row)
            if index is not None:
                entry['suggestions'] = {
                    'home': [] if row.home_found else self.resolver.suggest(row.schedule_home, index),
                    'away': [] if row.away_found else self.resolver.suggest(row.schedule_away, index),
                }
            result.append(entry)
        return result

    def matching_stats(self, season: int) -> Dict:
        by_status = self.logs.status_counts(season)
        return {
            'season': season,
            'total': sum(by_status.values()),
            'by_status': by_status,
            'unresolved_names': self.logs.unresolved_names(season),
        }

    def status(self, season: int) -> Dict:
        """Season health: seed state, config, latest run of each kind."""
        config = current_config_values(self.db, season)
        adjustments = GameAdjustmentRepository(self.db)
        last_date = adjustments.latest_game_date(season)
        teams = self.ratings.count(TeamRating.season == season)

        return {
            'season': season,
            'initialized': teams > 0,
            'teams': teams,
            'games_processed': adjustments.count(GameAdjustment.season == season),
            'last_processed_date': last_date.isoformat() if last_date else None,
            'hca': config['hca'],
            'closing_source': config['closing_source'],
            'run_in_progress': (
                self.guard.is_running(season)
                or self.runs.find_active(season, self.guard.stale_after_minutes) is not None
            ),
            'latest_runs': {
                kind.value: serialize_run(self.runs.latest(season, kind.value))
                for kind in RunKind
            },
            'matching': self.matching_stats(season),
        }

    def projection(
        self,
        season: int,
        home_team: str,
        away_team: str,
        is_neutral_site: bool = False,
        hca: Optional[float] = None,
    ) -> Dict:
        """
        Projected spread for any two names, resolved like schedule names.

        Raises:
            SeasonNotInitializedError: The season has no ratings
            TeamRatingNotFoundError: A name does not resolve
        """
        names = self.ratings.team_names(season)
        if not names:
            raise SeasonNotInitializedError(season)

        index = self.resolver.build_ratings_index(names)
        override_index = OverrideIndex(self.overrides.find_all_ordered())
        home = self.resolver.resolve(home_team, index, override_index)
        if home is None:
            raise TeamRatingNotFoundError(home_team, season)
        away = self.resolver.resolve(away_team, index, override_index)
        if away is None:
            raise TeamRatingNotFoundError(away_team, season)

        if hca is None:
            hca = current_config_values(self.db, season)['hca']
        return GameProcessor(self.db).get_projection(season, home, away, hca, is_neutral_site)

    async def secondary_names(self, season: int) -> Dict:
        """
        Secondary-feed team names the resolver cannot place.

        Raises:
            SeasonNotInitializedError: The season has no ratings
            ProviderError: The secondary feed failed after retries
        """
        names = self.ratings.team_names(season)
        if not names:
            raise SeasonNotInitializedError(season)

        index = self.resolver.build_ratings_index(names)
        override_index = OverrideIndex(self.overrides.find_all_ordered())
        secondary = await self.secondary_adapter.fetch_team_names(season)

        resolved = {}
        unresolved = []
        for name in secondary:
            match = self.resolver.match(name, index, override_index)
            if match is None:
                unresolved.append({'name': name, 'suggestions': self.resolver.suggest(name, index)})
            else:
                resolved[name] = {'canonical': match.name, 'method': match.method}

        logger.info(
            f"Secondary names for {season}: {len(resolved)} resolved, {len(unresolved)} unresolved"
        )
        return {
            'season': season,
            'total': len(secondary),
            'resolved': resolved,
            'unresolved': unresolved,
        }
