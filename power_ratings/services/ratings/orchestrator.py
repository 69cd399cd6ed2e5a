"""Sync orchestrator for NCAAB power ratings.

This orchestrator coordinates:
- Seeding a season from the preseason ratings import (KenPom archive)
- Fetching completed games from the schedule feed (ESPN)
- Team name resolution via TeamNameResolver
- Closing-line acquisition via ClosingLineService
- Rating adjustments via GameProcessor
- Matching-log bookkeeping for every game attempt

Games are processed one at a time in chronological order, one transaction
per game, so a failure on one game never undoes another. Runs for the same
season are serialized by the RunGuard.
"""
import asyncio
import time
from datetime import date, datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from power_ratings.core import metrics
from power_ratings.core.config import settings
from power_ratings.core.logging import get_logger
from power_ratings.models import TeamRating
from power_ratings.repositories.ratings import (
    ExcludedGameRepository,
    GameAdjustmentRepository,
    MatchingLogRepository,
    RatingsConfigRepository,
    TeamOverrideRepository,
    TeamRatingRepository,
)
from power_ratings.services.ratings.closing_lines import ClosingLineCache, ClosingLineService
from power_ratings.services.ratings.constants import preseason_ratings_date
from power_ratings.services.ratings.engine import round2
from power_ratings.services.ratings.exceptions import (
    ProviderError,
    RatingsValidationError,
    SeasonNotInitializedError,
)
from power_ratings.services.ratings.game_processor import GameProcessor
from power_ratings.services.ratings.name_resolver import (
    OverrideIndex,
    RatingsIndex,
    TeamNameResolver,
    get_resolver,
)
from power_ratings.services.ratings.queries import build_snapshot, serialize_matching_log
from power_ratings.services.ratings.run_guard import RunGuard, run_guard
from power_ratings.services.ratings.types import (
    ClosingSource,
    MatchStatus,
    PreseasonRating,
    RunKind,
    ScheduleGame,
)
from power_ratings.services.ratings.validation import (
    resolve_date_range,
    validate_closing_source,
    validate_hca,
    validate_season,
)

logger = get_logger(__name__)


class RatingsSyncOrchestrator:
    """
    Coordinates season seeding and the incremental ratings sync.

    This is the main entry point for writing ratings from external feeds.
    All sync operations should go through this orchestrator.

    Args:
        db: SQLAlchemy database session
        schedule_adapter: Object with async fetch_completed_games(start, end)
        odds_adapter: Object with async fetch_historical_odds(snapshot_time, source)
        ratings_adapter: Object with async fetch_archive_ratings(date) and
            fetch_preseason_ratings(season)
        cache: ClosingLineCache (pass the app-wide one to share it across runs)
        resolver: TeamNameResolver
        guard: RunGuard serializing runs per season
        request_delay_ms: Pause between games (defaults to SYNC_REQUEST_DELAY_MS)
    """

    def __init__(
        self,
        db: Session,
        schedule_adapter=None,
        odds_adapter=None,
        ratings_adapter=None,
        cache: Optional[ClosingLineCache] = None,
        resolver: Optional[TeamNameResolver] = None,
        guard: Optional[RunGuard] = None,
        request_delay_ms: Optional[int] = None,
    ):
        self.db = db
        self.resolver = resolver or get_resolver()
        self.cache = cache if cache is not None else ClosingLineCache()
        self.guard = guard or run_guard
        self.request_delay_ms = (
            settings.SYNC_REQUEST_DELAY_MS if request_delay_ms is None else request_delay_ms
        )

        self.ratings = TeamRatingRepository(db)
        self.adjustments = GameAdjustmentRepository(db)
        self.config_repo = RatingsConfigRepository(db)
        self.overrides = TeamOverrideRepository(db)
        self.logs = MatchingLogRepository(db)
        self.excluded = ExcludedGameRepository(db)
        self.processor = GameProcessor(db)

        # Lazy load adapters (they need API keys and HTTP clients)
        self._schedule_adapter = schedule_adapter
        self._odds_adapter = odds_adapter
        self._ratings_adapter = ratings_adapter
        self._closing_lines: Optional[ClosingLineService] = None
        self._owned_adapters = []

    @property
    def schedule_adapter(self):
        """Lazy load the ESPN schedule adapter."""
        if self._schedule_adapter is None:
            from power_ratings.services.ratings.adapters import EspnScheduleAdapter
            self._schedule_adapter = EspnScheduleAdapter()
            self._owned_adapters.append(self._schedule_adapter)
        return self._schedule_adapter

    @property
    def odds_adapter(self):
        """Lazy load The Odds API adapter."""
        if self._odds_adapter is None:
            from power_ratings.services.ratings.adapters import OddsApiAdapter
            self._odds_adapter = OddsApiAdapter()
            self._owned_adapters.append(self._odds_adapter)
        return self._odds_adapter

    @property
    def ratings_adapter(self):
        """Lazy load the KenPom adapter."""
        if self._ratings_adapter is None:
            from power_ratings.services.ratings.adapters import KenPomAdapter
            self._ratings_adapter = KenPomAdapter()
            self._owned_adapters.append(self._ratings_adapter)
        return self._ratings_adapter

    @property
    def closing_lines(self) -> ClosingLineService:
        if self._closing_lines is None:
            self._closing_lines = ClosingLineService(
                self.db, self.odds_adapter, self.cache, self.resolver
            )
        return self._closing_lines

    async def cleanup(self):
        """Close the HTTP clients of adapters this orchestrator created."""
        for adapter in self._owned_adapters:
            await adapter.close()
        self._owned_adapters = []

    # ========================================================================
    # SEEDING
    # ========================================================================

    async def initialize_season(
        self,
        season: int,
        force: bool = False,
        ratings: Optional[List[PreseasonRating]] = None
    ) -> Dict:
        """
        Seed a season's ratings from the preseason import.

        Args:
            season: Season to seed
            force: Replace an existing season (its adjustments and matching
                logs are deleted too)
            ratings: Preseason ratings to use instead of calling the provider

        Returns:
            Dict with the number of teams seeded

        Raises:
            RatingsValidationError: Season already seeded and force is False
            RunInProgressError: Another run holds the season
            ProviderError: The preseason import failed
        """
        validate_season(season)
        if self.ratings.has_season(season) and not force:
            raise RatingsValidationError(
                f"Season {season} is already initialized; pass force=true to replace it"
            )

        async with self.guard.hold(self.db, season, RunKind.INITIALIZE.value) as run:
            run_id = run.id
            seeded = await self._seed(season, ratings, replace=force)
            run.games_considered = 0
            run.games_processed = 0
            run.games_skipped = 0

        return {
            'success': True,
            'season': season,
            'teams_seeded': seeded,
            'sync_run_id': run_id,
            'message': f"Seeded {seeded} teams for season {season}",
        }

    async def _seed(
        self,
        season: int,
        ratings: Optional[List[PreseasonRating]] = None,
        replace: bool = False
    ) -> int:
        if ratings is None:
            ratings = await self._fetch_preseason(season)
        if not ratings:
            raise ProviderError("kenpom", f"No preseason ratings returned for season {season}")

        if replace:
            self.logs.delete_season(season)
            self.adjustments.delete_season(season)
            self.ratings.delete_season(season)

        now = datetime.utcnow()
        seen = set()
        for row in ratings:
            key = row.team_name.strip()
            if not key or key in seen:
                continue
            seen.add(key)
            value = float(round2(row.rating))
            self.db.add(TeamRating(
                team_name=key,
                season=season,
                rating=value,
                initial_rating=value,
                games_processed=0,
                conference=row.conference,
                created_at=now,
                updated_at=now,
            ))

        self.db.flush()
        logger.info(f"Seeded {len(seen)} team ratings for season {season}")
        return len(seen)

    async def _fetch_preseason(self, season: int) -> List[PreseasonRating]:
        archive_date = preseason_ratings_date(season)
        if archive_date is not None:
            logger.info(f"Seeding season {season} from the {archive_date.isoformat()} ratings archive")
            return await self.ratings_adapter.fetch_archive_ratings(archive_date)
        logger.info(f"No archive date for season {season}; using provider preseason ratings")
        return await self.ratings_adapter.fetch_preseason_ratings(season)

    # ========================================================================
    # SYNC
    # ========================================================================

    async def sync(
        self,
        season: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        max_games: Optional[int] = None,
        hca: Optional[float] = None,
        closing_source: Optional[str] = None,
        include_logs: bool = False,
    ) -> Dict:
        """
        Process completed, unprocessed games for a season.

        This is the primary sync operation that:
        1. Seeds the season if it has no ratings yet
        2. Fetches completed games from the schedule feed
        3. Drops excluded and already-processed games
        4. Resolves names, acquires closing lines and adjusts ratings
        5. Records a matching log for every game attempted

        Args:
            season: Season to sync
            start_date: First game date (defaults to season start)
            end_date: Last game date (defaults to today or season end)
            max_games: Cap on games attempted this run
            hca: Home-court advantage (persisted to config)
            closing_source: 'pinnacle' or 'us_average' (persisted to config)
            include_logs: Include this run's matching logs in the result

        Returns:
            Sync results with counts and the ratings snapshot

        Raises:
            RatingsValidationError: Invalid arguments
            RunInProgressError: Another run holds the season
            SeasonNotInitializedError: Season empty and the seed failed
        """
        start_date, end_date = resolve_date_range(season, start_date, end_date)
        max_games = settings.SYNC_MAX_GAMES if max_games is None else max_games
        if max_games < 1:
            raise RatingsValidationError("max_games must be at least 1")
        if hca is not None:
            validate_hca(hca)
        if closing_source is not None:
            closing_source = validate_closing_source(closing_source)

        logger.info(
            f"Starting ratings sync for {season}: {start_date} to {end_date}, max {max_games} games"
        )
        started = time.perf_counter()

        async with self.guard.hold(self.db, season, RunKind.SYNC.value) as run:
            run_id = run.id
            await self._ensure_seeded(season)

            config = self.config_repo.get_or_create(
                hca=settings.DEFAULT_HCA,
                closing_source=settings.DEFAULT_CLOSING_SOURCE,
                season=season,
            )
            if hca is not None:
                config.hca = hca
            if closing_source is not None:
                config.closing_source = closing_source.value
            config.season = season
            config.updated_at = datetime.utcnow()
            self.db.commit()

            run_hca = config.hca
            run_source = ClosingSource(config.closing_source)

            try:
                schedule = await self.schedule_adapter.fetch_completed_games(start_date, end_date)
            except ProviderError as e:
                logger.error(f"Schedule fetch failed for {season}: {e}")
                run.status = 'failed'
                run.error_message = str(e)
                run.games_considered = 0
                run.games_processed = 0
                run.games_skipped = 0
                return {
                    'success': False,
                    'season': season,
                    'sync_run_id': run_id,
                    'error': f"Schedule feed unavailable: {e}",
                    'games_considered': 0,
                    'games_processed': 0,
                    'games_skipped': 0,
                }

            processed_ids = self.adjustments.processed_game_ids(season)
            excluded_ids = self.excluded.excluded_ids()
            pending = [
                g for g in schedule
                if g.game_id not in processed_ids and g.game_id not in excluded_ids
            ]
            pending.sort(key=lambda g: (g.game_date, g.kickoff or datetime.min, g.game_id))
            candidates = pending[:max_games]

            logger.info(
                f"Schedule returned {len(schedule)} games: "
                f"{len(schedule) - len(pending)} already processed or excluded, "
                f"{len(candidates)} to attempt"
            )

            ratings_index = self.resolver.build_ratings_index(self.ratings.team_names(season))
            override_index = OverrideIndex(self.overrides.find_all_ordered())

            status_counts = {status.value: 0 for status in MatchStatus}
            for i, game in enumerate(candidates):
                if i and self.request_delay_ms:
                    await asyncio.sleep(self.request_delay_ms / 1000)
                status = await self._process_game(
                    game, season, run_hca, run_source, ratings_index, override_index, run_id
                )
                status_counts[status.value] += 1

            latest = self.adjustments.latest_game_date(season)
            config = self.config_repo.get()
            config.last_processed_date = latest
            config.updated_at = datetime.utcnow()

            processed = status_counts[MatchStatus.SUCCESS.value]
            run.games_considered = len(candidates)
            run.games_processed = processed
            run.games_skipped = len(candidates) - processed
            self.db.commit()

        duration_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            f"Ratings sync for {season} complete: {processed} processed, "
            f"{len(candidates) - processed} skipped in {duration_ms}ms"
        )

        result = {
            'success': True,
            'season': season,
            'sync_run_id': run_id,
            'start_date': start_date.isoformat(),
            'end_date': end_date.isoformat(),
            'hca': run_hca,
            'closing_source': run_source.value,
            'games_in_schedule': len(schedule),
            'games_considered': len(candidates),
            'games_processed': processed,
            'games_skipped': len(candidates) - processed,
            'games_remaining': len(pending) - len(candidates),
            'skipped_by_status': {
                k: v for k, v in status_counts.items()
                if k != MatchStatus.SUCCESS.value
            },
            'duration_ms': duration_ms,
            'snapshot': build_snapshot(self.db, season),
        }
        if include_logs:
            result['matching_logs'] = [
                serialize_matching_log(log)
                for log in self.logs.find_by_run(run_id)
            ]
        return result

    async def _ensure_seeded(self, season: int):
        if self.ratings.has_season(season):
            return
        logger.info(f"Season {season} has no ratings; seeding before sync")
        try:
            await self._seed(season)
        except ProviderError as e:
            self.db.rollback()
            raise SeasonNotInitializedError(season) from e
        self.db.commit()

    async def _process_game(
        self,
        game: ScheduleGame,
        season: int,
        hca: float,
        source: ClosingSource,
        ratings_index: RatingsIndex,
        override_index: OverrideIndex,
        run_id: str,
    ) -> MatchStatus:
        """
        Attempt one game and record its matching log.

        Commits on every path; any error rolls back this game's writes and
        is recorded as no_odds. If that record fails too, the game is
        skipped without a log and the run moves on.
        """
        home = self.resolver.resolve(game.home_team, ratings_index, override_index)
        away = self.resolver.resolve(game.away_team, ratings_index, override_index)

        try:
            line = await self.closing_lines.acquire(game, source, override_index)

            if not line.found:
                status, reason = line.status, line.reason
            elif home is None or away is None:
                status = MatchStatus.for_resolution(home is not None, away is not None)
                reason = not_found_reason(game.home_team, game.away_team, home, away)
            elif self.adjustments.exists_for_game(game.game_id):
                logger.info(f"Game {game.game_id} was processed by another run; not reprocessing")
                status, reason = MatchStatus.SUCCESS, None
            else:
                self.processor.process(
                    season=season,
                    game_id=game.game_id,
                    game_date=game.game_date,
                    home_team=home,
                    away_team=away,
                    closing_spread=line.spread,
                    closing_source=source,
                    hca=hca,
                    is_neutral_site=game.is_neutral_site,
                )
                status, reason = MatchStatus.SUCCESS, None

            self._record(game, season, status, home, away, reason, line.spread, run_id)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error processing game {game.game_id}: {e}", exc_info=True)
            status = MatchStatus.NO_ODDS
            try:
                self._record(game, season, status, home, away, f"Error: {e}", None, run_id)
                self.db.commit()
            except Exception as log_error:
                self.db.rollback()
                logger.error(
                    f"Could not record matching log for game {game.game_id}: {log_error}",
                    exc_info=True
                )

        if status == MatchStatus.SUCCESS:
            metrics.record_game_processed(season)
        else:
            metrics.record_game_skipped(season, status.value)
        return status

    def _record(
        self,
        game: ScheduleGame,
        season: int,
        status: MatchStatus,
        home: Optional[str],
        away: Optional[str],
        reason: Optional[str],
        closing_spread: Optional[float],
        run_id: str,
    ):
        self.logs.record(
            season=season,
            game_id=game.game_id,
            game_date=game.game_date,
            schedule_home=game.home_team,
            schedule_away=game.away_team,
            status=status,
            matched_home=home,
            matched_away=away,
            skip_reason=reason,
            closing_spread=closing_spread,
            is_neutral_site=game.is_neutral_site,
            kickoff=game.kickoff,
            sync_run_id=run_id,
        )


def not_found_reason(
    raw_home: str,
    raw_away: str,
    home: Optional[str],
    away: Optional[str]
) -> str:
    """Skip reason naming whichever side failed to resolve."""
    missing = []
    if home is None:
        missing.append(f"home team '{raw_home}'")
    if away is None:
        missing.append(f"away team '{raw_away}'")
    return "No rating match for " + " and ".join(missing)
