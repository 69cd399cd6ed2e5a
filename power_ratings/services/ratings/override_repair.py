"""Override repair: re-attempt failed games after an operator fixes a name.

When an override is added or changed, every non-success matching log in the
season whose raw home or away name is the override's source (or schedule)
name is re-resolved with the fresh override index. Games that now resolve
and have a known closing line are processed on the spot; the odds provider
is never called here. Each log is its own transaction.
"""
import time
from typing import Dict, Optional

from sqlalchemy.orm import Session

from power_ratings.core import metrics
from power_ratings.core.logging import get_logger
from power_ratings.models import MatchingLog, TeamOverride
from power_ratings.repositories.ratings import (
    GameAdjustmentRepository,
    MatchingLogRepository,
    TeamOverrideRepository,
    TeamRatingRepository,
)
from power_ratings.services.ratings.closing_lines import ClosingLineCache, ClosingLineService
from power_ratings.services.ratings.game_processor import GameProcessor
from power_ratings.services.ratings.name_resolver import (
    OverrideIndex,
    RatingsIndex,
    TeamNameResolver,
    get_resolver,
)
from power_ratings.services.ratings.orchestrator import not_found_reason
from power_ratings.services.ratings.queries import current_config_values
from power_ratings.services.ratings.run_guard import RunGuard, run_guard
from power_ratings.services.ratings.types import ClosingSource, MatchStatus, RunKind

logger = get_logger(__name__)

# Per-log outcomes
PROCESSED = "processed"
ALREADY_PROCESSED = "already_processed"
STILL_FAILING = "still_failing"
ERROR = "error"


class OverrideRepairWorkflow:
    """
    Re-resolves and processes the failed games an override affects.

    Args:
        db: SQLAlchemy session
        cache: ClosingLineCache consulted before the closing_lines table
        resolver: TeamNameResolver
        guard: RunGuard serializing runs per season
    """

    def __init__(
        self,
        db: Session,
        cache: Optional[ClosingLineCache] = None,
        resolver: Optional[TeamNameResolver] = None,
        guard: Optional[RunGuard] = None,
    ):
        self.db = db
        self.resolver = resolver or get_resolver()
        self.guard = guard or run_guard
        self.ratings = TeamRatingRepository(db)
        self.adjustments = GameAdjustmentRepository(db)
        self.logs = MatchingLogRepository(db)
        self.overrides = TeamOverrideRepository(db)
        self.processor = GameProcessor(db)
        # No odds adapter: repair only reuses lines that are already known
        self.closing_lines = ClosingLineService(
            db,
            odds_adapter=None,
            cache=cache if cache is not None else ClosingLineCache(),
            resolver=self.resolver,
        )

    async def repair(self, override: TeamOverride, season: Optional[int] = None) -> Dict:
        """
        Repair the season's failed games that mention the override's names.

        Args:
            override: The override just added or updated
            season: Season to repair (defaults to the configured season)

        Returns:
            Dict with candidate and outcome counts

        Raises:
            RunInProgressError: Another run holds the season
        """
        config = current_config_values(self.db, season)
        season = season or config['season']
        raw_names = [n for n in (override.source_name, override.schedule_name) if n]
        started = time.perf_counter()

        async with self.guard.hold(self.db, season, RunKind.OVERRIDE_REPAIR.value) as run:
            run_id = run.id
            candidates = self.logs.find_repair_candidates(season, raw_names)
            outcomes = {PROCESSED: 0, ALREADY_PROCESSED: 0, STILL_FAILING: 0, ERROR: 0}
            games = []

            if candidates:
                ratings_index = self.resolver.build_ratings_index(self.ratings.team_names(season))
                override_index = OverrideIndex(self.overrides.find_all_ordered())
                source = ClosingSource(config['closing_source'])

                for log in candidates:
                    game_id = log.game_id
                    try:
                        outcome, status = self._repair_log(
                            log, season, config['hca'], source, ratings_index, override_index, run_id
                        )
                        self.db.commit()
                    except Exception as e:
                        self.db.rollback()
                        logger.error(f"Override repair failed for game {game_id}: {e}", exc_info=True)
                        outcome, status = ERROR, None
                    outcomes[outcome] += 1
                    games.append({'game_id': game_id, 'outcome': outcome, 'status': status})

            run.games_considered = len(candidates)
            run.games_processed = outcomes[PROCESSED]
            run.games_skipped = len(candidates) - outcomes[PROCESSED]
            self.db.commit()

        duration_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            f"Override repair for {raw_names} in {season}: {len(candidates)} candidates, "
            f"{outcomes[PROCESSED]} processed, {outcomes[STILL_FAILING]} still failing"
        )
        return {
            'season': season,
            'sync_run_id': run_id,
            'names': raw_names,
            'candidates': len(candidates),
            'processed': outcomes[PROCESSED],
            'already_processed': outcomes[ALREADY_PROCESSED],
            'still_failing': outcomes[STILL_FAILING],
            'errors': outcomes[ERROR],
            'games': games,
            'duration_ms': duration_ms,
        }

    def _repair_log(
        self,
        log: MatchingLog,
        season: int,
        hca: float,
        source: ClosingSource,
        ratings_index: RatingsIndex,
        override_index: OverrideIndex,
        run_id: str,
    ):
        home = self.resolver.resolve(log.schedule_home, ratings_index, override_index)
        away = self.resolver.resolve(log.schedule_away, ratings_index, override_index)
        closing_spread = log.closing_spread

        if home is None or away is None:
            outcome = STILL_FAILING
            status = MatchStatus.for_resolution(home is not None, away is not None)
            reason = not_found_reason(log.schedule_home, log.schedule_away, home, away)
        else:
            existing = self.adjustments.find_by_game_id(log.game_id)
            if existing is not None:
                outcome, status, reason = ALREADY_PROCESSED, MatchStatus.SUCCESS, None
                closing_spread = existing.closing_spread
            else:
                line = self.closing_lines.cached_line(log.game_id, source)
                if line is None and log.status == MatchStatus.NO_SPREAD.value:
                    outcome, status, reason = STILL_FAILING, MatchStatus.NO_SPREAD, log.skip_reason
                elif line is None:
                    outcome, status = STILL_FAILING, MatchStatus.NO_ODDS
                    reason = (
                        f"Teams resolved ({away} @ {home}) but no {source.value} closing line "
                        f"is cached for this game; run a sync to fetch odds"
                    )
                else:
                    self.processor.process(
                        season=season,
                        game_id=log.game_id,
                        game_date=log.game_date,
                        home_team=home,
                        away_team=away,
                        closing_spread=line.spread,
                        closing_source=source,
                        hca=hca,
                        is_neutral_site=bool(log.is_neutral_site),
                    )
                    metrics.record_game_processed(season)
                    outcome, status, reason = PROCESSED, MatchStatus.SUCCESS, None
                    closing_spread = line.spread

        self.logs.record(
            season=season,
            game_id=log.game_id,
            game_date=log.game_date,
            schedule_home=log.schedule_home,
            schedule_away=log.schedule_away,
            status=status,
            matched_home=home,
            matched_away=away,
            skip_reason=reason,
            closing_spread=closing_spread,
            is_neutral_site=bool(log.is_neutral_site),
            kickoff=log.kickoff,
            sync_run_id=run_id,
        )
        logger.debug(f"Repair of {log.game_id}: {outcome} ({status.value})")
        return outcome, status.value
