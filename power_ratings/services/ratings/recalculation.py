"""Recalculation engine: deterministic replay of a season's adjustments.

Recalculation resets every team to its preseason rating and replays the
stored adjustments in (game_date, game_id) order under the current HCA.
Only the derived columns are rewritten; closing spreads, neutral-site flags
and game ids are the record of what the market said and never change. Two
replays of the same history with the same HCA produce identical ratings.
"""
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from power_ratings.core.config import settings
from power_ratings.core.logging import get_logger
from power_ratings.repositories.ratings import (
    GameAdjustmentRepository,
    RatingsConfigRepository,
    TeamRatingRepository,
)
from power_ratings.services.ratings.engine import AdjustmentResult, compute_adjustment, round2
from power_ratings.services.ratings.exceptions import SeasonNotInitializedError
from power_ratings.services.ratings.queries import build_snapshot
from power_ratings.services.ratings.run_guard import RunGuard, run_guard
from power_ratings.services.ratings.types import RunKind
from power_ratings.services.ratings.validation import validate_hca, validate_season

logger = get_logger(__name__)


@dataclass
class ReplayStep:
    """One replayed game: the stored row and its recomputed result (None if skipped)."""
    game: object
    result: Optional[AdjustmentResult]


def replay_adjustments(
    initial_ratings: Dict[str, float],
    history: Iterable,
    hca: float
) -> Tuple[Dict[str, Decimal], List[ReplayStep]]:
    """
    Replay adjustments over preseason ratings.

    Pure: reads only its arguments. Each history item needs home_team,
    away_team, closing_spread and is_neutral_site; items are applied in the
    order given.

    Args:
        initial_ratings: Canonical name → preseason rating
        history: Stored adjustments in replay order
        hca: Home-court advantage to replay under

    Returns:
        Tuple of (final ratings by name, one ReplayStep per history item).
        Items naming a team missing from initial_ratings are skipped and
        leave the ratings unchanged.
    """
    ratings = {name: round2(value) for name, value in initial_ratings.items()}
    steps = []

    for game in history:
        if game.home_team not in ratings or game.away_team not in ratings:
            steps.append(ReplayStep(game, None))
            continue

        result = compute_adjustment(
            home_rating=ratings[game.home_team],
            away_rating=ratings[game.away_team],
            closing_spread=game.closing_spread,
            hca=hca,
            is_neutral_site=bool(game.is_neutral_site),
        )
        ratings[game.home_team] = round2(result.home_rating_after)
        ratings[game.away_team] = round2(result.away_rating_after)
        steps.append(ReplayStep(game, result))

    return ratings, steps


class RecalculationEngine:
    """
    Rebuilds a season's ratings from its adjustment history.

    Usage:
        engine = RecalculationEngine(db)
        result = await engine.recalculate(2026, hca=3.0)
    """

    def __init__(self, db: Session, guard: Optional[RunGuard] = None):
        self.db = db
        self.guard = guard or run_guard
        self.ratings = TeamRatingRepository(db)
        self.adjustments = GameAdjustmentRepository(db)
        self.config_repo = RatingsConfigRepository(db)

    async def recalculate(self, season: int, hca: Optional[float] = None) -> Dict:
        """
        Reset and replay a season, committing once.

        Args:
            season: Season to rebuild
            hca: New home-court advantage to persist first (optional)

        Returns:
            Dict with replay counts and the new snapshot

        Raises:
            RatingsValidationError: Invalid season or hca
            RunInProgressError: Another run holds the season
            SeasonNotInitializedError: The season has no ratings
        """
        validate_season(season)
        if hca is not None:
            validate_hca(hca)

        started = time.perf_counter()
        async with self.guard.hold(self.db, season, RunKind.RECALCULATE.value) as run:
            run_id = run.id
            if not self.ratings.has_season(season):
                raise SeasonNotInitializedError(season)

            config = self.config_repo.get_or_create(
                hca=settings.DEFAULT_HCA,
                closing_source=settings.DEFAULT_CLOSING_SOURCE,
                season=season,
            )
            if hca is not None and hca != config.hca:
                logger.info(f"Changing HCA from {config.hca} to {hca}")
                config.hca = hca
                config.updated_at = datetime.utcnow()
            run_hca = config.hca

            self.ratings.reset_season(season)
            rows = self.ratings.by_name(season)
            history = self.adjustments.find_history(season)

            final, steps = replay_adjustments(
                {name: row.initial_rating for name, row in rows.items()},
                history,
                run_hca,
            )

            games_played: Dict[str, int] = {}
            skipped = 0
            for step in steps:
                if step.result is None:
                    skipped += 1
                    logger.warning(
                        f"Skipping {step.game.game_id} in replay: "
                        f"{step.game.away_team} @ {step.game.home_team} has a team without a rating"
                    )
                    continue
                _apply_step(step)
                for team in (step.game.home_team, step.game.away_team):
                    games_played[team] = games_played.get(team, 0) + 1

            now = datetime.utcnow()
            for name, row in rows.items():
                row.rating = float(final[name])
                row.games_processed = games_played.get(name, 0)
                row.updated_at = now

            replayed = len(steps) - skipped
            run.games_considered = len(steps)
            run.games_processed = replayed
            run.games_skipped = skipped
            self.db.commit()

        duration_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            f"Recalculated season {season} at HCA {run_hca}: "
            f"{replayed} games replayed, {skipped} skipped in {duration_ms}ms"
        )
        return {
            'success': True,
            'season': season,
            'sync_run_id': run_id,
            'hca': run_hca,
            'teams': len(rows),
            'games_replayed': replayed,
            'games_skipped': skipped,
            'duration_ms': duration_ms,
            'snapshot': build_snapshot(self.db, season),
        }


def _apply_step(step: ReplayStep):
    game, result = step.game, step.result
    game.projected_spread = result.projected_spread
    game.difference = result.difference
    game.adjustment = result.adjustment
    game.home_rating_before = result.home_rating_before
    game.home_rating_after = result.home_rating_after
    game.away_rating_before = result.away_rating_before
    game.away_rating_after = result.away_rating_after
