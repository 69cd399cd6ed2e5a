"""Ratings API routes.

Provides endpoints for:
- Ratings snapshots
- Manual sync, recalculation and season seeding
- Matching-log review with name suggestions
- Season status and ad-hoc projections
- Secondary-feed name coverage
"""
from datetime import date
from typing import AsyncGenerator, Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from power_ratings.api.errors import to_http_exception
from power_ratings.core.config import settings
from power_ratings.core.database import get_db
from power_ratings.core.logging import get_logger
from power_ratings.core.rate_limit import RUN_RATE_LIMIT, limiter
from power_ratings.core.scheduler import get_scheduler
from power_ratings.services.ratings.closing_lines import ClosingLineCache
from power_ratings.services.ratings.exceptions import RatingsError
from power_ratings.services.ratings.orchestrator import RatingsSyncOrchestrator
from power_ratings.services.ratings.queries import RatingsQueryService
from power_ratings.services.ratings.recalculation import RecalculationEngine
from power_ratings.services.ratings.types import MatchStatus

logger = get_logger(__name__)

router = APIRouter(prefix="/ratings", tags=["ratings"])


# Request models
class SyncRequest(BaseModel):
    """Request to sync completed games into the ratings."""
    season: int = Field(..., description="Season (year the season ends, e.g. 2026)")
    start_date: Optional[date] = Field(None, description="First game date (defaults to season start)")
    end_date: Optional[date] = Field(None, description="Last game date (defaults to today)")
    max_games: Optional[int] = Field(None, ge=1, le=1000, description="Maximum games to attempt")
    hca: Optional[float] = Field(None, ge=0, le=10, description="Home-court advantage in points")
    closing_source: Optional[Literal["pinnacle", "us_average"]] = None
    include_logs: bool = Field(False, description="Include this run's matching logs")


class RecalculateRequest(BaseModel):
    """Request to replay a season's adjustments."""
    season: int
    hca: Optional[float] = Field(None, ge=0, le=10, description="New home-court advantage")


class InitializeRequest(BaseModel):
    """Request to seed a season from the preseason ratings import."""
    season: int
    force: bool = Field(False, description="Replace an already seeded season")


# Dependencies
def get_closing_line_cache(request: Request) -> ClosingLineCache:
    """The application's shared closing-line cache."""
    return request.app.state.closing_line_cache


async def get_orchestrator(
    db: Session = Depends(get_db),
    cache: ClosingLineCache = Depends(get_closing_line_cache)
) -> AsyncGenerator[RatingsSyncOrchestrator, None]:
    """Dependency to get sync orchestrator instance; closes its adapters afterwards."""
    orchestrator = RatingsSyncOrchestrator(db, cache=cache)
    try:
        yield orchestrator
    finally:
        await orchestrator.cleanup()


def get_recalculation_engine(db: Session = Depends(get_db)) -> RecalculationEngine:
    return RecalculationEngine(db)


async def get_query_service(db: Session = Depends(get_db)) -> AsyncGenerator[RatingsQueryService, None]:
    queries = RatingsQueryService(db)
    try:
        yield queries
    finally:
        await queries.cleanup()


# Routes
@router.get("")
async def get_ratings(
    season: int = Query(default=settings.CURRENT_SEASON, description="Season"),
    include_logs: bool = Query(False, description="Include matching logs and stats"),
    queries: RatingsQueryService = Depends(get_query_service)
) -> Dict:
    """
    Get the ratings snapshot for a season.

    Returns ratings (highest first), processed adjustments (oldest first)
    and the engine config. With include_logs, failed matching logs and
    per-status counts are added.
    """
    snapshot = queries.snapshot(season)
    if include_logs:
        snapshot['matching_logs'] = queries.matching_logs(season)
        snapshot['matching_stats'] = queries.matching_stats(season)
    return snapshot


@router.post("/sync")
@limiter.limit(RUN_RATE_LIMIT)
async def sync_ratings(
    request: Request,
    body: SyncRequest,
    orchestrator: RatingsSyncOrchestrator = Depends(get_orchestrator)
) -> Dict:
    """
    Process completed games for a season.

    This will:
    1. Seed the season if it has no ratings
    2. Fetch completed games from the schedule feed
    3. Resolve team names and acquire closing lines
    4. Adjust ratings for every game that matches
    5. Record a matching log for every game attempted

    Returns 409 if another run holds the season.
    """
    try:
        return await orchestrator.sync(
            season=body.season,
            start_date=body.start_date,
            end_date=body.end_date,
            max_games=body.max_games,
            hca=body.hca,
            closing_source=body.closing_source,
            include_logs=body.include_logs,
        )
    except RatingsError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error syncing ratings: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/recalculate")
@limiter.limit(RUN_RATE_LIMIT)
async def recalculate_ratings(
    request: Request,
    body: RecalculateRequest,
    engine: RecalculationEngine = Depends(get_recalculation_engine)
) -> Dict:
    """
    Reset a season to preseason ratings and replay every adjustment.

    Pass hca to change the home-court advantage; closing spreads are kept.
    """
    try:
        return await engine.recalculate(body.season, hca=body.hca)
    except RatingsError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error recalculating ratings: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/initialize")
@limiter.limit(RUN_RATE_LIMIT)
async def initialize_season(
    request: Request,
    body: InitializeRequest,
    orchestrator: RatingsSyncOrchestrator = Depends(get_orchestrator)
) -> Dict:
    """Seed a season from the previous season's final KenPom ratings."""
    try:
        return await orchestrator.initialize_season(body.season, force=body.force)
    except RatingsError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error initializing season {body.season}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/matching-logs")
async def get_matching_logs(
    season: int = Query(default=settings.CURRENT_SEASON),
    status: Optional[MatchStatus] = Query(None, description="Only logs with this status"),
    failed_only: bool = Query(True, description="Hide successful games"),
    limit: int = Query(200, ge=1, le=2000),
    queries: RatingsQueryService = Depends(get_query_service)
) -> Dict:
    """
    Review matching logs, newest games first.

    Unresolved names carry fuzzy suggestions to help write overrides.
    """
    logs = queries.matching_logs(
        season,
        status=status.value if status else None,
        failed_only=failed_only,
        limit=limit,
    )
    return {
        'season': season,
        'count': len(logs),
        'stats': queries.matching_stats(season),
        'logs': logs,
    }


@router.get("/status")
async def get_ratings_status(
    season: int = Query(default=settings.CURRENT_SEASON),
    queries: RatingsQueryService = Depends(get_query_service)
) -> Dict:
    """Season status: seed state, config, latest runs, matching stats, scheduler."""
    status = queries.status(season)
    scheduler = get_scheduler()
    status['scheduler_running'] = bool(scheduler and scheduler.running)
    return status


@router.get("/projection")
async def get_projection(
    home: str = Query(..., description="Home team (any spelling)"),
    away: str = Query(..., description="Away team (any spelling)"),
    season: int = Query(default=settings.CURRENT_SEASON),
    neutral: bool = Query(False, description="Neutral site (no HCA)"),
    hca: Optional[float] = Query(None, ge=0, le=10),
    queries: RatingsQueryService = Depends(get_query_service)
) -> Dict:
    """Projected spread for a matchup (negative = home favored)."""
    try:
        return queries.projection(season, home, away, is_neutral_site=neutral, hca=hca)
    except RatingsError as e:
        raise to_http_exception(e)


@router.get("/secondary-names")
async def get_secondary_names(
    season: int = Query(default=settings.CURRENT_SEASON),
    queries: RatingsQueryService = Depends(get_query_service)
) -> Dict:
    """Barttorvik team names and whether each resolves to a rated team."""
    try:
        return await queries.secondary_names(season)
    except RatingsError as e:
        raise to_http_exception(e)
