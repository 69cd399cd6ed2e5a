"""Team name override routes.

Adding or changing an override immediately repairs the season's failed
games that mention the overridden name.
"""
from typing import Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from power_ratings.api.errors import to_http_exception
from power_ratings.api.routes.ratings import get_closing_line_cache
from power_ratings.core.database import get_db
from power_ratings.core.logging import get_logger
from power_ratings.core.rate_limit import RUN_RATE_LIMIT, limiter
from power_ratings.repositories.ratings import MarketTeamNameRepository
from power_ratings.services.ratings.closing_lines import ClosingLineCache
from power_ratings.services.ratings.exceptions import RatingsError
from power_ratings.services.ratings.override_repair import OverrideRepairWorkflow
from power_ratings.services.ratings.overrides import OverrideService

logger = get_logger(__name__)

router = APIRouter(prefix="/overrides", tags=["overrides"])


class OverrideCreate(BaseModel):
    """Request to map a raw team name to a canonical (rated) name."""
    source_name: str = Field(..., min_length=1, description="Raw name as it appears in a feed")
    canonical_name: str = Field(..., min_length=1, description="Rated team name (KenPom spelling)")
    schedule_name: Optional[str] = Field(None, description="Schedule feed spelling")
    odds_api_name: Optional[str] = Field(None, description="Odds feed spelling")
    secondary_name: Optional[str] = Field(None, description="Secondary ratings feed spelling")
    source: Literal["manual", "auto"] = "manual"
    notes: Optional[str] = None
    season: Optional[int] = Field(None, description="Season to repair (defaults to configured season)")


class OverrideUpdate(BaseModel):
    """Request to change an override; omitted fields are left alone."""
    source_name: Optional[str] = None
    canonical_name: Optional[str] = None
    schedule_name: Optional[str] = None
    odds_api_name: Optional[str] = None
    secondary_name: Optional[str] = None
    source: Optional[Literal["manual", "auto"]] = None
    notes: Optional[str] = None
    season: Optional[int] = None


def get_override_service(
    db: Session = Depends(get_db),
    cache: ClosingLineCache = Depends(get_closing_line_cache)
) -> OverrideService:
    return OverrideService(db, OverrideRepairWorkflow(db, cache=cache))


@router.get("")
async def list_overrides(service: OverrideService = Depends(get_override_service)) -> Dict:
    overrides = service.list_overrides()
    return {'count': len(overrides), 'overrides': overrides}


@router.get("/market-names")
async def list_market_names(db: Session = Depends(get_db)) -> Dict:
    """Every team name seen in the odds feed, for picking odds_api_name."""
    names = MarketTeamNameRepository(db).all_names()
    return {'count': len(names), 'names': names}


@router.post("")
@limiter.limit(RUN_RATE_LIMIT)
async def add_override(
    request: Request,
    body: OverrideCreate,
    service: OverrideService = Depends(get_override_service)
) -> Dict:
    """
    Add an override (or update the one with the same source name).

    The response includes the repair result: how many failed games were
    re-attempted and how many now have adjustments.
    """
    try:
        return await service.add(**body.model_dump())
    except RatingsError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error adding override: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/{override_id}")
@limiter.limit(RUN_RATE_LIMIT)
async def update_override(
    request: Request,
    override_id: int,
    body: OverrideUpdate,
    service: OverrideService = Depends(get_override_service)
) -> Dict:
    fields = body.model_dump(exclude_unset=True)
    season = fields.pop('season', None)
    try:
        return await service.update(override_id, season=season, **fields)
    except RatingsError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error updating override {override_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/{override_id}")
async def delete_override(
    override_id: int,
    service: OverrideService = Depends(get_override_service)
) -> Dict:
    """Delete an override. Games already processed through it are kept."""
    try:
        return {'deleted': service.delete(override_id)}
    except RatingsError as e:
        raise to_http_exception(e)
