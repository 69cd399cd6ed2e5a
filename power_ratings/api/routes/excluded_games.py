"""Excluded game routes.

Excluded games (typically against non-Division-I opponents) are never
sync candidates. Excluding a game does not undo an adjustment already made.
"""
from datetime import date
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from power_ratings.core.database import get_db
from power_ratings.core.logging import get_logger
from power_ratings.models import ExcludedGame
from power_ratings.repositories.ratings import ExcludedGameRepository

logger = get_logger(__name__)

router = APIRouter(prefix="/excluded-games", tags=["excluded-games"])


class ExcludedGameCreate(BaseModel):
    game_id: str = Field(..., min_length=1, description="Schedule feed game id")
    game_date: Optional[date] = None
    schedule_home: Optional[str] = None
    schedule_away: Optional[str] = None
    notes: Optional[str] = Field(None, description="Why the game is excluded")


def _serialize(excluded: ExcludedGame) -> Dict:
    return {
        'game_id': excluded.game_id,
        'game_date': excluded.game_date.isoformat() if excluded.game_date else None,
        'schedule_home': excluded.schedule_home,
        'schedule_away': excluded.schedule_away,
        'notes': excluded.notes,
        'created_at': excluded.created_at.isoformat() if excluded.created_at else None,
    }


@router.get("")
async def list_excluded_games(db: Session = Depends(get_db)) -> Dict:
    games = [_serialize(g) for g in ExcludedGameRepository(db).find_all_ordered()]
    return {'count': len(games), 'games': games}


@router.post("")
async def exclude_game(body: ExcludedGameCreate, db: Session = Depends(get_db)) -> Dict:
    excluded = ExcludedGameRepository(db).add(
        game_id=body.game_id.strip(),
        game_date=body.game_date,
        schedule_home=body.schedule_home,
        schedule_away=body.schedule_away,
        notes=body.notes,
    )
    db.commit()
    logger.info(f"Excluded game {excluded.game_id} from sync")
    return _serialize(excluded)


@router.delete("/{game_id}")
async def include_game(game_id: str, db: Session = Depends(get_db)) -> Dict:
    """Return a game to the sync candidate set."""
    if not ExcludedGameRepository(db).remove(game_id):
        raise HTTPException(status_code=404, detail=f"Game {game_id} is not excluded")
    db.commit()
    logger.info(f"Game {game_id} returned to sync")
    return {'game_id': game_id, 'excluded': False}
