"""
Repository layer for data access.

Usage:
    from power_ratings.repositories.ratings import TeamRatingRepository
    from power_ratings.core.database import SessionLocal

    db = SessionLocal()
    ratings = TeamRatingRepository(db).find_by_season(2026)
    db.close()
"""

from power_ratings.repositories.base import BaseRepository

__all__ = ["BaseRepository"]
