"""
Database models for the power ratings service.

Import from here rather than from the individual module:
    from power_ratings.models import TeamRating, GameAdjustment
"""
from power_ratings.models.ratings import (
    Base,
    TeamRating,
    GameAdjustment,
    RatingsConfig,
    TeamOverride,
    MarketTeamName,
    MatchingLog,
    ClosingLine,
    ExcludedGame,
    SyncRun,
)

__all__ = [
    "Base",
    "TeamRating",
    "GameAdjustment",
    "RatingsConfig",
    "TeamOverride",
    "MarketTeamName",
    "MatchingLog",
    "ClosingLine",
    "ExcludedGame",
    "SyncRun",
]
