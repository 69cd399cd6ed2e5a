"""
Ratings repository module.

This module contains the repositories for the power ratings tables.
"""

from power_ratings.repositories.ratings.rating_repository import TeamRatingRepository, RatingsConfigRepository
from power_ratings.repositories.ratings.adjustment_repository import GameAdjustmentRepository
from power_ratings.repositories.ratings.override_repository import TeamOverrideRepository
from power_ratings.repositories.ratings.matching_log_repository import MatchingLogRepository
from power_ratings.repositories.ratings.closing_line_repository import ClosingLineRepository, MarketTeamNameRepository
from power_ratings.repositories.ratings.sync_repository import SyncRunRepository, ExcludedGameRepository

__all__ = [
    "TeamRatingRepository",
    "RatingsConfigRepository",
    "GameAdjustmentRepository",
    "TeamOverrideRepository",
    "MatchingLogRepository",
    "ClosingLineRepository",
    "MarketTeamNameRepository",
    "SyncRunRepository",
    "ExcludedGameRepository",
]
