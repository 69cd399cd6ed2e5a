"""External feed adapters: schedule (ESPN), market odds (The Odds API), preseason ratings (KenPom), secondary names (Barttorvik)."""
from power_ratings.services.ratings.adapters.espn_schedule_adapter import EspnScheduleAdapter
from power_ratings.services.ratings.adapters.odds_api_adapter import OddsApiAdapter
from power_ratings.services.ratings.adapters.kenpom_adapter import KenPomAdapter
from power_ratings.services.ratings.adapters.barttorvik_adapter import BarttorvikAdapter

__all__ = [
    "EspnScheduleAdapter",
    "OddsApiAdapter",
    "KenPomAdapter",
    "BarttorvikAdapter",
]
