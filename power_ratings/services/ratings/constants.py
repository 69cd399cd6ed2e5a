"""
Power ratings constants.

Seasons are named by the calendar year they end in (2026 = 2025-26).
"""
from datetime import date
from typing import Dict, Optional, Tuple

# Approximate season boundaries, used as the default sync date range
SEASON_DATES: Dict[int, Tuple[date, date]] = {
    2025: (date(2024, 11, 4), date(2025, 4, 7)),  # Through the national championship
    2026: (date(2025, 11, 3), date(2026, 4, 6)),
}

# Date whose archived ratings become the next season's preseason baseline
FINAL_RATINGS_DATE: Dict[int, date] = {
    2025: date(2025, 4, 7),
    2026: date(2026, 4, 6),
}

# Event names that mark a game as neutral-site when the feed's flag is missing
NEUTRAL_SITE_EVENTS = [
    'maui invitational',
    'battle 4 atlantis',
    'phil knight invitational',
    'phil knight legacy',
    'empire classic',
    'jimmy v classic',
    'champions classic',
    'acc tournament',
    'big ten tournament',
    'big 12 tournament',
    'sec tournament',
    'big east tournament',
    'ncaa tournament',
    'first four',
    'sweet 16',
    'elite 8',
    'final four',
    'national championship',
]


def season_range(season: int) -> Optional[Tuple[date, date]]:
    """Start and end date of a known season, or None."""
    return SEASON_DATES.get(season)


def preseason_ratings_date(season: int) -> Optional[date]:
    """Archive date of the previous season's final ratings."""
    return FINAL_RATINGS_DATE.get(season - 1)
