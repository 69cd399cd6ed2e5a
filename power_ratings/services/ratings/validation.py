"""Input checks shared by the run entry points (sync, recalculate, seed)."""
from datetime import date
from typing import Optional, Tuple

from power_ratings.services.ratings.constants import season_range
from power_ratings.services.ratings.exceptions import RatingsValidationError
from power_ratings.services.ratings.types import ClosingSource

MIN_SEASON = 2000
MAX_HCA = 10.0


def validate_season(season) -> int:
    if not isinstance(season, int) or isinstance(season, bool) or season < MIN_SEASON:
        raise RatingsValidationError(f"Invalid season: {season!r}")
    return season


def validate_hca(hca: float) -> float:
    if hca < 0 or hca > MAX_HCA:
        raise RatingsValidationError(f"hca must be between 0 and {MAX_HCA}, got {hca}")
    return hca


def validate_closing_source(closing_source: str) -> ClosingSource:
    try:
        return ClosingSource(closing_source)
    except ValueError:
        valid = ", ".join(s.value for s in ClosingSource)
        raise RatingsValidationError(
            f"Unknown closing source '{closing_source}' (expected one of: {valid})"
        ) from None


def resolve_date_range(
    season: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    today: Optional[date] = None,
) -> Tuple[date, date]:
    """
    Fill in default sync dates from the season calendar.

    start_date defaults to the season start, end_date to the earlier of the
    season end and today.

    Raises:
        RatingsValidationError: Unknown season without explicit dates, or
            start_date after end_date
    """
    validate_season(season)
    bounds = season_range(season)
    if bounds is None and (start_date is None or end_date is None):
        raise RatingsValidationError(
            f"No known dates for season {season}; pass start_date and end_date"
        )

    if start_date is None:
        start_date = bounds[0]
    if end_date is None:
        end_date = min(bounds[1], today or date.today())
    if start_date > end_date:
        raise RatingsValidationError(f"start_date {start_date} is after end_date {end_date}")
    return start_date, end_date
