"""Rating adjustment math.

Pure functions with no I/O, shared by the sync path (GameProcessor) and the
replay path (RecalculationEngine).

Sign convention: spreads are from the home team's perspective, negative
means the home team is favored. A higher rating means a stronger team.

    projected  = (away - home) - (0 if neutral else hca)
    difference = closing - projected
    adjustment = round2(difference / 2)
    away_new   = away + adjustment
    home_new   = home - adjustment

The adjustment is rounded once and applied with opposite signs, so every
game moves the two ratings by exactly the same amount.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Tuple

from power_ratings.core.config import settings
from power_ratings.services.ratings.types import ClosingSource

TWO_PLACES = Decimal("0.01")
SPREAD_PLACES = Decimal("0.1")
LEARNING_RATE = Decimal("0.5")


def to_decimal(value) -> Decimal:
    """Convert a float/int/str to Decimal through its shortest repr."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round2(value) -> Decimal:
    """Round half-up to two decimal places."""
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def project_spread(
    home_rating: float,
    away_rating: float,
    hca: float,
    is_neutral_site: bool = False
) -> float:
    """
    Projected closing spread from the home team's perspective.

    Args:
        home_rating: Home team's current rating
        away_rating: Away team's current rating
        hca: Home-court advantage in points
        is_neutral_site: If True, no HCA is applied

    Returns:
        Projected spread (negative = home favored)

    Examples:
        >>> project_spread(5, 5, 2.5, False)
        -2.5
        >>> project_spread(5, 5, 2.5, True)
        0.0
    """
    return float(_project(to_decimal(home_rating), to_decimal(away_rating), to_decimal(hca), is_neutral_site))


def _project(home: Decimal, away: Decimal, hca: Decimal, is_neutral_site: bool) -> Decimal:
    return (away - home) - (Decimal("0") if is_neutral_site else hca)


@dataclass(frozen=True)
class AdjustmentResult:
    """Every value the adjustment formula derives for one game."""
    projected_spread: float
    difference: float
    adjustment: float
    home_rating_before: float
    home_rating_after: float
    away_rating_before: float
    away_rating_after: float

    @property
    def home_delta(self) -> Decimal:
        return to_decimal(self.home_rating_after) - to_decimal(self.home_rating_before)

    @property
    def away_delta(self) -> Decimal:
        return to_decimal(self.away_rating_after) - to_decimal(self.away_rating_before)


def compute_adjustment(
    home_rating: float,
    away_rating: float,
    closing_spread: float,
    hca: float,
    is_neutral_site: bool = False
) -> AdjustmentResult:
    """
    Apply one game's closing spread to the two teams' ratings.

    Args:
        home_rating: Home team's rating before the game
        away_rating: Away team's rating before the game
        closing_spread: Market closing spread, home perspective
        hca: Home-court advantage in points
        is_neutral_site: If True, no HCA is applied

    Returns:
        AdjustmentResult with projected spread, difference, adjustment
        and before/after ratings

    Example:
        >>> r = compute_adjustment(5.0, 3.0, -3.0, 2.5)
        >>> (r.projected_spread, r.difference, r.adjustment)
        (-4.5, 1.5, 0.75)
        >>> (r.home_rating_after, r.away_rating_after)
        (4.25, 3.75)
    """
    home = round2(home_rating)
    away = round2(away_rating)
    closing = to_decimal(closing_spread)

    projected = _project(home, away, to_decimal(hca), is_neutral_site)
    difference = closing - projected
    adjustment = round2(difference * LEARNING_RATE)

    return AdjustmentResult(
        projected_spread=float(projected),
        difference=float(difference),
        adjustment=float(adjustment),
        home_rating_before=float(home),
        home_rating_after=float(home - adjustment),
        away_rating_before=float(away),
        away_rating_after=float(away + adjustment),
    )


# =============================================================================
# CLOSING LINE EXTRACTION
# =============================================================================

def _home_spread_point(bookmaker: Dict, home_team: str) -> Optional[float]:
    for market in bookmaker.get('markets') or []:
        if market.get('key') != 'spreads':
            continue
        for outcome in market.get('outcomes') or []:
            if outcome.get('name') == home_team and outcome.get('point') is not None:
                return float(outcome['point'])
    return None


def extract_closing_spread(
    odds_game: Dict,
    source: ClosingSource,
    us_bookmakers: Optional[Iterable[str]] = None
) -> Tuple[Optional[float], List[str]]:
    """
    Pull the home-perspective spread out of an odds-feed game.

    Pinnacle uses Pinnacle's home outcome. us_average averages the home
    outcome across the configured US books that priced the game, rounded
    to one decimal.

    Args:
        odds_game: Game dict from The Odds API (home_team, bookmakers)
        source: Closing source
        us_bookmakers: Book keys for us_average (defaults to settings.US_BOOKMAKERS)

    Returns:
        Tuple of (spread or None, contributing bookmaker names)
    """
    bookmakers = odds_game.get('bookmakers') or []
    home_team = odds_game.get('home_team')
    if not bookmakers or not home_team:
        return None, []

    by_key = {b.get('key'): b for b in bookmakers}

    if ClosingSource(source) == ClosingSource.PINNACLE:
        pinnacle = by_key.get('pinnacle')
        if pinnacle is None:
            return None, []
        point = _home_spread_point(pinnacle, home_team)
        return (point, ['pinnacle']) if point is not None else (None, [])

    spreads = []
    used = []
    for key in (us_bookmakers or settings.US_BOOKMAKERS):
        bookmaker = by_key.get(key)
        if bookmaker is None:
            continue
        point = _home_spread_point(bookmaker, home_team)
        if point is not None:
            spreads.append(to_decimal(point))
            used.append(bookmaker.get('title') or key)

    if not spreads:
        return None, []

    average = (sum(spreads) / len(spreads)).quantize(SPREAD_PLACES, rounding=ROUND_HALF_UP)
    return float(average), used


# =============================================================================
# SNAPSHOT TIMING
# =============================================================================

def floor_to_hour(moment: datetime) -> datetime:
    return moment.replace(minute=0, second=0, microsecond=0)


def closing_snapshot_time(kickoff: datetime, lead_minutes: int = 5) -> datetime:
    """
    Hour bucket whose odds snapshot stands in for the closing line.

    The snapshot is taken lead_minutes before tip-off and floored to the
    hour, so every game tipping within the same hour shares one request.
    """
    return floor_to_hour(kickoff - timedelta(minutes=lead_minutes))
