"""Value types shared by the ratings services."""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional


class ClosingSource(str, Enum):
    """Which market the closing spread is taken from."""
    PINNACLE = "pinnacle"
    US_AVERAGE = "us_average"


class MatchStatus(str, Enum):
    """Terminal state of one game attempt, as written to the matching log."""
    SUCCESS = "success"
    HOME_NOT_FOUND = "home_not_found"
    AWAY_NOT_FOUND = "away_not_found"
    BOTH_NOT_FOUND = "both_not_found"
    NO_ODDS = "no_odds"  # No matching market fixture
    NO_SPREAD = "no_spread"  # Fixture found, no usable spread

    @classmethod
    def for_resolution(cls, home_found: bool, away_found: bool) -> "MatchStatus":
        if home_found and away_found:
            return cls.SUCCESS
        if not home_found and not away_found:
            return cls.BOTH_NOT_FOUND
        return cls.HOME_NOT_FOUND if not home_found else cls.AWAY_NOT_FOUND


class RunKind(str, Enum):
    SYNC = "sync"
    RECALCULATE = "recalculate"
    OVERRIDE_REPAIR = "override_repair"
    INITIALIZE = "initialize"


@dataclass
class ScheduleGame:
    """A completed game as reported by the schedule feed (raw team names)."""
    game_id: str
    game_date: date
    home_team: str
    away_team: str
    is_neutral_site: bool = False
    kickoff: Optional[datetime] = None  # UTC, naive
    home_score: Optional[int] = None
    away_score: Optional[int] = None


@dataclass
class PreseasonRating:
    """One row of the preseason ratings import."""
    team_name: str
    rating: float
    conference: Optional[str] = None


@dataclass
class ClosingLineResult:
    """
    Outcome of a closing-line lookup.

    spread is home-perspective (negative = home favored). When spread is
    None, status says why (NO_ODDS or NO_SPREAD) and reason carries the
    operator-facing detail.
    """
    source: ClosingSource
    spread: Optional[float] = None
    bookmakers: List[str] = field(default_factory=list)
    status: MatchStatus = MatchStatus.NO_ODDS
    reason: Optional[str] = None
    odds_event_id: Optional[str] = None
    market_home: Optional[str] = None
    market_away: Optional[str] = None
    snapshot_time: Optional[datetime] = None

    @property
    def found(self) -> bool:
        return self.spread is not None
