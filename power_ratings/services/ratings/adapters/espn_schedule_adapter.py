"""ESPN scoreboard adapter for completed men's college basketball games.

ESPN API Endpoint:
- https://site.api.espn.com/apis/site/v2/sports/basketball/mens-college-basketball/scoreboard
- Params: dates=YYYYMMDD, limit=200, groups=50 (all Division I)

One request per calendar day. A game's date is the scoreboard day it was
listed under; kickoff is kept in UTC for closing-line timing.
"""
import asyncio
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx

from power_ratings.core import metrics
from power_ratings.core.config import settings
from power_ratings.core.logging import get_logger
from power_ratings.services.ratings.adapters.base import BaseHttpAdapter
from power_ratings.services.ratings.constants import NEUTRAL_SITE_EVENTS
from power_ratings.services.ratings.exceptions import ProviderError
from power_ratings.services.ratings.types import ScheduleGame

logger = get_logger(__name__)

DIVISION_I_GROUP = "50"


class EspnScheduleAdapter(BaseHttpAdapter):
    """
    Schedule and score feed.

    Usage:
        adapter = EspnScheduleAdapter()
        games = await adapter.fetch_completed_games(date(2025, 11, 3), date(2025, 11, 9))
        await adapter.close()
    """

    provider = "espn"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        request_delay_ms: Optional[int] = None
    ):
        super().__init__(client=client, timeout=settings.ESPN_API_TIMEOUT)
        self.base_url = base_url or settings.ESPN_SCOREBOARD_URL
        self.request_delay_ms = (
            settings.SYNC_REQUEST_DELAY_MS if request_delay_ms is None else request_delay_ms
        )

    async def fetch_completed_games(self, start_date: date, end_date: date) -> List[ScheduleGame]:
        """
        Completed games between two dates (inclusive), in date order.

        Raises:
            ProviderError: A scoreboard request failed after retries
        """
        games: List[ScheduleGame] = []
        seen = set()
        day = start_date
        while day <= end_date:
            for game in await self.fetch_day(day):
                if game.game_id not in seen:
                    seen.add(game.game_id)
                    games.append(game)
            day += timedelta(days=1)
            if day <= end_date and self.request_delay_ms:
                await asyncio.sleep(self.request_delay_ms / 1000)

        logger.info(f"Fetched {len(games)} completed games from ESPN ({start_date} to {end_date})")
        return games

    async def fetch_day(self, day: date) -> List[ScheduleGame]:
        """Completed games on one scoreboard day."""
        params = {"dates": day.strftime("%Y%m%d"), "limit": 200, "groups": DIVISION_I_GROUP}
        try:
            response = await self._get(self.base_url, params=params)
        except ProviderError as e:
            metrics.record_espn_api_request_failure(type(e.__cause__).__name__ if e.__cause__ else "unknown")
            raise
        metrics.record_espn_api_request_success()
        return self.parse_scoreboard(response.json(), day)

    @classmethod
    def parse_scoreboard(cls, data: Dict[str, Any], day: date) -> List[ScheduleGame]:
        """Parse a scoreboard payload, keeping only completed games."""
        games = []
        for event in data.get('events') or []:
            game = cls._parse_event(event, day)
            if game is not None:
                games.append(game)
        return games

    @classmethod
    def _parse_event(cls, event: Dict[str, Any], day: date) -> Optional[ScheduleGame]:
        competitions = event.get('competitions') or []
        if not competitions:
            return None
        competition = competitions[0]

        if not cls._is_completed(competition.get('status') or event.get('status') or {}):
            return None

        home = away = None
        for competitor in competition.get('competitors') or []:
            if competitor.get('homeAway') == 'home':
                home = competitor
            elif competitor.get('homeAway') == 'away':
                away = competitor
        if home is None or away is None:
            return None

        return ScheduleGame(
            game_id=str(event.get('id')),
            game_date=day,
            home_team=cls._team_name(home),
            away_team=cls._team_name(away),
            is_neutral_site=cls._is_neutral(competition),
            kickoff=cls._parse_kickoff(event.get('date') or competition.get('date')),
            home_score=cls._score(home),
            away_score=cls._score(away),
        )

    @staticmethod
    def _is_completed(status: Dict[str, Any]) -> bool:
        status_type = status.get('type') or {}
        return status_type.get('completed') is True or status_type.get('state') == 'post'

    @staticmethod
    def _team_name(competitor: Dict[str, Any]) -> str:
        team = competitor.get('team') or {}
        return team.get('displayName') or team.get('name') or 'Unknown'

    @staticmethod
    def _score(competitor: Dict[str, Any]) -> Optional[int]:
        try:
            return int(competitor.get('score'))
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _is_neutral(competition: Dict[str, Any]) -> bool:
        if competition.get('neutralSite') is True:
            return True
        if (competition.get('venue') or {}).get('neutral') is True:
            return True
        for note in competition.get('notes') or []:
            headline = (note.get('headline') or '').lower()
            if any(event in headline for event in NEUTRAL_SITE_EVENTS):
                return True
        return False

    @staticmethod
    def _parse_kickoff(value: Optional[str]) -> Optional[datetime]:
        """Parse an ESPN ISO timestamp ("2025-11-04T00:00Z") to naive UTC."""
        if not value:
            return None
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            logger.warning(f"Unparseable ESPN date: {value}")
            return None
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
