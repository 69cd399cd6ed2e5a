"""The Odds API adapter for historical NCAAB spreads.

Endpoint: {base}/historical/sports/basketball_ncaab/odds
- pinnacle:   regions=eu, bookmakers=pinnacle
- us_average: regions=us, bookmakers=<configured US books>

Each call returns every fixture priced at the snapshot time, so one call
covers every game tipping in the same hour bucket.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from power_ratings.core import metrics
from power_ratings.core.config import settings
from power_ratings.core.logging import get_logger
from power_ratings.services.ratings.adapters.base import BaseHttpAdapter
from power_ratings.services.ratings.exceptions import ProviderError
from power_ratings.services.ratings.types import ClosingSource

logger = get_logger(__name__)


class OddsApiAdapter(BaseHttpAdapter):
    """
    Market-odds feed.

    Usage:
        adapter = OddsApiAdapter()
        fixtures = await adapter.fetch_historical_odds(datetime(2025, 11, 4, 23), ClosingSource.PINNACLE)
    """

    provider = "odds_api"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        sport_key: Optional[str] = None,
        us_bookmakers: Optional[List[str]] = None
    ):
        super().__init__(client=client, timeout=settings.ODDS_API_TIMEOUT)
        self.api_key = api_key if api_key is not None else settings.THE_ODDS_API_KEY
        self.base_url = (base_url or settings.ODDS_API_BASE_URL).rstrip('/')
        self.sport_key = sport_key or settings.ODDS_SPORT_KEY
        self.us_bookmakers = us_bookmakers or settings.US_BOOKMAKERS

    def _params(self, snapshot_time: datetime, source: ClosingSource) -> Dict[str, Any]:
        pinnacle = ClosingSource(source) == ClosingSource.PINNACLE
        return {
            "apiKey": self.api_key,
            "regions": "eu" if pinnacle else "us",
            "markets": "spreads",
            "oddsFormat": "american",
            "date": snapshot_time.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "bookmakers": "pinnacle" if pinnacle else ",".join(self.us_bookmakers),
        }

    async def fetch_historical_odds(
        self,
        snapshot_time: datetime,
        source: ClosingSource
    ) -> List[Dict[str, Any]]:
        """
        Fixtures with spreads as of a snapshot time.

        Args:
            snapshot_time: Naive UTC snapshot time
            source: Closing source (selects region and bookmakers)

        Returns:
            List of fixture dicts (id, commence_time as naive UTC datetime,
            home_team, away_team, bookmakers)

        Raises:
            ProviderError: API key missing or the request failed after retries
        """
        if not self.api_key:
            metrics.record_odds_api_request_failure("missing_api_key")
            raise ProviderError(self.provider, "THE_ODDS_API_KEY is not configured")

        url = f"{self.base_url}/historical/sports/{self.sport_key}/odds"
        try:
            response = await self._get(url, params=self._params(snapshot_time, source))
        except ProviderError as e:
            metrics.record_odds_api_request_failure(type(e.__cause__).__name__ if e.__cause__ else "unknown")
            raise

        metrics.record_odds_api_request_success()
        self._record_quota(response.headers)

        payload = response.json()
        fixtures = payload.get('data', []) if isinstance(payload, dict) else payload
        result = [self._normalize(f) for f in fixtures or []]
        logger.info(
            f"Fetched {len(result)} fixtures from The Odds API at {snapshot_time.isoformat()} "
            f"({ClosingSource(source).value})"
        )
        return result

    @staticmethod
    def _normalize(fixture: Dict[str, Any]) -> Dict[str, Any]:
        commence_time = fixture.get('commence_time')
        if isinstance(commence_time, str):
            try:
                parsed = datetime.fromisoformat(commence_time.replace('Z', '+00:00'))
                commence_time = parsed.astimezone(timezone.utc).replace(tzinfo=None)
            except ValueError:
                commence_time = None

        return {
            'id': fixture.get('id'),
            'commence_time': commence_time,
            'home_team': fixture.get('home_team'),
            'away_team': fixture.get('away_team'),
            'bookmakers': fixture.get('bookmakers', []),
        }

    @staticmethod
    def _record_quota(headers: httpx.Headers):
        remaining = headers.get('x-requests-remaining')
        used = headers.get('x-requests-used')
        if remaining is None or used is None:
            return
        try:
            metrics.update_odds_api_quota(int(float(remaining)), int(float(used)))
        except ValueError:
            return
        logger.debug(f"Odds API quota: {remaining} remaining, {used} used")
