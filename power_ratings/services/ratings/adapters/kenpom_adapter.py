"""KenPom adapter for the preseason ratings import.

The archive endpoint returns every team's ratings as of a date; a season is
seeded from the previous season's final archive. TeamName becomes the
canonical key and AdjEM the rating.
"""
from datetime import date
from typing import Any, Dict, List, Optional

import httpx

from power_ratings.core import metrics
from power_ratings.core.config import settings
from power_ratings.core.logging import get_logger
from power_ratings.services.ratings.adapters.base import BaseHttpAdapter
from power_ratings.services.ratings.exceptions import ProviderError
from power_ratings.services.ratings.types import PreseasonRating

logger = get_logger(__name__)


class KenPomAdapter(BaseHttpAdapter):
    """Preseason ratings provider."""

    provider = "kenpom"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None
    ):
        super().__init__(client=client)
        self.api_key = api_key if api_key is not None else settings.KENPOM_API_KEY
        self.base_url = base_url or settings.KENPOM_API_BASE_URL

    async def fetch_archive_ratings(self, ratings_date: date) -> List[PreseasonRating]:
        """
        Ratings for every team as of a date.

        Raises:
            ProviderError: API key missing or the request failed after retries
        """
        return await self._fetch_archive({"endpoint": "archive", "d": ratings_date.isoformat()})

    async def fetch_preseason_ratings(self, season: int) -> List[PreseasonRating]:
        """KenPom's own preseason ratings for a season."""
        return await self._fetch_archive({"endpoint": "archive", "preseason": "true", "y": str(season)})

    async def _fetch_archive(self, params: Dict[str, str]) -> List[PreseasonRating]:
        if not self.api_key:
            metrics.record_kenpom_request("failure")
            raise ProviderError(self.provider, "KENPOM_API_KEY is not configured")

        try:
            response = await self._get(
                self.base_url,
                params=params,
                headers={"Authorization": f"Bearer {self.api_key}"}
            )
        except ProviderError:
            metrics.record_kenpom_request("failure")
            raise
        metrics.record_kenpom_request("success")

        ratings = self.parse_ratings(response.json())
        logger.info(f"Fetched {len(ratings)} KenPom ratings ({params})")
        return ratings

    @staticmethod
    def parse_ratings(rows: Any) -> List[PreseasonRating]:
        """Convert archive rows (TeamName, AdjEM, ConfShort) to PreseasonRating."""
        ratings = []
        for row in rows or []:
            name = (row.get('TeamName') or '').strip()
            adj_em = row.get('AdjEM')
            if not name or adj_em is None:
                continue
            ratings.append(PreseasonRating(
                team_name=name,
                rating=float(adj_em),
                conference=row.get('ConfShort'),
            ))
        return ratings
