"""Barttorvik adapter for the secondary team-name vocabulary.

Only names are used; Barttorvik's ratings never feed the adjustment math.
The season results file is a JSON array of arrays whose second element is
the team name.
"""
from typing import Any, List, Optional

import httpx

from power_ratings.core.config import settings
from power_ratings.core.logging import get_logger
from power_ratings.services.ratings.adapters.base import BaseHttpAdapter

logger = get_logger(__name__)

TEAM_NAME_COLUMN = 1


class BarttorvikAdapter(BaseHttpAdapter):
    """Secondary ratings feed (names only)."""

    provider = "barttorvik"

    def __init__(self, client: Optional[httpx.AsyncClient] = None, base_url: Optional[str] = None):
        super().__init__(client=client)
        self.base_url = (base_url or settings.BARTTORVIK_BASE_URL).rstrip('/')

    async def fetch_team_names(self, season: int) -> List[str]:
        """
        Team names for a season, sorted.

        Raises:
            ProviderError: The request failed after retries
        """
        response = await self._get(f"{self.base_url}/{season}_team_results.json")
        names = self.parse_team_names(response.json())
        logger.info(f"Fetched {len(names)} Barttorvik team names for {season}")
        return names

    @staticmethod
    def parse_team_names(rows: Any) -> List[str]:
        names = set()
        for row in rows or []:
            if isinstance(row, dict):
                name = row.get('team')
            elif isinstance(row, (list, tuple)) and len(row) > TEAM_NAME_COLUMN:
                name = row[TEAM_NAME_COLUMN]
            else:
                name = None
            if isinstance(name, str) and name.strip():
                names.add(name.strip())
        return sorted(names)
