"""
Repository for team name overrides.

source_name is unique and compared case-insensitively, so an operator
re-entering "knights" updates the existing "Knights" row instead of adding
a second one.
"""
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func

from power_ratings.models import TeamOverride
from power_ratings.repositories.base import BaseRepository

ALIAS_FIELDS = ("schedule_name", "odds_api_name", "secondary_name")


class TeamOverrideRepository(BaseRepository[TeamOverride]):
    """Repository for operator-curated name overrides."""

    def __init__(self, db):
        super().__init__(TeamOverride, db)

    def find_by_source_name(self, source_name: str) -> Optional[TeamOverride]:
        return self.where_first(
            func.lower(TeamOverride.source_name) == source_name.strip().lower()
        )

    def find_all_ordered(self) -> List[TeamOverride]:
        return self.db.query(TeamOverride).order_by(TeamOverride.source_name).all()

    def upsert(
        self,
        source_name: str,
        canonical_name: str,
        schedule_name: Optional[str] = None,
        odds_api_name: Optional[str] = None,
        secondary_name: Optional[str] = None,
        source: str = "manual",
        notes: Optional[str] = None,
    ) -> Tuple[TeamOverride, bool]:
        """
        Insert an override or update the one with the same source name.

        Returns:
            Tuple of (override, created)
        """
        now = datetime.utcnow()
        override = self.find_by_source_name(source_name)
        created = override is None

        if created:
            override = TeamOverride(
                source_name=source_name.strip(),
                created_at=now,
            )
            self.db.add(override)

        override.canonical_name = canonical_name.strip()
        override.schedule_name = _clean(schedule_name)
        override.odds_api_name = _clean(odds_api_name)
        override.secondary_name = _clean(secondary_name)
        override.source = source
        override.notes = notes
        override.updated_at = now
        self.db.flush()

        return override, created


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None
