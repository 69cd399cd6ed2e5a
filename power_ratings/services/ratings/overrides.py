"""Operator-facing override management.

Adding or updating an override commits it first and then runs the override
repair for the season, so a fixed name takes effect on past failures
immediately instead of waiting for the next sync.
"""
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from power_ratings.core.logging import get_logger
from power_ratings.models import TeamOverride
from power_ratings.repositories.ratings import TeamOverrideRepository, TeamRatingRepository
from power_ratings.services.ratings.exceptions import (
    OverrideNotFoundError,
    RatingsValidationError,
    RunInProgressError,
)
from power_ratings.services.ratings.override_repair import OverrideRepairWorkflow
from power_ratings.services.ratings.queries import current_config_values

logger = get_logger(__name__)

OVERRIDE_SOURCES = ("manual", "auto")


def serialize_override(override: TeamOverride) -> Dict:
    return {
        'id': override.id,
        'source_name': override.source_name,
        'canonical_name': override.canonical_name,
        'schedule_name': override.schedule_name,
        'odds_api_name': override.odds_api_name,
        'secondary_name': override.secondary_name,
        'source': override.source,
        'notes': override.notes,
        'created_at': override.created_at.isoformat() if override.created_at else None,
        'updated_at': override.updated_at.isoformat() if override.updated_at else None,
    }


class OverrideService:
    """
    CRUD for team name overrides plus the repair that follows a change.

    Args:
        db: SQLAlchemy session
        repair_workflow: OverrideRepairWorkflow (defaults to one on db)
    """

    def __init__(self, db: Session, repair_workflow: Optional[OverrideRepairWorkflow] = None):
        self.db = db
        self.overrides = TeamOverrideRepository(db)
        self.ratings = TeamRatingRepository(db)
        self.repair_workflow = repair_workflow or OverrideRepairWorkflow(db)

    def list_overrides(self) -> List[Dict]:
        return [serialize_override(o) for o in self.overrides.find_all_ordered()]

    def get(self, override_id: int) -> TeamOverride:
        override = self.overrides.find_by_id(override_id)
        if override is None:
            raise OverrideNotFoundError(override_id)
        return override

    async def add(
        self,
        source_name: str,
        canonical_name: str,
        schedule_name: Optional[str] = None,
        odds_api_name: Optional[str] = None,
        secondary_name: Optional[str] = None,
        source: str = "manual",
        notes: Optional[str] = None,
        season: Optional[int] = None,
    ) -> Dict:
        """
        Create an override, or update the one with the same source name.

        Returns:
            Dict with the override, whether it was created, and the repair
            result for the season

        Raises:
            RatingsValidationError: Blank names or unknown source
        """
        _validate(source_name, canonical_name, source)
        override, created = self.overrides.upsert(
            source_name=source_name,
            canonical_name=canonical_name,
            schedule_name=schedule_name,
            odds_api_name=odds_api_name,
            secondary_name=secondary_name,
            source=source,
            notes=notes,
        )
        self.db.commit()
        logger.info(
            f"{'Added' if created else 'Updated'} override '{override.source_name}' → "
            f"'{override.canonical_name}'"
        )
        return await self._after_change(override, created, season)

    async def update(
        self,
        override_id: int,
        season: Optional[int] = None,
        **fields
    ) -> Dict:
        """
        Change fields of an existing override and repair the season.

        Args:
            override_id: Override primary key
            season: Season to repair (defaults to the configured season)
            **fields: Any of source_name, canonical_name, schedule_name,
                odds_api_name, secondary_name, source, notes

        Raises:
            OverrideNotFoundError: No override with that id
            RatingsValidationError: Blank names, unknown source, or the new
                source name belongs to another override
        """
        override = self.get(override_id)

        source_name = fields.get('source_name') or override.source_name
        canonical_name = fields.get('canonical_name') or override.canonical_name
        source = fields.get('source') or override.source
        _validate(source_name, canonical_name, source)

        clash = self.overrides.find_by_source_name(source_name)
        if clash is not None and clash.id != override.id:
            raise RatingsValidationError(
                f"Another override (id {clash.id}) already uses source name '{clash.source_name}'"
            )

        override.source_name = source_name.strip()
        override.canonical_name = canonical_name.strip()
        override.source = source
        for name in ('schedule_name', 'odds_api_name', 'secondary_name', 'notes'):
            if name in fields:
                value = fields[name]
                setattr(override, name, (value.strip() or None) if isinstance(value, str) else value)
        override.updated_at = datetime.utcnow()
        self.db.commit()

        logger.info(f"Updated override {override_id} ('{override.source_name}')")
        return await self._after_change(override, False, season)

    def delete(self, override_id: int) -> Dict:
        """
        Remove an override. Processed games and their logs are left alone.

        Raises:
            OverrideNotFoundError: No override with that id
        """
        override = self.get(override_id)
        result = serialize_override(override)
        self.db.delete(override)
        self.db.commit()
        logger.info(f"Deleted override {override_id} ('{result['source_name']}')")
        return result

    async def _after_change(self, override: TeamOverride, created: bool, season: Optional[int]) -> Dict:
        season = season or current_config_values(self.db)['season']
        warning = None
        if (self.ratings.has_season(season)
                and self.ratings.find_by_team(season, override.canonical_name) is None):
            warning = (
                f"'{override.canonical_name}' has no rating in season {season}; "
                f"the override is ignored until it does"
            )
            logger.warning(warning)

        try:
            repair = await self.repair_workflow.repair(override, season)
        except RunInProgressError as e:
            logger.warning(f"Override repair deferred: {e}")
            repair = {'season': season, 'deferred': True, 'message': str(e)}

        return {
            'override': serialize_override(override),
            'created': created,
            'warning': warning,
            'repair': repair,
        }


def _validate(source_name: Optional[str], canonical_name: Optional[str], source: str):
    if not source_name or not source_name.strip():
        raise RatingsValidationError("source_name is required")
    if not canonical_name or not canonical_name.strip():
        raise RatingsValidationError("canonical_name is required")
    if source not in OVERRIDE_SOURCES:
        raise RatingsValidationError(
            f"source must be one of {', '.join(OVERRIDE_SOURCES)}, got '{source}'"
        )
