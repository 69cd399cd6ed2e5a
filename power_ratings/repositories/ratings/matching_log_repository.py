"""
Repository for matching logs.

One row per (game_id, season): a later attempt at the same game replaces the
earlier outcome, so the table always shows where each game stands now.
"""
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, or_

from power_ratings.models import MatchingLog
from power_ratings.repositories.base import BaseRepository
from power_ratings.services.ratings.types import MatchStatus


class MatchingLogRepository(BaseRepository[MatchingLog]):
    """Repository for per-game sync outcomes."""

    def __init__(self, db):
        super().__init__(MatchingLog, db)

    def find_by_game(self, game_id: str, season: int) -> Optional[MatchingLog]:
        return self.where_first(
            MatchingLog.game_id == game_id,
            MatchingLog.season == season
        )

    def record(
        self,
        season: int,
        game_id: str,
        game_date: date,
        schedule_home: str,
        schedule_away: str,
        status: MatchStatus,
        matched_home: Optional[str] = None,
        matched_away: Optional[str] = None,
        skip_reason: Optional[str] = None,
        closing_spread: Optional[float] = None,
        is_neutral_site: bool = False,
        kickoff: Optional[datetime] = None,
        sync_run_id: Optional[str] = None,
    ) -> MatchingLog:
        """
        Write the outcome of a game attempt, replacing any earlier one.

        Returns:
            The matching log row (flushed, not committed)
        """
        now = datetime.utcnow()
        log = self.find_by_game(game_id, season)
        if log is None:
            log = MatchingLog(game_id=game_id, season=season, created_at=now)
            self.db.add(log)

        log.sync_run_id = sync_run_id
        log.game_date = game_date
        log.kickoff = kickoff
        log.is_neutral_site = is_neutral_site
        log.schedule_home = schedule_home
        log.schedule_away = schedule_away
        log.matched_home = matched_home
        log.matched_away = matched_away
        log.home_found = matched_home is not None
        log.away_found = matched_away is not None
        log.status = MatchStatus(status).value
        log.skip_reason = None if status == MatchStatus.SUCCESS else skip_reason
        log.closing_spread = closing_spread
        log.updated_at = now
        self.db.flush()
        return log

    def find_by_season(
        self,
        season: int,
        status: Optional[str] = None,
        failed_only: bool = False,
        limit: Optional[int] = None,
    ) -> List[MatchingLog]:
        """Logs for a season, newest games first."""
        query = self.db.query(MatchingLog).filter(MatchingLog.season == season)
        if status:
            query = query.filter(MatchingLog.status == status)
        elif failed_only:
            query = query.filter(MatchingLog.status != MatchStatus.SUCCESS.value)
        query = query.order_by(MatchingLog.game_date.desc(), MatchingLog.game_id)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def find_repair_candidates(self, season: int, raw_names: Iterable[str]) -> List[MatchingLog]:
        """
        Non-success logs whose raw home or away name is one of raw_names.

        Names are compared case-insensitively. Results are in game order
        (date, then game id) so repairs apply chronologically.
        """
        names = sorted({n.strip().lower() for n in raw_names if n and n.strip()})
        if not names:
            return []

        return self.db.query(MatchingLog).filter(
            MatchingLog.season == season,
            MatchingLog.status != MatchStatus.SUCCESS.value,
            or_(
                func.lower(MatchingLog.schedule_home).in_(names),
                func.lower(MatchingLog.schedule_away).in_(names)
            )
        ).order_by(MatchingLog.game_date, MatchingLog.game_id).all()

    def unresolved_names(self, season: int) -> List[str]:
        """Raw schedule names that failed resolution at least once, sorted."""
        names = set()
        rows = self.db.query(MatchingLog).filter(
            MatchingLog.season == season,
            or_(MatchingLog.home_found.is_(False), MatchingLog.away_found.is_(False))
        ).all()
        for row in rows:
            if not row.home_found:
                names.add(row.schedule_home)
            if not row.away_found:
                names.add(row.schedule_away)
        return sorted(names)

    def status_counts(self, season: int) -> Dict[str, int]:
        """Count of logs per status, with every status present."""
        counts = {status.value: 0 for status in MatchStatus}
        counts.update(self.group_by_and_count('status', MatchingLog.season == season))
        return counts

    def delete_season(self, season: int) -> int:
        count = self.db.query(MatchingLog).filter(
            MatchingLog.season == season
        ).delete(synchronize_session='fetch')
        self.db.flush()
        return count

    def find_by_run(self, sync_run_id: str) -> List[MatchingLog]:
        """Logs last written by a run, in game order."""
        return self.db.query(MatchingLog).filter(
            MatchingLog.sync_run_id == sync_run_id
        ).order_by(MatchingLog.game_date, MatchingLog.game_id).all()
