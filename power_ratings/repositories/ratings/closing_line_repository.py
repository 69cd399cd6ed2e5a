"""
Repositories for persisted market data: closing lines and the odds feed's
team-name vocabulary.
"""
import json
from datetime import date, datetime
from typing import Iterable, List, Optional

from power_ratings.models import ClosingLine, MarketTeamName
from power_ratings.repositories.base import BaseRepository


class ClosingLineRepository(BaseRepository[ClosingLine]):
    """Repository for closing spreads that were found."""

    def __init__(self, db):
        super().__init__(ClosingLine, db)

    def find_by_game_id(self, game_id: str) -> Optional[ClosingLine]:
        return self.where_first(ClosingLine.game_id == game_id)

    def save(
        self,
        game_id: str,
        game_date: date,
        home_team: str,
        away_team: str,
        closing_spread: float,
        closing_source: str,
        bookmakers: List[str],
        snapshot_time: datetime,
        odds_event_id: Optional[str] = None,
    ) -> ClosingLine:
        """Insert or replace the closing line for a game."""
        line = self.find_by_game_id(game_id)
        if line is None:
            line = ClosingLine(game_id=game_id)
            self.db.add(line)

        line.odds_event_id = odds_event_id
        line.game_date = game_date
        line.home_team = home_team
        line.away_team = away_team
        line.closing_spread = closing_spread
        line.closing_source = closing_source
        line.bookmakers = json.dumps(bookmakers)
        line.snapshot_time = snapshot_time
        line.fetched_at = datetime.utcnow()
        self.db.flush()
        return line

    @staticmethod
    def bookmaker_list(line: ClosingLine) -> List[str]:
        if not line.bookmakers:
            return []
        return json.loads(line.bookmakers)


class MarketTeamNameRepository(BaseRepository[MarketTeamName]):
    """Repository for team names observed in the odds feed."""

    def __init__(self, db):
        super().__init__(MarketTeamName, db)

    def record_seen(self, names: Iterable[str]) -> int:
        """
        Record names seen in an odds snapshot.

        Returns:
            Number of names not seen before
        """
        now = datetime.utcnow()
        unique = {n.strip() for n in names if n and n.strip()}
        if not unique:
            return 0

        existing = {
            row.team_name: row
            for row in self.db.query(MarketTeamName).filter(
                MarketTeamName.team_name.in_(unique)
            ).all()
        }
        added = 0
        for name in sorted(unique):
            row = existing.get(name)
            if row is None:
                self.db.add(MarketTeamName(team_name=name, first_seen_at=now, last_seen_at=now))
                added += 1
            else:
                row.last_seen_at = now
        self.db.flush()
        return added

    def all_names(self) -> List[str]:
        rows = self.db.query(MarketTeamName.team_name).order_by(MarketTeamName.team_name).all()
        return [name for (name,) in rows]
