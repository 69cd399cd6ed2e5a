"""Closing-line acquisition.

A game's closing line is looked up in three layers:
1. ClosingLineCache (in memory, per game and source, with a TTL)
2. closing_lines table (durable, successful lookups only)
3. The Odds API historical snapshot for the hour bucket before tip-off

Every outcome of layer 3 (found, no fixture, no spread) is memoized in the
cache so a run never asks twice about the same game. Snapshots are memoized
per (source, hour bucket) so games tipping in the same hour share one
request. Provider errors are not memoized.
"""
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Hashable, List, Optional

from sqlalchemy.orm import Session

from power_ratings.core import metrics
from power_ratings.core.config import settings
from power_ratings.core.logging import get_logger
from power_ratings.repositories.ratings import ClosingLineRepository, MarketTeamNameRepository
from power_ratings.services.ratings.engine import closing_snapshot_time, extract_closing_spread
from power_ratings.services.ratings.exceptions import ProviderError
from power_ratings.services.ratings.name_resolver import OverrideIndex, TeamNameResolver
from power_ratings.services.ratings.types import ClosingLineResult, ClosingSource, MatchStatus, ScheduleGame

logger = get_logger(__name__)

FIXTURE_WINDOW = timedelta(hours=12)


class ClosingLineCache:
    """
    In-memory TTL cache for closing-line lookups and odds snapshots.

    Pass one instance to every service that should share it; tests create
    their own to keep runs independent.
    """

    def __init__(self, ttl_seconds: Optional[int] = None, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = settings.CLOSING_LINE_CACHE_TTL if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._entries: Dict[Hashable, tuple] = {}

    def get(self, key: Hashable, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return default
        return value

    def put(self, key: Hashable, value: Any) -> None:
        now = self._clock()
        self._sweep(now)
        self._entries[key] = (now + self.ttl_seconds, value)

    def _sweep(self, now: float) -> None:
        """Drop every expired entry."""
        expired = [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]
        for k in expired:
            del self._entries[k]

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        return len(self._entries)

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        """Drop one entry, or everything when key is None."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    @staticmethod
    def game_key(game_id: str, source: ClosingSource) -> tuple:
        return ("game", game_id, ClosingSource(source).value)

    @staticmethod
    def snapshot_key(snapshot_time: datetime, source: ClosingSource) -> tuple:
        return ("snapshot", ClosingSource(source).value, snapshot_time.isoformat())


_MISSING = object()


class ClosingLineService:
    """
    Acquires home-perspective closing spreads for schedule games.

    Args:
        db: SQLAlchemy session (writes are flushed; the caller commits)
        odds_adapter: Object with async fetch_historical_odds(snapshot_time, source)
        cache: Shared ClosingLineCache
        resolver: TeamNameResolver used for fixture pairing
    """

    def __init__(
        self,
        db: Session,
        odds_adapter,
        cache: ClosingLineCache,
        resolver: TeamNameResolver,
        lead_minutes: Optional[int] = None,
        us_bookmakers: Optional[List[str]] = None,
    ):
        self.db = db
        self.odds_adapter = odds_adapter
        self.cache = cache
        self.resolver = resolver
        self.lead_minutes = settings.CLOSING_LINE_LEAD_MINUTES if lead_minutes is None else lead_minutes
        self.us_bookmakers = us_bookmakers or settings.US_BOOKMAKERS
        self.lines = ClosingLineRepository(db)
        self.market_names = MarketTeamNameRepository(db)

    def cached_line(self, game_id: str, source: ClosingSource) -> Optional[ClosingLineResult]:
        """
        A closing line already known for the game, without calling the provider.

        Returns:
            Found ClosingLineResult, or None
        """
        source = ClosingSource(source)
        cached = self.cache.get(ClosingLineCache.game_key(game_id, source))
        if cached is not None and cached.found:
            return cached
        return self._from_store(game_id, source)

    async def acquire(
        self,
        game: ScheduleGame,
        source: ClosingSource,
        override_index: Optional[OverrideIndex] = None
    ) -> ClosingLineResult:
        """
        Closing line for a game, from cache, store or the odds provider.

        Args:
            game: Schedule game (raw names, kickoff)
            source: Closing source selector
            override_index: Overrides supplying pinned odds-feed spellings

        Returns:
            ClosingLineResult; when no spread is available, status is
            NO_ODDS or NO_SPREAD with a reason
        """
        source = ClosingSource(source)
        key = ClosingLineCache.game_key(game.game_id, source)

        cached = self.cache.get(key)
        if cached is not None:
            metrics.record_closing_line_cache_hit('memory')
            return cached

        stored = self._from_store(game.game_id, source)
        if stored is not None:
            metrics.record_closing_line_cache_hit('store')
            self.cache.put(key, stored)
            return stored

        if game.kickoff is None:
            result = ClosingLineResult(
                source=source,
                status=MatchStatus.NO_ODDS,
                reason="No kickoff time in schedule feed; cannot pick an odds snapshot",
            )
            self.cache.put(key, result)
            return result

        snapshot_time = closing_snapshot_time(game.kickoff, self.lead_minutes)
        try:
            odds_games = await self._snapshot(snapshot_time, source)
        except ProviderError as e:
            logger.warning(f"Odds snapshot failed for game {game.game_id}: {e}")
            return ClosingLineResult(
                source=source,
                status=MatchStatus.NO_ODDS,
                reason=f"Odds provider error: {e}",
                snapshot_time=snapshot_time,
            )

        fixture = self.find_fixture(game, odds_games, override_index)
        if fixture is None:
            result = ClosingLineResult(
                source=source,
                status=MatchStatus.NO_ODDS,
                reason=(
                    f"No odds fixture for {game.away_team} @ {game.home_team} "
                    f"in snapshot {snapshot_time.isoformat()}"
                ),
                snapshot_time=snapshot_time,
            )
            self.cache.put(key, result)
            return result

        spread, bookmakers = extract_closing_spread(fixture, source, self.us_bookmakers)
        result = ClosingLineResult(
            source=source,
            spread=spread,
            bookmakers=bookmakers,
            odds_event_id=fixture.get('id'),
            market_home=fixture.get('home_team'),
            market_away=fixture.get('away_team'),
            snapshot_time=snapshot_time,
        )

        if spread is None:
            result.status = MatchStatus.NO_SPREAD
            result.reason = (
                f"Fixture {fixture.get('away_team')} @ {fixture.get('home_team')} "
                f"has no {source.value} spread"
            )
        else:
            result.status = MatchStatus.SUCCESS
            self.lines.save(
                game_id=game.game_id,
                game_date=game.game_date,
                home_team=fixture.get('home_team'),
                away_team=fixture.get('away_team'),
                closing_spread=spread,
                closing_source=source.value,
                bookmakers=bookmakers,
                snapshot_time=snapshot_time,
                odds_event_id=fixture.get('id'),
            )

        self.cache.put(key, result)
        return result

    def find_fixture(
        self,
        game: ScheduleGame,
        odds_games: List[Dict],
        override_index: Optional[OverrideIndex] = None
    ) -> Optional[Dict]:
        """
        Pair a schedule game with its odds-feed fixture.

        Exact spellings (including operator-pinned odds names) are tried
        before the loose name comparison. Fixtures far from the schedule
        kickoff are ignored when both times are known.
        """
        home_alias = override_index.market_name(game.home_team) if override_index else None
        away_alias = override_index.market_name(game.away_team) if override_index else None

        candidates = [g for g in odds_games if self._near_kickoff(game, g)]

        def exact(raw: str, alias: Optional[str], market: str) -> bool:
            market = (market or "").lower()
            return market == raw.lower() or (alias is not None and market == alias.lower())

        for odds_game in candidates:
            if (exact(game.home_team, home_alias, odds_game.get('home_team'))
                    and exact(game.away_team, away_alias, odds_game.get('away_team'))):
                return odds_game

        for odds_game in candidates:
            home_ok = (exact(game.home_team, home_alias, odds_game.get('home_team'))
                       or self.resolver.names_match(game.home_team, odds_game.get('home_team')))
            away_ok = (exact(game.away_team, away_alias, odds_game.get('away_team'))
                       or self.resolver.names_match(game.away_team, odds_game.get('away_team')))
            if home_ok and away_ok:
                return odds_game

        return None

    @staticmethod
    def _near_kickoff(game: ScheduleGame, odds_game: Dict) -> bool:
        commence = odds_game.get('commence_time')
        if game.kickoff is None or not isinstance(commence, datetime):
            return True
        return abs(commence - game.kickoff) <= FIXTURE_WINDOW

    async def _snapshot(self, snapshot_time: datetime, source: ClosingSource) -> List[Dict]:
        key = ClosingLineCache.snapshot_key(snapshot_time, source)
        odds_games = self.cache.get(key)
        if odds_games is not None:
            return odds_games

        odds_games = await self.odds_adapter.fetch_historical_odds(snapshot_time, source)
        self.cache.put(key, odds_games)

        names = []
        for odds_game in odds_games:
            names.extend([odds_game.get('home_team'), odds_game.get('away_team')])
        added = self.market_names.record_seen(names)
        if added:
            logger.info(f"Recorded {added} new odds-feed team names")

        return odds_games

    def _from_store(self, game_id: str, source: ClosingSource) -> Optional[ClosingLineResult]:
        line = self.lines.find_by_game_id(game_id)
        if line is None or line.closing_source != source.value:
            return None
        return ClosingLineResult(
            source=source,
            spread=line.closing_spread,
            bookmakers=ClosingLineRepository.bookmaker_list(line),
            status=MatchStatus.SUCCESS,
            odds_event_id=line.odds_event_id,
            market_home=line.home_team,
            market_away=line.away_team,
            snapshot_time=line.snapshot_time,
        )
