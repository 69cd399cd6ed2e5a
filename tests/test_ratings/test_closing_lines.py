"""Tests for closing-line acquisition and its cache layers.

Test Strategy:
1. Test ClosingLineCache TTL with an injected clock
2. Test acquire() outcomes (found, no fixture, no spread, no kickoff)
3. Test memoization per game and per snapshot hour
4. Test provider errors are not memoized
5. Test the durable closing_lines layer
"""
from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.orm import Session

# Import helper from conftest
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))
from conftest import make_fixture, make_game

from power_ratings.models import ClosingLine, MarketTeamName
from power_ratings.services.ratings.closing_lines import ClosingLineCache, ClosingLineService
from power_ratings.services.ratings.exceptions import ProviderError
from power_ratings.services.ratings.name_resolver import OverrideIndex
from power_ratings.services.ratings.types import ClosingSource, MatchStatus

SNAPSHOT = datetime(2025, 11, 11, 0, 0)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _odds_adapter(*snapshots):
    adapter = AsyncMock()
    adapter.fetch_historical_odds = AsyncMock(side_effect=list(snapshots))
    return adapter


def _service(db, adapter, resolver, cache=None):
    return ClosingLineService(
        db,
        odds_adapter=adapter,
        cache=cache or ClosingLineCache(ttl_seconds=3600),
        resolver=resolver,
        lead_minutes=5,
        us_bookmakers=["draftkings", "fanduel"],
    )


class TestClosingLineCache:
    """Test suite for the TTL cache."""

    def test_entry_expires_after_ttl(self):
        """Should drop entries once the TTL has elapsed."""
        clock = FakeClock()
        cache = ClosingLineCache(ttl_seconds=10, clock=clock)
        cache.put("k", "v")

        clock.now += 9
        assert cache.get("k") == "v"
        assert "k" in cache

        clock.now += 1
        assert cache.get("k") is None
        assert "k" not in cache

    def test_put_evicts_expired_entries(self):
        """Should drop expired entries that are never read again."""
        clock = FakeClock()
        cache = ClosingLineCache(ttl_seconds=10, clock=clock)
        cache.put("old-1", 1)
        cache.put("old-2", 2)

        clock.now += 10
        cache.put("new", 3)

        assert len(cache) == 1
        assert cache.get("new") == 3

    def test_invalidate(self):
        cache = ClosingLineCache(ttl_seconds=10)
        cache.put("a", 1)
        cache.put("b", 2)

        cache.invalidate("a")
        assert cache.get("a") is None
        assert len(cache) == 1

        cache.invalidate()
        assert len(cache) == 0

    def test_keys_include_source(self):
        """Should keep lines for different sources apart."""
        assert (ClosingLineCache.game_key("401", ClosingSource.PINNACLE)
                != ClosingLineCache.game_key("401", ClosingSource.US_AVERAGE))


class TestAcquire:
    """Test suite for ClosingLineService.acquire()."""

    # Found Tests
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_found_line_is_stored(self, db_session: Session, resolver):
        """Should return the home spread and persist it."""
        adapter = _odds_adapter([make_fixture("Duke Blue Devils", "Kansas Jayhawks", -4.5, event_id="evt1")])
        service = _service(db_session, adapter, resolver)

        result = await service.acquire(make_game("401", "Duke", "Kansas"), ClosingSource.PINNACLE)

        assert result.found
        assert result.spread == -4.5
        assert result.status == MatchStatus.SUCCESS
        assert result.snapshot_time == SNAPSHOT
        assert result.odds_event_id == "evt1"
        adapter.fetch_historical_odds.assert_awaited_once_with(SNAPSHOT, ClosingSource.PINNACLE)

        line = db_session.query(ClosingLine).filter_by(game_id="401").one()
        assert line.closing_spread == -4.5
        assert line.closing_source == "pinnacle"
        assert line.home_team == "Duke Blue Devils"

    @pytest.mark.asyncio
    async def test_records_market_team_names(self, db_session: Session, resolver):
        """Should record every team name seen in the snapshot."""
        adapter = _odds_adapter([
            make_fixture("Duke Blue Devils", "Kansas Jayhawks", -4.5),
            make_fixture("UCF Knights", "Alabama Crimson Tide", 6.0),
        ])
        service = _service(db_session, adapter, resolver)

        await service.acquire(make_game("401", "Duke", "Kansas"), ClosingSource.PINNACLE)

        names = {row.team_name for row in db_session.query(MarketTeamName).all()}
        assert names == {"Duke Blue Devils", "Kansas Jayhawks", "UCF Knights", "Alabama Crimson Tide"}

    @pytest.mark.asyncio
    async def test_us_average(self, db_session: Session, resolver):
        adapter = _odds_adapter([
            make_fixture("Duke Blue Devils", "Kansas Jayhawks", -4.0, books=["draftkings"]),
        ])
        service = _service(db_session, adapter, resolver)

        result = await service.acquire(make_game("401", "Duke", "Kansas"), ClosingSource.US_AVERAGE)

        assert result.spread == -4.0
        assert result.bookmakers == ["Draftkings"]

    # Memoization Tests
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_second_lookup_uses_memory(self, db_session: Session, resolver):
        """Should answer a repeated lookup without calling the provider."""
        adapter = _odds_adapter([make_fixture("Duke Blue Devils", "Kansas Jayhawks", -4.5)])
        service = _service(db_session, adapter, resolver)
        game = make_game("401", "Duke", "Kansas")

        first = await service.acquire(game, ClosingSource.PINNACLE)
        second = await service.acquire(game, ClosingSource.PINNACLE)

        assert second is first
        assert adapter.fetch_historical_odds.await_count == 1

    @pytest.mark.asyncio
    async def test_games_in_same_hour_share_snapshot(self, db_session: Session, resolver):
        """Should fetch one snapshot for games tipping in the same hour."""
        adapter = _odds_adapter([
            make_fixture("Duke Blue Devils", "Kansas Jayhawks", -4.5),
            make_fixture("North Carolina Tar Heels", "Alabama Crimson Tide", -2.0,
                         commence_time=datetime(2025, 11, 11, 0, 45)),
        ])
        service = _service(db_session, adapter, resolver)

        first = await service.acquire(make_game("401", "Duke", "Kansas"), ClosingSource.PINNACLE)
        second = await service.acquire(
            make_game("402", "North Carolina", "Alabama", kickoff=datetime(2025, 11, 11, 0, 45)),
            ClosingSource.PINNACLE
        )

        assert first.spread == -4.5
        assert second.spread == -2.0
        assert adapter.fetch_historical_odds.await_count == 1

    @pytest.mark.asyncio
    async def test_no_fixture_is_memoized(self, db_session: Session, resolver):
        """Should remember a missing fixture for the rest of the run."""
        adapter = _odds_adapter([make_fixture("UCF Knights", "Alabama Crimson Tide", 6.0)])
        cache = ClosingLineCache(ttl_seconds=3600)
        service = _service(db_session, adapter, resolver, cache)
        game = make_game("401", "Duke", "Kansas")

        result = await service.acquire(game, ClosingSource.PINNACLE)
        again = await service.acquire(game, ClosingSource.PINNACLE)

        assert not result.found
        assert result.status == MatchStatus.NO_ODDS
        assert "No odds fixture" in result.reason
        assert again is result
        assert adapter.fetch_historical_odds.await_count == 1
        assert db_session.query(ClosingLine).count() == 0

    @pytest.mark.asyncio
    async def test_fixture_without_spread(self, db_session: Session, resolver):
        """Should report no_spread when the fixture has no usable spread."""
        adapter = _odds_adapter([make_fixture("Duke Blue Devils", "Kansas Jayhawks", None)])
        service = _service(db_session, adapter, resolver)

        result = await service.acquire(make_game("401", "Duke", "Kansas"), ClosingSource.PINNACLE)

        assert result.status == MatchStatus.NO_SPREAD
        assert result.market_home == "Duke Blue Devils"
        assert db_session.query(ClosingLine).count() == 0

    @pytest.mark.asyncio
    async def test_provider_error_not_memoized(self, db_session: Session, resolver):
        """Should retry the provider on the next lookup after a failure."""
        adapter = _odds_adapter(
            ProviderError("the_odds_api", "HTTP 503"),
            [make_fixture("Duke Blue Devils", "Kansas Jayhawks", -4.5)],
        )
        service = _service(db_session, adapter, resolver)
        game = make_game("401", "Duke", "Kansas")

        failed = await service.acquire(game, ClosingSource.PINNACLE)
        assert failed.status == MatchStatus.NO_ODDS
        assert "Odds provider error" in failed.reason

        recovered = await service.acquire(game, ClosingSource.PINNACLE)
        assert recovered.spread == -4.5
        assert adapter.fetch_historical_odds.await_count == 2

    @pytest.mark.asyncio
    async def test_no_kickoff(self, db_session: Session, resolver):
        """Should not call the provider without a kickoff time."""
        adapter = _odds_adapter()
        service = _service(db_session, adapter, resolver)

        result = await service.acquire(make_game("401", "Duke", "Kansas", kickoff=None), ClosingSource.PINNACLE)

        assert result.status == MatchStatus.NO_ODDS
        adapter.fetch_historical_odds.assert_not_awaited()

    # Store Tests
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_store_answers_after_cache_is_lost(self, db_session: Session, resolver):
        """Should reuse a persisted line without calling the provider."""
        first = _service(db_session, _odds_adapter([make_fixture("Duke Blue Devils", "Kansas Jayhawks", -4.5)]), resolver)
        await first.acquire(make_game("401", "Duke", "Kansas"), ClosingSource.PINNACLE)
        db_session.commit()

        adapter = _odds_adapter()
        second = _service(db_session, adapter, resolver, ClosingLineCache(ttl_seconds=3600))
        result = await second.acquire(make_game("401", "Duke", "Kansas"), ClosingSource.PINNACLE)

        assert result.spread == -4.5
        assert result.bookmakers == ["pinnacle"]
        adapter.fetch_historical_odds.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_ignored_for_other_source(self, db_session: Session, resolver):
        """Should not reuse a Pinnacle line for a us_average lookup."""
        first = _service(db_session, _odds_adapter([make_fixture("Duke Blue Devils", "Kansas Jayhawks", -4.5)]), resolver)
        await first.acquire(make_game("401", "Duke", "Kansas"), ClosingSource.PINNACLE)

        adapter = _odds_adapter([make_fixture("Duke Blue Devils", "Kansas Jayhawks", -5.0, books=["fanduel"])])
        second = _service(db_session, adapter, resolver)
        result = await second.acquire(make_game("401", "Duke", "Kansas"), ClosingSource.US_AVERAGE)

        assert result.spread == -5.0
        adapter.fetch_historical_odds.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cached_line(self, db_session: Session, resolver):
        """Should expose only found lines through cached_line()."""
        adapter = _odds_adapter([make_fixture("Duke Blue Devils", "Kansas Jayhawks", -4.5)])
        service = _service(db_session, adapter, resolver)

        assert service.cached_line("401", ClosingSource.PINNACLE) is None
        await service.acquire(make_game("401", "Duke", "Kansas"), ClosingSource.PINNACLE)
        await service.acquire(make_game("402", "UCF", "Alabama"), ClosingSource.PINNACLE)

        assert service.cached_line("401", ClosingSource.PINNACLE).spread == -4.5
        assert service.cached_line("402", ClosingSource.PINNACLE) is None


class TestFindFixture:
    """Test suite for fixture pairing."""

    def test_pinned_market_name(self, db_session: Session, resolver):
        """Should pair through an operator-pinned odds-feed spelling."""
        service = _service(db_session, _odds_adapter(), resolver)
        fixtures = [make_fixture("UCF Knights", "Kansas Jayhawks", 9.5)]
        game = make_game("401", "Central Florida", "Kansas")

        assert service.find_fixture(game, fixtures) is None

        overrides = OverrideIndex([SimpleNamespace(
            source_name="Central Florida", canonical_name="UCF", schedule_name=None,
            odds_api_name="UCF Knights", secondary_name=None,
        )])
        assert service.find_fixture(game, fixtures, overrides) is fixtures[0]

    def test_ignores_fixture_far_from_kickoff(self, db_session: Session, resolver):
        service = _service(db_session, _odds_adapter(), resolver)
        fixtures = [make_fixture("Duke Blue Devils", "Kansas Jayhawks", -4.5,
                                 commence_time=datetime(2025, 11, 11, 0, 30) + timedelta(days=2))]

        assert service.find_fixture(make_game("401", "Duke", "Kansas"), fixtures) is None

    def test_keeps_home_away_orientation(self, db_session: Session, resolver):
        """Should not pair a fixture with home and away reversed."""
        service = _service(db_session, _odds_adapter(), resolver)
        fixtures = [make_fixture("Kansas Jayhawks", "Duke Blue Devils", 4.5)]

        assert service.find_fixture(make_game("401", "Duke", "Kansas"), fixtures) is None
