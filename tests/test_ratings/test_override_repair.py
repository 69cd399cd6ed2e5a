"""Tests for override management and the repair that follows it.

Test Strategy:
1. Sync games whose raw names fail to resolve
2. Add an override through OverrideService
3. Verify affected failed games are processed from known closing lines
4. Verify games without a known line, partial fixes and held seasons
"""
from datetime import date
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.orm import Session

# Import helper from conftest
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))
from conftest import SEASON, make_fixture, make_game

from power_ratings.models import GameAdjustment, MatchingLog, TeamOverride, TeamRating
from power_ratings.repositories.ratings import MatchingLogRepository
from power_ratings.services.ratings.closing_lines import ClosingLineCache
from power_ratings.services.ratings.exceptions import OverrideNotFoundError, RatingsValidationError
from power_ratings.services.ratings.game_processor import GameProcessor
from power_ratings.services.ratings.orchestrator import RatingsSyncOrchestrator
from power_ratings.services.ratings.override_repair import OverrideRepairWorkflow
from power_ratings.services.ratings.overrides import OverrideService
from power_ratings.services.ratings.types import ClosingSource, MatchStatus

START = date(2025, 11, 3)
END = date(2025, 11, 30)

KNIGHTS_GAME = make_game("405", "Alabama Crimson Tide", "Knights")
KNIGHTS_LINE = make_fixture("Alabama Crimson Tide", "UCF Knights", -12.0)


async def _sync(db, resolver, guard, games, fixtures) -> RatingsSyncOrchestrator:
    schedule = AsyncMock()
    schedule.fetch_completed_games = AsyncMock(return_value=list(games))
    odds = AsyncMock()
    odds.fetch_historical_odds = AsyncMock(return_value=list(fixtures))
    orchestrator = RatingsSyncOrchestrator(
        db,
        schedule_adapter=schedule,
        odds_adapter=odds,
        ratings_adapter=AsyncMock(),
        cache=ClosingLineCache(ttl_seconds=3600),
        resolver=resolver,
        guard=guard,
        request_delay_ms=0,
    )
    await orchestrator.sync(SEASON, start_date=START, end_date=END)
    return orchestrator


def _service(db, resolver, guard, cache=None) -> OverrideService:
    workflow = OverrideRepairWorkflow(
        db, cache=cache or ClosingLineCache(ttl_seconds=3600), resolver=resolver, guard=guard
    )
    return OverrideService(db, workflow)


def _log(db: Session, game_id: str) -> MatchingLog:
    return db.query(MatchingLog).filter_by(game_id=game_id, season=SEASON).one()


def _rating(db: Session, name: str) -> float:
    return db.query(TeamRating).filter_by(season=SEASON, team_name=name).one().rating


class TestOverrideRepair:
    """Tests for repairing failed games after an override is added."""

    # Repair Tests
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_override_processes_failed_game(self, db_session: Session, sample_ratings, resolver, guard):
        """Should process a game that failed only because of a name."""
        orchestrator = await _sync(db_session, resolver, guard, [KNIGHTS_GAME], [KNIGHTS_LINE])
        log = _log(db_session, "405")
        assert log.status == MatchStatus.AWAY_NOT_FOUND.value
        assert log.closing_spread == -12.0

        result = await _service(db_session, resolver, guard, orchestrator.cache).add(
            source_name="Knights", canonical_name="UCF", season=SEASON
        )

        repair = result['repair']
        assert result['created'] is True
        assert result['warning'] is None
        assert repair['candidates'] == 1
        assert repair['processed'] == 1
        assert repair['games'] == [{'game_id': "405", 'outcome': "processed", 'status': "success"}]

        # projected = (5 - 16) - 2.5 = -13.5; difference = 1.5; adjustment = 0.75
        assert _rating(db_session, "Alabama") == 15.25
        assert _rating(db_session, "UCF") == 5.75

        log = _log(db_session, "405")
        assert log.status == MatchStatus.SUCCESS.value
        assert log.matched_away == "UCF"
        assert log.skip_reason is None
        assert log.sync_run_id == repair['sync_run_id']

    @pytest.mark.asyncio
    async def test_repair_uses_stored_line(self, db_session: Session, sample_ratings, resolver, guard):
        """Should find the closing line in the store when the cache is cold."""
        await _sync(db_session, resolver, guard, [KNIGHTS_GAME], [KNIGHTS_LINE])

        result = await _service(db_session, resolver, guard).add(
            source_name="Knights", canonical_name="UCF", season=SEASON
        )

        assert result['repair']['processed'] == 1
        assert db_session.query(GameAdjustment).filter_by(game_id="405").one().closing_spread == -12.0

    @pytest.mark.asyncio
    async def test_no_known_line(self, db_session: Session, sample_ratings, resolver, guard):
        """Should leave a game without a known line as no_odds with a reason."""
        game = make_game("406", "Knights", "Duke Blue Devils")
        orchestrator = await _sync(db_session, resolver, guard, [game], [])
        assert _log(db_session, "406").status == MatchStatus.NO_ODDS.value

        result = await _service(db_session, resolver, guard, orchestrator.cache).add(
            source_name="Knights", canonical_name="UCF", season=SEASON
        )

        assert result['repair']['still_failing'] == 1
        log = _log(db_session, "406")
        assert log.status == MatchStatus.NO_ODDS.value
        assert log.matched_home == "UCF"
        assert log.matched_away == "Duke"
        assert "no pinnacle closing line" in log.skip_reason
        assert db_session.query(GameAdjustment).count() == 0

    @pytest.mark.asyncio
    async def test_no_spread_kept(self, db_session: Session, sample_ratings, resolver, guard):
        """Should keep no_spread when the fixture had no usable spread."""
        game = make_game("407", "Alabama Crimson Tide", "Knights")
        await _sync(db_session, resolver, guard, [game], [make_fixture("Alabama Crimson Tide", "UCF Knights", None)])
        before = _log(db_session, "407").skip_reason

        await _service(db_session, resolver, guard).add(source_name="Knights", canonical_name="UCF", season=SEASON)

        log = _log(db_session, "407")
        assert log.status == MatchStatus.NO_SPREAD.value
        assert log.skip_reason == before

    @pytest.mark.asyncio
    async def test_partial_fix_narrows_status(self, db_session: Session, sample_ratings, resolver, guard):
        """Should report the side that still fails after a partial fix."""
        game = make_game("408", "Knights", "UConn Huskies")
        await _sync(db_session, resolver, guard, [game], [make_fixture("UCF Knights", "UConn Huskies", 8.0)])
        assert _log(db_session, "408").status == MatchStatus.BOTH_NOT_FOUND.value

        result = await _service(db_session, resolver, guard).add(
            source_name="Knights", canonical_name="UCF", season=SEASON
        )

        assert result['repair']['still_failing'] == 1
        log = _log(db_session, "408")
        assert log.status == MatchStatus.AWAY_NOT_FOUND.value
        assert log.skip_reason == "No rating match for away team 'UConn Huskies'"

    @pytest.mark.asyncio
    async def test_already_processed_game_marked_success(self, db_session: Session, sample_ratings, resolver, guard):
        """Should not reprocess a game that already has an adjustment."""
        MatchingLogRepository(db_session).record(
            season=SEASON, game_id="409", game_date=date(2025, 11, 10),
            schedule_home="Knights", schedule_away="Duke Blue Devils",
            status=MatchStatus.HOME_NOT_FOUND, matched_away="Duke",
            skip_reason="No rating match for home team 'Knights'",
        )
        GameProcessor(db_session).process(
            SEASON, "409", date(2025, 11, 10), "UCF", "Duke", 20.0, ClosingSource.PINNACLE, 2.5
        )
        db_session.commit()
        ucf_before = _rating(db_session, "UCF")

        result = await _service(db_session, resolver, guard).add(
            source_name="Knights", canonical_name="UCF", season=SEASON
        )

        assert result['repair']['already_processed'] == 1
        assert _log(db_session, "409").status == MatchStatus.SUCCESS.value
        assert _rating(db_session, "UCF") == ucf_before
        assert db_session.query(GameAdjustment).count() == 1

    @pytest.mark.asyncio
    async def test_success_logs_not_candidates(self, db_session: Session, sample_ratings, resolver, guard):
        """Should never reopen games that already succeeded."""
        await _sync(
            db_session, resolver, guard,
            [make_game("401", "Duke Blue Devils", "Kansas Jayhawks")],
            [make_fixture("Duke Blue Devils", "Kansas Jayhawks", -4.5)],
        )

        result = await _service(db_session, resolver, guard).add(
            source_name="Duke Blue Devils", canonical_name="Duke", season=SEASON
        )

        assert result['repair']['candidates'] == 0
        assert _log(db_session, "401").status == MatchStatus.SUCCESS.value

    @pytest.mark.asyncio
    async def test_repair_deferred_while_season_held(self, db_session: Session, sample_ratings, resolver, guard):
        """Should save the override and defer repair while a run holds the season."""
        async with guard.hold(db_session, SEASON, "sync"):
            result = await _service(db_session, resolver, guard).add(
                source_name="Knights", canonical_name="UCF", season=SEASON
            )

        assert result['repair']['deferred'] is True
        assert db_session.query(TeamOverride).count() == 1


class TestOverrideService:
    """Tests for override CRUD."""

    @pytest.mark.asyncio
    async def test_add_updates_same_source_name(self, db_session: Session, sample_ratings, resolver, guard):
        """Should update the existing override when the source name repeats."""
        service = _service(db_session, resolver, guard)
        await service.add(source_name="Knights", canonical_name="Saint Mary's", season=SEASON)

        result = await service.add(source_name="knights", canonical_name="UCF", season=SEASON)

        assert result['created'] is False
        assert db_session.query(TeamOverride).count() == 1
        assert db_session.query(TeamOverride).one().canonical_name == "UCF"

    @pytest.mark.asyncio
    async def test_warns_when_canonical_has_no_rating(self, db_session: Session, sample_ratings, resolver, guard):
        result = await _service(db_session, resolver, guard).add(
            source_name="Knights", canonical_name="Central Florida", season=SEASON
        )
        assert "has no rating" in result['warning']

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kwargs", [
        {"source_name": " ", "canonical_name": "UCF"},
        {"source_name": "Knights", "canonical_name": ""},
        {"source_name": "Knights", "canonical_name": "UCF", "source": "robot"},
    ])
    async def test_add_validation(self, db_session: Session, resolver, guard, kwargs):
        with pytest.raises(RatingsValidationError):
            await _service(db_session, resolver, guard).add(season=SEASON, **kwargs)

    @pytest.mark.asyncio
    async def test_update_and_repair(self, db_session: Session, sample_ratings, resolver, guard):
        """Should repair failed games after an override is corrected."""
        orchestrator = await _sync(db_session, resolver, guard, [KNIGHTS_GAME], [KNIGHTS_LINE])
        service = _service(db_session, resolver, guard, orchestrator.cache)
        added = await service.add(source_name="Knights", canonical_name="Central Florida", season=SEASON)
        assert added['repair']['processed'] == 0

        result = await service.update(added['override']['id'], season=SEASON, canonical_name="UCF")

        assert result['override']['canonical_name'] == "UCF"
        assert result['repair']['processed'] == 1

    @pytest.mark.asyncio
    async def test_update_rejects_source_name_clash(self, db_session: Session, sample_ratings, resolver, guard):
        service = _service(db_session, resolver, guard)
        await service.add(source_name="Knights", canonical_name="UCF", season=SEASON)
        other = await service.add(source_name="Gaels", canonical_name="Saint Mary's", season=SEASON)

        with pytest.raises(RatingsValidationError):
            await service.update(other['override']['id'], season=SEASON, source_name="KNIGHTS")

    @pytest.mark.asyncio
    async def test_get_missing(self, db_session: Session, resolver, guard):
        with pytest.raises(OverrideNotFoundError):
            await _service(db_session, resolver, guard).update(999, season=SEASON, notes="x")

    @pytest.mark.asyncio
    async def test_delete(self, db_session: Session, sample_ratings, resolver, guard):
        service = _service(db_session, resolver, guard)
        added = await service.add(source_name="Knights", canonical_name="UCF", season=SEASON)

        deleted = service.delete(added['override']['id'])

        assert deleted['source_name'] == "Knights"
        assert service.list_overrides() == []
        with pytest.raises(OverrideNotFoundError):
            service.delete(added['override']['id'])
