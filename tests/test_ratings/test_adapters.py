"""Tests for the external feed adapters using httpx.MockTransport."""
from datetime import date, datetime

import httpx
import pytest

from power_ratings.services.ratings.adapters import (
    BarttorvikAdapter,
    EspnScheduleAdapter,
    KenPomAdapter,
    OddsApiAdapter,
)
from power_ratings.services.ratings.exceptions import ProviderError
from power_ratings.services.ratings.types import ClosingSource


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _espn_event(event_id, home, away, completed=True, neutral=False, note=None, when="2025-11-11T00:30Z"):
    competition = {
        "date": when,
        "neutralSite": neutral,
        "status": {"type": {"completed": completed, "state": "post" if completed else "in"}},
        "competitors": [
            {"homeAway": "home", "score": "70", "team": {"displayName": home}},
            {"homeAway": "away", "score": "65", "team": {"displayName": away}},
        ],
        "notes": [{"headline": note}] if note else [],
    }
    return {"id": event_id, "date": when, "competitions": [competition]}


class TestEspnScheduleAdapter:
    """Tests for the schedule feed."""

    def test_parse_keeps_completed_games(self):
        data = {"events": [
            _espn_event("401", "Duke Blue Devils", "Kansas Jayhawks"),
            _espn_event("402", "UCF Knights", "Alabama Crimson Tide", completed=False),
        ]}

        games = EspnScheduleAdapter.parse_scoreboard(data, date(2025, 11, 10))

        assert [g.game_id for g in games] == ["401"]
        game = games[0]
        assert game.game_date == date(2025, 11, 10)
        assert game.home_team == "Duke Blue Devils"
        assert game.away_team == "Kansas Jayhawks"
        assert game.kickoff == datetime(2025, 11, 11, 0, 30)
        assert game.home_score == 70
        assert game.is_neutral_site is False

    def test_neutral_site_from_flag_or_event_name(self):
        data = {"events": [
            _espn_event("401", "Duke Blue Devils", "Kansas Jayhawks", neutral=True),
            _espn_event("402", "Alabama Crimson Tide", "UCF Knights", note="Maui Invitational - Semifinal"),
        ]}

        games = EspnScheduleAdapter.parse_scoreboard(data, date(2025, 11, 25))

        assert all(g.is_neutral_site for g in games)

    @pytest.mark.asyncio
    async def test_fetch_range_requests_each_day(self):
        """Should request one scoreboard per day and drop duplicate games."""
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            day = request.url.params["dates"]
            requested.append(day)
            return httpx.Response(200, json={"events": [
                _espn_event("401", "Duke Blue Devils", "Kansas Jayhawks"),
                _espn_event(f"5{day[-2:]}", "UCF Knights", "Alabama Crimson Tide"),
            ]})

        adapter = EspnScheduleAdapter(client=_client(handler), base_url="https://espn.test/scoreboard",
                                      request_delay_ms=0)
        games = await adapter.fetch_completed_games(date(2025, 11, 10), date(2025, 11, 11))

        assert requested == ["20251110", "20251111"]
        assert [g.game_id for g in games] == ["401", "510", "511"]

    @pytest.mark.asyncio
    async def test_http_error_raises_provider_error(self):
        adapter = EspnScheduleAdapter(
            client=_client(lambda request: httpx.Response(404)),
            base_url="https://espn.test/scoreboard",
            request_delay_ms=0,
        )

        with pytest.raises(ProviderError) as exc_info:
            await adapter.fetch_day(date(2025, 11, 10))

        assert exc_info.value.provider == "espn"


class TestOddsApiAdapter:
    """Tests for the market-odds feed."""

    @pytest.mark.asyncio
    async def test_fetch_pinnacle_snapshot(self):
        """Should request the Pinnacle snapshot and normalize fixture times."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(dict(request.url.params))
            seen["path"] = request.url.path
            return httpx.Response(
                200,
                headers={"x-requests-remaining": "480", "x-requests-used": "20"},
                json={"timestamp": "2025-11-11T00:00:00Z", "data": [{
                    "id": "evt1",
                    "commence_time": "2025-11-11T00:30:00Z",
                    "home_team": "Duke Blue Devils",
                    "away_team": "Kansas Jayhawks",
                    "bookmakers": [],
                }]},
            )

        adapter = OddsApiAdapter(client=_client(handler), api_key="k", base_url="https://odds.test/v4",
                                 sport_key="basketball_ncaab")
        fixtures = await adapter.fetch_historical_odds(datetime(2025, 11, 11, 0, 0), ClosingSource.PINNACLE)

        assert seen["path"] == "/v4/historical/sports/basketball_ncaab/odds"
        assert seen["regions"] == "eu"
        assert seen["bookmakers"] == "pinnacle"
        assert seen["markets"] == "spreads"
        assert seen["date"] == "2025-11-11T00:00:00Z"
        assert fixtures[0]["commence_time"] == datetime(2025, 11, 11, 0, 30)
        assert fixtures[0]["home_team"] == "Duke Blue Devils"

    @pytest.mark.asyncio
    async def test_us_average_params(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(dict(request.url.params))
            return httpx.Response(200, json={"data": []})

        adapter = OddsApiAdapter(client=_client(handler), api_key="k", base_url="https://odds.test/v4",
                                 us_bookmakers=["draftkings", "fanduel"])
        assert await adapter.fetch_historical_odds(datetime(2025, 11, 11), ClosingSource.US_AVERAGE) == []

        assert seen["regions"] == "us"
        assert seen["bookmakers"] == "draftkings,fanduel"

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        adapter = OddsApiAdapter(client=_client(lambda request: httpx.Response(200, json={})), api_key="")

        with pytest.raises(ProviderError):
            await adapter.fetch_historical_odds(datetime(2025, 11, 11), ClosingSource.PINNACLE)


class TestKenPomAdapter:
    """Tests for the preseason ratings import."""

    def test_parse_ratings(self):
        ratings = KenPomAdapter.parse_ratings([
            {"TeamName": "Duke", "AdjEM": 25.31, "ConfShort": "ACC"},
            {"TeamName": "", "AdjEM": 1.0},
            {"TeamName": "Kansas"},
        ])

        assert len(ratings) == 1
        assert ratings[0].team_name == "Duke"
        assert ratings[0].rating == 25.31
        assert ratings[0].conference == "ACC"

    @pytest.mark.asyncio
    async def test_fetch_archive_sends_auth(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            seen["d"] = request.url.params.get("d")
            return httpx.Response(200, json=[{"TeamName": "Duke", "AdjEM": 25.0}])

        adapter = KenPomAdapter(client=_client(handler), api_key="secret", base_url="https://kenpom.test/api.php")
        ratings = await adapter.fetch_archive_ratings(date(2025, 4, 7))

        assert seen == {"auth": "Bearer secret", "d": "2025-04-07"}
        assert ratings[0].team_name == "Duke"

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        adapter = KenPomAdapter(client=_client(lambda request: httpx.Response(200, json=[])), api_key="")

        with pytest.raises(ProviderError):
            await adapter.fetch_archive_ratings(date(2025, 4, 7))


class TestBarttorvikAdapter:
    """Tests for the secondary name vocabulary."""

    def test_parse_team_names(self):
        names = BarttorvikAdapter.parse_team_names([
            [1, "Duke", 30.1],
            [2, "Michigan St.", 20.0],
            {"team": "Connecticut"},
            [3],
            [4, "Duke", 30.1],
        ])

        assert names == ["Connecticut", "Duke", "Michigan St."]

    @pytest.mark.asyncio
    async def test_fetch_team_names(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/2026_team_results.json"
            return httpx.Response(200, json=[[1, "Duke"]])

        adapter = BarttorvikAdapter(client=_client(handler), base_url="https://torvik.test")
        assert await adapter.fetch_team_names(2026) == ["Duke"]
