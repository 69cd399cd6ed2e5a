"""Shared pytest fixtures for power ratings tests."""
import os

# Settings are read at import time; pin a quiet test configuration first
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("THE_ODDS_API_KEY", "test-key")

from datetime import date, datetime
from typing import AsyncGenerator, Dict, Generator, List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from power_ratings.models import Base, TeamRating
from power_ratings.services.ratings.name_resolver import MascotCorpus, TeamNameResolver
from power_ratings.services.ratings.run_guard import RunGuard
from power_ratings.services.ratings.types import ScheduleGame

SEASON = 2026

SAMPLE_RATINGS = {
    "Duke": 25.0,
    "Connecticut": 22.0,
    "Kansas": 20.0,
    "Michigan St.": 18.5,
    "Alabama": 16.0,
    "North Carolina": 15.0,
    "St. John's": 14.0,
    "Saint Mary's": 12.0,
    "UCF": 5.0,
}

TEST_MASCOTS = [
    "blue devils", "huskies", "jayhawks", "spartans", "crimson tide",
    "tar heels", "red storm", "gaels", "knights", "wildcats", "tigers",
]


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create fresh test database session with isolated in-memory database."""
    # StaticPool keeps one connection so every session sees the same database
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)

    TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestSessionLocal()

    yield session

    session.close()
    engine.dispose()


@pytest.fixture
def corpus() -> MascotCorpus:
    return MascotCorpus(TEST_MASCOTS)


@pytest.fixture
def resolver(corpus: MascotCorpus) -> TeamNameResolver:
    return TeamNameResolver(corpus)


@pytest.fixture
def guard() -> RunGuard:
    """A run guard private to the test."""
    return RunGuard(stale_after_minutes=30)


@pytest.fixture
def sample_ratings(db_session: Session) -> Dict[str, TeamRating]:
    """Seed SAMPLE_RATINGS for SEASON."""
    rows = {}
    now = datetime.utcnow()
    for name, rating in SAMPLE_RATINGS.items():
        row = TeamRating(
            team_name=name,
            season=SEASON,
            rating=rating,
            initial_rating=rating,
            games_processed=0,
            created_at=now,
            updated_at=now,
        )
        db_session.add(row)
        rows[name] = row
    db_session.commit()
    return rows


@pytest_asyncio.fixture(scope="function")
async def async_client(db_session: Session) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for testing FastAPI endpoints."""
    from power_ratings.main import app
    from power_ratings.core.database import get_db

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()


def make_game(
    game_id: str,
    home: str,
    away: str,
    game_date: date = date(2025, 11, 10),
    kickoff: Optional[datetime] = datetime(2025, 11, 11, 0, 30),
    neutral: bool = False,
) -> ScheduleGame:
    """Schedule game as the schedule feed would report it."""
    return ScheduleGame(
        game_id=game_id,
        game_date=game_date,
        home_team=home,
        away_team=away,
        is_neutral_site=neutral,
        kickoff=kickoff,
        home_score=70,
        away_score=65,
    )


def make_fixture(
    home: str,
    away: str,
    home_point: Optional[float],
    commence_time: datetime = datetime(2025, 11, 11, 0, 30),
    books: Optional[List[str]] = None,
    event_id: Optional[str] = None,
) -> Dict:
    """Odds feed fixture with one spreads market per book."""
    bookmakers = []
    for key in books or ["pinnacle"]:
        outcomes = []
        if home_point is not None:
            outcomes = [
                {"name": home, "point": home_point, "price": -110},
                {"name": away, "point": -home_point, "price": -110},
            ]
        bookmakers.append({
            "key": key,
            "title": key.title(),
            "markets": [{"key": "spreads", "outcomes": outcomes}],
        })
    return {
        "id": event_id or f"evt-{home}-{away}".replace(" ", "_").lower(),
        "commence_time": commence_time,
        "home_team": home,
        "away_team": away,
        "bookmakers": bookmakers,
    }
