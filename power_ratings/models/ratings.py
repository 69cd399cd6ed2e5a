"""
Power ratings models.

Tables:
- team_ratings: one row per team per season, keyed by the canonical name
- game_adjustments: one row per processed game (the idempotency key is game_id)
- team_overrides: operator mappings from source vocabularies to canonical names
- ratings_config: singleton engine configuration (id = 1)
- matching_logs: latest attempt per game with its status taxonomy
- closing_lines: durable closing-line cache (successful lookups only)
- excluded_games: games removed from sync candidates by an operator
- market_team_names: every team name observed in the odds feed
- sync_runs: run bookkeeping used for status and the per-season run guard

Ratings are stored as floats holding two-decimal values; all arithmetic is
done in Decimal by the engine before the result is written back.
"""
from datetime import datetime
from sqlalchemy import Column, String, Float, Integer, DateTime, Date, Boolean, Text, Index, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


# =============================================================================
# RATINGS
# =============================================================================

class TeamRating(Base):
    """Current and preseason rating for a team in a season."""
    __tablename__ = "team_ratings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_name = Column(String(100), nullable=False)  # Canonical key (preseason provider spelling)
    season = Column(Integer, nullable=False, index=True)
    rating = Column(Float, nullable=False)
    initial_rating = Column(Float, nullable=False)  # Immutable baseline
    games_processed = Column(Integer, nullable=False, default=0)
    conference = Column(String(50), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('team_name', 'season', name='uq_team_ratings_team_season'),
        Index('ix_team_ratings_season_rating', 'season', 'rating'),
    )


class GameAdjustment(Base):
    """
    Rating adjustment produced by one completed game.

    Append-only during sync. Recalculation rewrites the computed fields
    (projected_spread, difference, adjustment and the before/after ratings)
    but never closing_spread, is_neutral_site or game_id.
    """
    __tablename__ = "game_adjustments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    game_id = Column(String(64), nullable=False, unique=True)
    season = Column(Integer, nullable=False, index=True)
    game_date = Column(Date, nullable=False, index=True)
    home_team = Column(String(100), nullable=False)
    away_team = Column(String(100), nullable=False)
    is_neutral_site = Column(Boolean, nullable=False, default=False)
    projected_spread = Column(Float, nullable=False)
    closing_spread = Column(Float, nullable=False)
    closing_source = Column(String(16), nullable=False)
    difference = Column(Float, nullable=False)
    adjustment = Column(Float, nullable=False)
    home_rating_before = Column(Float, nullable=False)
    home_rating_after = Column(Float, nullable=False)
    away_rating_before = Column(Float, nullable=False)
    away_rating_after = Column(Float, nullable=False)
    processed_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_game_adjustments_season_date', 'season', 'game_date', 'game_id'),
    )


class RatingsConfig(Base):
    """Engine configuration singleton. Changes apply on the next recalculation."""
    __tablename__ = "ratings_config"

    id = Column(Integer, primary_key=True)  # Always 1
    hca = Column(Float, nullable=False)
    closing_source = Column(String(16), nullable=False)  # 'pinnacle' | 'us_average'
    season = Column(Integer, nullable=False)
    last_processed_date = Column(Date, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)


# =============================================================================
# NAME RESOLUTION
# =============================================================================

class TeamOverride(Base):
    """Operator-curated mapping from a non-canonical name to a canonical name."""
    __tablename__ = "team_overrides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source_name = Column(String(100), nullable=False, unique=True)
    canonical_name = Column(String(100), nullable=False, index=True)
    schedule_name = Column(String(100), nullable=True)  # ESPN spelling
    odds_api_name = Column(String(100), nullable=True)  # The Odds API spelling
    secondary_name = Column(String(100), nullable=True)  # Barttorvik spelling
    source = Column(String(16), nullable=False, default='manual')  # 'manual' | 'auto'
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class MarketTeamName(Base):
    """Team name as spelled by the odds feed, recorded whenever it is seen."""
    __tablename__ = "market_team_names"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_name = Column(String(100), nullable=False, unique=True)
    first_seen_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    last_seen_at = Column(DateTime, nullable=False, default=datetime.utcnow)


# =============================================================================
# SYNC STATE
# =============================================================================

class MatchingLog(Base):
    """
    Outcome of the latest attempt to process a game.

    status is one of MatchStatus; every non-success row carries skip_reason.
    """
    __tablename__ = "matching_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    game_id = Column(String(64), nullable=False)
    season = Column(Integer, nullable=False)
    sync_run_id = Column(String(36), nullable=True, index=True)
    game_date = Column(Date, nullable=False)
    kickoff = Column(DateTime, nullable=True)
    is_neutral_site = Column(Boolean, nullable=False, default=False)
    schedule_home = Column(String(100), nullable=False)  # Raw schedule-feed names
    schedule_away = Column(String(100), nullable=False)
    matched_home = Column(String(100), nullable=True)  # Canonical names, when resolved
    matched_away = Column(String(100), nullable=True)
    home_found = Column(Boolean, nullable=False, default=False)
    away_found = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, index=True)
    skip_reason = Column(Text, nullable=True)
    closing_spread = Column(Float, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('game_id', 'season', name='uq_matching_logs_game_season'),
        Index('ix_matching_logs_season_status', 'season', 'status'),
    )


class ClosingLine(Base):
    """Closing spread found for a game, reused verbatim while the source matches."""
    __tablename__ = "closing_lines"

    id = Column(Integer, primary_key=True, autoincrement=True)
    game_id = Column(String(64), nullable=False, unique=True)
    odds_event_id = Column(String(64), nullable=True)
    game_date = Column(Date, nullable=False)
    home_team = Column(String(100), nullable=False)  # Odds-feed spelling
    away_team = Column(String(100), nullable=False)
    closing_spread = Column(Float, nullable=False)  # Home perspective, negative = home favored
    closing_source = Column(String(16), nullable=False)
    bookmakers = Column(Text, nullable=True)  # JSON list of contributing books
    snapshot_time = Column(DateTime, nullable=False)
    fetched_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class ExcludedGame(Base):
    """Game an operator removed from the candidate set (e.g. non-D1 opponent)."""
    __tablename__ = "excluded_games"

    id = Column(Integer, primary_key=True, autoincrement=True)
    game_id = Column(String(64), nullable=False, unique=True)
    game_date = Column(Date, nullable=True)
    schedule_home = Column(String(100), nullable=True)
    schedule_away = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class SyncRun(Base):
    """Bookkeeping for one sync, recalculation, override repair or seed run."""
    __tablename__ = "sync_runs"

    id = Column(String(36), primary_key=True)
    season = Column(Integer, nullable=False)
    kind = Column(String(20), nullable=False)  # 'sync' | 'recalculate' | 'override_repair' | 'initialize'
    status = Column(String(16), nullable=False, index=True)  # 'running' | 'success' | 'failed'
    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    games_considered = Column(Integer, nullable=False, default=0)
    games_processed = Column(Integer, nullable=False, default=0)
    games_skipped = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    duration_ms = Column(Integer, nullable=True)

    __table_args__ = (
        Index('ix_sync_runs_season_status', 'season', 'status'),
    )
