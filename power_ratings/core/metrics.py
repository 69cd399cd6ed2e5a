"""
Prometheus metrics for the power ratings service.

Metrics exposed:
- Per-game sync outcomes (processed / skipped by matching-log status)
- Run counters and durations per run kind (sync, recalculate, override_repair)
- External API success/failure counters (The Odds API, ESPN, KenPom)
- Odds API quota gauges
- Scheduler status gauge
"""
from prometheus_client import Counter, Gauge, Histogram

# Ratings engine metrics
games_processed_total = Counter(
    "ratings_games_processed_total",
    "Games whose closing line produced a rating adjustment",
    ["season"]
)

games_skipped_total = Counter(
    "ratings_games_skipped_total",
    "Games skipped during a sync run",
    ["season", "status"]
)

runs_total = Counter(
    "ratings_runs_total",
    "Ratings runs by kind and outcome",
    ["kind", "status"]
)

run_duration_seconds = Histogram(
    "ratings_run_duration_seconds",
    "Duration of ratings runs in seconds",
    ["kind"]
)

closing_line_cache_hits_total = Counter(
    "ratings_closing_line_cache_hits_total",
    "Closing-line lookups served without calling the odds provider",
    ["layer"]
)

# External API metrics
odds_api_requests_success_total = Counter(
    "odds_api_requests_success_total",
    "Total successful Odds API requests"
)

odds_api_requests_failure_total = Counter(
    "odds_api_requests_failure_total",
    "Total failed Odds API requests",
    ["error_type"]
)

espn_api_requests_success_total = Counter(
    "espn_api_requests_success_total",
    "Total successful ESPN API requests"
)

espn_api_requests_failure_total = Counter(
    "espn_api_requests_failure_total",
    "Total failed ESPN API requests",
    ["error_type"]
)

kenpom_api_requests_total = Counter(
    "kenpom_api_requests_total",
    "KenPom API requests by outcome",
    ["outcome"]
)

# API quota metrics
odds_api_quota_remaining = Gauge(
    "odds_api_quota_remaining",
    "Remaining Odds API requests for current billing period"
)

odds_api_quota_used = Gauge(
    "odds_api_quota_used",
    "Used Odds API requests in current billing period"
)

# Scheduler metrics
scheduler_running = Gauge(
    "scheduler_running",
    "Whether the ratings scheduler is running (1=running, 0=stopped)"
)

scheduler_jobs_total = Gauge(
    "scheduler_jobs_total",
    "Total number of scheduled jobs"
)


def update_scheduler_metrics():
    """Update scheduler gauges from the global scheduler instance."""
    from power_ratings.core.scheduler import get_scheduler

    scheduler = get_scheduler()
    if scheduler and scheduler.running:
        scheduler_running.set(1)
        if scheduler.scheduler:
            scheduler_jobs_total.set(len(scheduler.scheduler.get_jobs()))
    else:
        scheduler_running.set(0)
        scheduler_jobs_total.set(0)


def update_odds_api_quota(remaining: int, used: int):
    """
    Update Odds API quota metrics from response headers.

    Args:
        remaining: Remaining requests
        used: Used requests
    """
    odds_api_quota_remaining.set(remaining)
    odds_api_quota_used.set(used)


def record_game_processed(season: int):
    """Record a game that produced an adjustment."""
    games_processed_total.labels(season=str(season)).inc()


def record_game_skipped(season: int, status: str):
    """Record a skipped game under its matching-log status."""
    games_skipped_total.labels(season=str(season), status=status).inc()


def record_run(kind: str, status: str, duration_ms: int):
    """Record a finished run."""
    runs_total.labels(kind=kind, status=status).inc()
    run_duration_seconds.labels(kind=kind).observe(duration_ms / 1000)


def record_closing_line_cache_hit(layer: str):
    """Record a closing line served from 'memory' or 'store'."""
    closing_line_cache_hits_total.labels(layer=layer).inc()


def record_odds_api_request_success():
    """Record a successful Odds API request."""
    odds_api_requests_success_total.inc()


def record_odds_api_request_failure(error_type: str = "unknown"):
    """Record a failed Odds API request."""
    odds_api_requests_failure_total.labels(error_type=error_type).inc()


def record_espn_api_request_success():
    """Record a successful ESPN API request."""
    espn_api_requests_success_total.inc()


def record_espn_api_request_failure(error_type: str = "unknown"):
    """Record a failed ESPN API request."""
    espn_api_requests_failure_total.labels(error_type=error_type).inc()


def record_kenpom_request(outcome: str):
    """Record a KenPom request as 'success' or 'failure'."""
    kenpom_api_requests_total.labels(outcome=outcome).inc()
