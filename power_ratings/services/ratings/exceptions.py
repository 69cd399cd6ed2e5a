"""
Exceptions raised by the ratings services.

Routes translate these into HTTP errors; the sync loop absorbs the per-game
ones (GameAlreadyProcessedError, TeamRatingNotFoundError, ProviderError)
and records them in the matching log.
"""


class RatingsError(Exception):
    """Base class for ratings service errors."""


class RatingsValidationError(RatingsError):
    """Invalid run input (missing season, malformed date range, bad config)."""


class RunInProgressError(RatingsError):
    """Another sync, recalculation or repair is already running for the season."""

    def __init__(self, season: int, kind: str = "run"):
        self.season = season
        self.kind = kind
        super().__init__(f"A {kind} is already in progress for season {season}")


class SeasonNotInitializedError(RatingsError):
    """The season has no team ratings to work with."""

    def __init__(self, season: int):
        self.season = season
        super().__init__(f"No ratings found for season {season}; initialize the season first")


class TeamRatingNotFoundError(RatingsError):
    """A canonical team name has no rating row in the season."""

    def __init__(self, team_name: str, season: int):
        self.team_name = team_name
        self.season = season
        super().__init__(f"No rating for '{team_name}' in season {season}")


class GameAlreadyProcessedError(RatingsError):
    """An adjustment already exists for the game."""

    def __init__(self, game_id: str):
        self.game_id = game_id
        super().__init__(f"Game {game_id} has already been processed")


class OverrideNotFoundError(RatingsError):
    def __init__(self, override_id: int):
        self.override_id = override_id
        super().__init__(f"Override {override_id} not found")


class ProviderError(RatingsError):
    """An external feed failed after retries."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")
