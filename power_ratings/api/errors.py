"""Translation of ratings service errors into HTTP errors."""
from fastapi import HTTPException

from power_ratings.services.ratings.exceptions import (
    OverrideNotFoundError,
    ProviderError,
    RatingsError,
    RatingsValidationError,
    RunInProgressError,
    SeasonNotInitializedError,
    TeamRatingNotFoundError,
)

STATUS_CODES = (
    (RatingsValidationError, 400),
    (SeasonNotInitializedError, 404),
    (TeamRatingNotFoundError, 404),
    (OverrideNotFoundError, 404),
    (RunInProgressError, 409),
    (ProviderError, 502),
)


def to_http_exception(error: RatingsError) -> HTTPException:
    for error_type, status_code in STATUS_CODES:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))
