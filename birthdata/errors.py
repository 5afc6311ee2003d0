"""Exception types for the birth data pipeline and API."""


class BirthDataError(Exception):
    """Base class for birth data errors."""


class ConfigError(BirthDataError, ValueError):
    """Configuration file or environment override is invalid."""


class FetchFailed(BirthDataError):
    """SCB API was unreachable or returned an unusable response."""


class PersistFailed(BirthDataError):
    """Store write failed partway through a batch.

    Upserts applied before the failure stay committed; ``applied`` counts them.
    """

    def __init__(self, message: str, applied: int = 0) -> None:
        super().__init__(message)
        self.applied = applied


class InvalidRequest(BirthDataError):
    """Caller omitted or mis-specified a required query parameter."""
