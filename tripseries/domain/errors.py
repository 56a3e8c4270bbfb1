"""Error types raised by the series engine."""

from typing import Optional


class SeriesError(Exception):
    """Base class for fatal series engine errors."""

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.details = details


class ValidationError(SeriesError):
    """Raised before any write when input cannot produce a valid series."""

    pass


class OccurrenceNotFoundError(ValidationError):
    """Raised when a target occurrence id does not exist."""

    pass


class PersistenceError(SeriesError):
    """Raised by a repository when a single create/update/delete fails."""

    pass


class ZeroResultError(SeriesError):
    """Raised when a batch expected at least one success and got none."""

    def __init__(self, message: str, attempted: int, details: Optional[str] = None):
        super().__init__(message, details)
        self.attempted = attempted


class SafetyLimitExceeded(UserWarning):
    """Warning emitted when expansion stops at the iteration cap."""

    pass


class IncompatibleDatabaseError(SeriesError):
    """Raised when an existing database file is not a trip store."""

    pass
